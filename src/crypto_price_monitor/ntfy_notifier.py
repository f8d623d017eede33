from __future__ import annotations

import logging

import httpx

from .formatting import ALERT_TITLE

logger = logging.getLogger(__name__)


def build_topic_url(base_url: str, topic: str) -> str:
    return f"{base_url.rstrip('/')}/{topic}"


class NtfyNotifier:
    def __init__(self, base_url: str, topic: str, client: httpx.AsyncClient) -> None:
        self.topic = topic
        self._url = build_topic_url(base_url, topic)
        self._client = client

    async def send(self, text: str) -> None:
        response = await self._client.post(
            self._url,
            content=text.encode("utf-8"),
            headers={
                "Title": ALERT_TITLE,
                "Priority": "urgent",
                "Tags": "warning,chart",
                "X-Priority": "5",
            },
        )
        response.raise_for_status()
        logger.debug("ntfy accepted message for topic %s", self.topic)
