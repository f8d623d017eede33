from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from .sources import PriceSource, PriceSourceError
from .types import PriceSnapshot

logger = logging.getLogger(__name__)


class PriceAggregator:
    """Ordered fallback over price sources; the first non-empty snapshot wins."""

    def __init__(self, sources: Sequence[PriceSource]) -> None:
        self.sources = list(sources)

    async def get_all_prices(self, symbols: Iterable[str]) -> tuple[PriceSnapshot | None, str]:
        symbols = list(symbols)
        for source in self.sources:
            try:
                prices = await source.fetch_snapshot(symbols)
            except PriceSourceError as exc:
                logger.warning("%s price fetch failed: %s, trying next source", source.name, exc)
                continue

            if prices:
                logger.info("Price source: %s (%d symbols)", source.name, len(prices))
                return prices, source.name
            logger.warning("%s returned an empty snapshot, trying next source", source.name)

        logger.error("All price sources failed")
        return None, ""
