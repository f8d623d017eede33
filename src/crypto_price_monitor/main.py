from __future__ import annotations

import asyncio
import logging
import sys

from .config import Settings, load_settings
from .service import MonitorService

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
    # httpx logs every request at INFO, which floods the per-tick output.
    logging.getLogger("httpx").setLevel(logging.WARNING)


async def monitor(settings: Settings) -> None:
    service = MonitorService(settings)
    logger.info(
        "Monitoring %d symbol(s): %s",
        len(service.symbols),
        ", ".join(service.symbols) or "none",
    )
    await service.run()


def main() -> int:
    try:
        settings = load_settings()
    except ValueError as exc:
        logging.basicConfig(format=LOG_FORMAT)
        logger.error("Invalid configuration: %s", exc)
        return 2

    configure_logging(settings.log_level)
    try:
        asyncio.run(monitor(settings))
    except KeyboardInterrupt:
        logger.info("Stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
