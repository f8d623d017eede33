from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

import httpx

from .sources import PriceSourceError, bybit_result_list, get_json
from .types import Candle, symbol_key

logger = logging.getLogger(__name__)

# Candles needed per period: the daily open comes from the latest candle,
# the 15m reference is the close of the candle before the latest one.
PERIOD_LIMITS = {"daily": 1, "15m": 2}


class HistoricalPriceError(Exception):
    pass


def _candle_from_row(row: Any) -> Candle:
    # Both exchanges use [start, open, high, low, close, volume, ...].
    if not isinstance(row, (list, tuple)) or len(row) < 6:
        raise PriceSourceError(f"Malformed kline row: {row!r}")
    try:
        return Candle(
            open_time=int(float(row[0])),
            open=float(row[1]),
            high=float(row[2]),
            low=float(row[3]),
            close=float(row[4]),
            volume=float(row[5]),
        )
    except (TypeError, ValueError) as exc:
        raise PriceSourceError(f"Malformed kline row: {row!r}") from exc


def parse_binance_klines(payload: Any) -> list[Candle]:
    """Binance returns oldest first; normalize to newest first."""
    if not isinstance(payload, list):
        raise PriceSourceError("Binance kline payload is not a list")
    return [_candle_from_row(row) for row in reversed(payload)]


def parse_bybit_klines(payload: Any) -> list[Candle]:
    """Bybit already returns newest first."""
    rows = bybit_result_list(payload, "kline")
    return [_candle_from_row(row) for row in rows]


def base_price_from_candles(candles: Sequence[Candle], period: str) -> float:
    """Pick the reference price for ``period`` from newest-first candles."""
    needed = PERIOD_LIMITS.get(period)
    if needed is None:
        raise HistoricalPriceError(f"Unknown period: {period}")
    if len(candles) < needed:
        raise HistoricalPriceError(
            f"Not enough candles for {period}: got {len(candles)}, need {needed}"
        )
    if period == "daily":
        return candles[0].open
    return candles[1].close


class KlineSource(ABC):
    name = "base"
    intervals: dict[str, str] = {}

    def __init__(self, client: httpx.AsyncClient, url: str) -> None:
        self._client = client
        self.url = url

    @abstractmethod
    async def fetch_candles(self, pair: str, period: str) -> list[Candle]:
        ...


class BinanceKlineSource(KlineSource):
    name = "Binance"
    intervals = {"daily": "1d", "15m": "15m"}

    async def fetch_candles(self, pair: str, period: str) -> list[Candle]:
        params = {
            "symbol": pair,
            "interval": self.intervals[period],
            "limit": PERIOD_LIMITS[period],
        }
        return parse_binance_klines(await get_json(self._client, self.url, params=params))


class BybitKlineSource(KlineSource):
    name = "Bybit"
    intervals = {"daily": "D", "15m": "15"}

    async def fetch_candles(self, pair: str, period: str) -> list[Candle]:
        params = {
            "category": "spot",
            "symbol": pair,
            "interval": self.intervals[period],
            "limit": PERIOD_LIMITS[period],
        }
        return parse_bybit_klines(await get_json(self._client, self.url, params=params))


class HistoricalPriceResolver:
    def __init__(self, sources: Sequence[KlineSource]) -> None:
        self.sources = list(sources)

    async def get_historical_price(self, symbol: str, period: str) -> float:
        if period not in PERIOD_LIMITS:
            raise HistoricalPriceError(f"Unknown period: {period}")

        pair = symbol_key(symbol)
        for source in self.sources:
            try:
                candles = await source.fetch_candles(pair, period)
                price = base_price_from_candles(candles, period)
            except (PriceSourceError, HistoricalPriceError) as exc:
                logger.debug("%s %s kline lookup failed for %s: %s", source.name, period, pair, exc)
                continue
            if math.isfinite(price) and price > 0:
                return price
            logger.debug("%s returned unusable %s price for %s", source.name, period, pair)

        raise HistoricalPriceError(f"No source could provide {symbol} {period} historical price")
