from __future__ import annotations

import math
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any

import httpx

from .types import PriceSnapshot, symbol_key

KRAKEN_PAIRS = {
    "BTC": "XBTUSD",
    "ETH": "ETHUSD",
    "SOL": "SOLUSD",
}


class PriceSourceError(Exception):
    pass


async def get_json(client: httpx.AsyncClient, url: str, params: dict[str, Any] | None = None) -> Any:
    """GET ``url`` and decode the JSON body, raising PriceSourceError on any failure."""
    try:
        resp = await client.get(url, params=params)
        resp.raise_for_status()
        return resp.json()
    except (httpx.HTTPError, ValueError) as exc:
        raise PriceSourceError(f"GET {url} failed: {exc}") from exc


def _to_price(raw: Any) -> float | None:
    try:
        price = float(raw)
    except (TypeError, ValueError):
        return None
    return price if math.isfinite(price) else None


def bybit_result_list(payload: Any, what: str) -> list[Any]:
    """Unwrap Bybit's {"retCode", "retMsg", "result": {"list": [...]}} envelope."""
    if not isinstance(payload, dict):
        raise PriceSourceError(f"Bybit {what} payload is not an object")
    if payload.get("retCode", 0) != 0:
        raise PriceSourceError(f"Bybit error: {payload.get('retMsg')}")

    result = payload.get("result")
    if not isinstance(result, dict):
        raise PriceSourceError(f"Bybit {what} payload has no result object")
    rows = result.get("list")
    if not isinstance(rows, list):
        raise PriceSourceError(f"Bybit {what} payload has no result list")
    return rows


def parse_binance_tickers(payload: Any) -> PriceSnapshot:
    if not isinstance(payload, list):
        raise PriceSourceError("Binance ticker payload is not a list")

    prices: PriceSnapshot = {}
    for ticker in payload:
        if not isinstance(ticker, dict):
            continue
        price = _to_price(ticker.get("price"))
        symbol = ticker.get("symbol")
        if price is not None and symbol:
            prices[str(symbol)] = price
    return prices


def parse_bybit_tickers(payload: Any) -> PriceSnapshot:
    rows = bybit_result_list(payload, "ticker")
    prices: PriceSnapshot = {}
    for ticker in rows:
        if not isinstance(ticker, dict):
            continue
        price = _to_price(ticker.get("lastPrice"))
        symbol = ticker.get("symbol")
        if price is not None and symbol:
            prices[str(symbol)] = price
    return prices


def parse_coinbase_spot(payload: Any) -> float:
    try:
        amount = payload["data"]["amount"]
    except (KeyError, TypeError) as exc:
        raise PriceSourceError("Coinbase payload has no data.amount") from exc
    price = _to_price(amount)
    if price is None:
        raise PriceSourceError(f"Coinbase amount is not numeric: {amount!r}")
    return price


def parse_kraken_ticker(payload: Any) -> float:
    if not isinstance(payload, dict):
        raise PriceSourceError("Kraken payload is not an object")
    errors = payload.get("error")
    if errors:
        raise PriceSourceError(f"Kraken error: {errors}")

    result = payload.get("result")
    if not isinstance(result, dict) or not result:
        raise PriceSourceError("Kraken payload has no result")

    # The result key is Kraken's own pair name (e.g. XXBTZUSD), so take the first entry.
    data = next(iter(result.values()))
    last_trade = data.get("c") if isinstance(data, dict) else None
    if not isinstance(last_trade, (list, tuple)) or not last_trade:
        raise PriceSourceError("Kraken result has no last trade field")
    price = _to_price(last_trade[0])
    if price is None:
        raise PriceSourceError(f"Kraken price is not numeric: {last_trade[0]!r}")
    return price


class PriceSource(ABC):
    """An exchange that can produce a PriceSnapshot for the monitored symbols."""

    name = "base"

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    @abstractmethod
    async def fetch_snapshot(self, symbols: Iterable[str]) -> PriceSnapshot:
        ...


class SingleSymbolSource(PriceSource):
    """Source without a bulk endpoint; one request per symbol, failures skipped."""

    @abstractmethod
    async def fetch_one(self, symbol: str) -> float:
        ...

    async def fetch_snapshot(self, symbols: Iterable[str]) -> PriceSnapshot:
        prices: PriceSnapshot = {}
        for symbol in symbols:
            try:
                price = await self.fetch_one(symbol)
            except PriceSourceError:
                continue
            # USD quote stored under the USDT key.
            prices[symbol_key(symbol)] = price

        if not prices:
            raise PriceSourceError(f"{self.name} returned no prices")
        return prices


class BinanceSource(PriceSource):
    name = "Binance"

    def __init__(self, client: httpx.AsyncClient, url: str) -> None:
        super().__init__(client)
        self.url = url

    async def fetch_snapshot(self, symbols: Iterable[str]) -> PriceSnapshot:
        return parse_binance_tickers(await get_json(self._client, self.url))


class BybitSource(PriceSource):
    name = "Bybit"

    def __init__(self, client: httpx.AsyncClient, url: str) -> None:
        super().__init__(client)
        self.url = url

    async def fetch_snapshot(self, symbols: Iterable[str]) -> PriceSnapshot:
        return parse_bybit_tickers(await get_json(self._client, self.url))


class CoinbaseSource(SingleSymbolSource):
    name = "Coinbase"

    def __init__(self, client: httpx.AsyncClient, url_template: str) -> None:
        super().__init__(client)
        self.url_template = url_template

    async def fetch_one(self, symbol: str) -> float:
        url = self.url_template.format(symbol=symbol)
        return parse_coinbase_spot(await get_json(self._client, url))


class KrakenSource(SingleSymbolSource):
    name = "Kraken"

    def __init__(
        self,
        client: httpx.AsyncClient,
        url_template: str,
        pairs: dict[str, str] | None = None,
    ) -> None:
        super().__init__(client)
        self.url_template = url_template
        self.pairs = pairs if pairs is not None else dict(KRAKEN_PAIRS)

    async def fetch_one(self, symbol: str) -> float:
        pair = self.pairs.get(symbol)
        if pair is None:
            raise PriceSourceError(f"Kraken has no pair mapping for {symbol}")
        url = self.url_template.format(pair=pair)
        return parse_kraken_ticker(await get_json(self._client, url))
