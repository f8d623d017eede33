import asyncio

import httpx
import pytest

from crypto_price_monitor.sources import (
    BinanceSource,
    BybitSource,
    CoinbaseSource,
    KrakenSource,
    PriceSource,
    PriceSourceError,
    SingleSymbolSource,
    parse_binance_tickers,
    parse_bybit_tickers,
    parse_kraken_ticker,
)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_parse_binance_tickers_drops_unparsable_prices() -> None:
    payload = [
        {"symbol": "BTCUSDT", "price": "65000.10"},
        {"symbol": "ETHUSDT", "price": "not-a-number"},
        {"symbol": "SOLUSDT", "price": None},
    ]
    assert parse_binance_tickers(payload) == {"BTCUSDT": 65000.10}


def test_parse_bybit_tickers_drops_unparsable_prices() -> None:
    payload = {
        "retCode": 0,
        "retMsg": "OK",
        "result": {
            "list": [
                {"symbol": "BTCUSDT", "lastPrice": "64000"},
                {"symbol": "ETHUSDT", "lastPrice": ""},
            ]
        },
    }
    assert parse_bybit_tickers(payload) == {"BTCUSDT": 64000.0}


def test_parse_bybit_tickers_rejects_error_code() -> None:
    with pytest.raises(PriceSourceError):
        parse_bybit_tickers({"retCode": 10001, "retMsg": "bad request", "result": {}})


def test_parse_kraken_ticker_uses_last_trade_price() -> None:
    payload = {"error": [], "result": {"XXBTZUSD": {"c": ["65100.5", "0.01"]}}}
    assert parse_kraken_ticker(payload) == 65100.5


def test_binance_source_http_error_is_raised() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="unavailable")

    async def run() -> None:
        async with _client(handler) as client:
            with pytest.raises(PriceSourceError):
                await BinanceSource(client, "https://binance.test/ticker").fetch_snapshot(["BTC"])

    asyncio.run(run())


def test_bybit_source_fetches_bulk_snapshot() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"retCode": 0, "result": {"list": [{"symbol": "BTCUSDT", "lastPrice": "65000"}]}},
        )

    async def run() -> dict:
        async with _client(handler) as client:
            return await BybitSource(client, "https://bybit.test/tickers").fetch_snapshot(["BTC"])

    assert asyncio.run(run()) == {"BTCUSDT": 65000.0}


def test_coinbase_source_skips_failed_symbols() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if "ETH" in request.url.path:
            return httpx.Response(404, json={"errors": []})
        return httpx.Response(200, json={"data": {"amount": "65000.5", "currency": "USD"}})

    async def run() -> dict:
        async with _client(handler) as client:
            source = CoinbaseSource(client, "https://coinbase.test/v2/prices/{symbol}-USD/spot")
            return await source.fetch_snapshot(["BTC", "ETH"])

    assert asyncio.run(run()) == {"BTCUSDT": 65000.5}


def test_coinbase_source_all_failed_is_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    async def run() -> None:
        async with _client(handler) as client:
            source = CoinbaseSource(client, "https://coinbase.test/{symbol}")
            with pytest.raises(PriceSourceError):
                await source.fetch_snapshot(["BTC"])

    asyncio.run(run())


def test_kraken_source_skips_unmapped_symbols() -> None:
    requested: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        pair = request.url.params["pair"]
        requested.append(pair)
        return httpx.Response(200, json={"error": [], "result": {pair: {"c": ["3000", "1"]}}})

    async def run() -> dict:
        async with _client(handler) as client:
            source = KrakenSource(client, "https://kraken.test/Ticker?pair={pair}")
            return await source.fetch_snapshot(["ETH", "DOGE"])

    assert asyncio.run(run()) == {"ETHUSDT": 3000.0}
    assert requested == ["ETHUSD"]


def test_parse_binance_tickers_drops_non_finite_prices() -> None:
    payload = [
        {"symbol": "BTCUSDT", "price": "65000"},
        {"symbol": "ETHUSDT", "price": "NaN"},
        {"symbol": "SOLUSDT", "price": "inf"},
    ]
    assert parse_binance_tickers(payload) == {"BTCUSDT": 65000.0}


@pytest.mark.parametrize("result", ["maintenance", 7, None, ["BTCUSDT"]])
def test_parse_bybit_tickers_rejects_non_object_result(result) -> None:
    with pytest.raises(PriceSourceError):
        parse_bybit_tickers({"retCode": 0, "retMsg": "OK", "result": result})


@pytest.mark.parametrize("last_trade", ["65000", 65000, [], None])
def test_parse_kraken_ticker_rejects_malformed_last_trade(last_trade) -> None:
    with pytest.raises(PriceSourceError):
        parse_kraken_ticker({"error": [], "result": {"XXBTZUSD": {"c": last_trade}}})


def test_base_sources_cannot_be_instantiated() -> None:
    with pytest.raises(TypeError):
        PriceSource(None)
    with pytest.raises(TypeError):
        SingleSymbolSource(None)


def test_coinbase_source_skips_non_numeric_amount() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        amount = "n/a" if "ETH" in request.url.path else "65000"
        return httpx.Response(200, json={"data": {"amount": amount, "currency": "USD"}})

    async def run() -> dict:
        async with _client(handler) as client:
            source = CoinbaseSource(client, "https://coinbase.test/v2/prices/{symbol}-USD/spot")
            return await source.fetch_snapshot(["BTC", "ETH"])

    assert asyncio.run(run()) == {"BTCUSDT": 65000.0}


def test_kraken_source_skips_non_numeric_last_trade() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        pair = request.url.params["pair"]
        price = "NaN" if pair == "XBTUSD" else "3000"
        return httpx.Response(200, json={"error": [], "result": {pair: {"c": [price, "1"]}}})

    async def run() -> dict:
        async with _client(handler) as client:
            source = KrakenSource(client, "https://kraken.test/Ticker?pair={pair}")
            return await source.fetch_snapshot(["BTC", "ETH"])

    assert asyncio.run(run()) == {"ETHUSDT": 3000.0}
