from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass

import httpx

from .aggregator import PriceAggregator
from .config import Settings
from .cooldown import BatchCooldown, CooldownTracker
from .evaluator import RuleEvaluator
from .formatting import (
    describe_change_rule,
    describe_price_rule,
    format_alert_body,
    format_price_summary_entry,
)
from .history import (
    BinanceKlineSource,
    BybitKlineSource,
    HistoricalPriceError,
    HistoricalPriceResolver,
)
from .ntfy_notifier import NtfyNotifier
from .sources import BinanceSource, BybitSource, CoinbaseSource, KrakenSource
from .types import AlertEvent, symbol_key

logger = logging.getLogger(__name__)


@dataclass
class Metrics:
    ticks: int = 0
    ticks_without_data: int = 0
    price_alerts_triggered: int = 0
    change_alerts_triggered: int = 0
    alerts_sent: int = 0
    alerts_failed: int = 0


class MonitorService:
    """Holds the monitor context (settings, sources, cooldown state) and drives ticks."""

    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self.metrics = Metrics()
        self.symbols = settings.monitored_symbols()
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=settings.request_timeout_seconds)

        self.aggregator = PriceAggregator(
            [
                BinanceSource(self.client, settings.binance_url),
                BybitSource(self.client, settings.bybit_url),
                CoinbaseSource(self.client, settings.coinbase_url_template),
                KrakenSource(self.client, settings.kraken_url_template),
            ]
        )
        self.resolver = HistoricalPriceResolver(
            [
                BinanceKlineSource(self.client, settings.binance_kline_url),
                BybitKlineSource(self.client, settings.bybit_kline_url),
            ]
        )
        self.change_cooldowns = CooldownTracker(settings.alert_cooldown_seconds, clock=clock)
        self.price_gate = BatchCooldown(settings.alert_cooldown_seconds, clock=clock)
        self.evaluator = RuleEvaluator(
            settings.price_alert_rules,
            settings.change_alert_rules,
            self.resolver,
            self.change_cooldowns,
        )
        self.notifier = NtfyNotifier(settings.ntfy_url, settings.ntfy_topic, self.client)

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def run(self) -> None:
        self._log_startup()
        health_task = asyncio.create_task(self._health_loop())
        interval = self.settings.check_interval_seconds
        try:
            while True:
                started = time.monotonic()
                try:
                    await self.run_tick()
                except Exception:
                    logger.exception("Monitoring tick failed")
                elapsed = time.monotonic() - started
                await asyncio.sleep(max(0.0, interval - elapsed))
        finally:
            health_task.cancel()
            await asyncio.gather(health_task, return_exceptions=True)
            await self.close()

    async def run_tick(self) -> None:
        self.metrics.ticks += 1

        prices, source = await self.aggregator.get_all_prices(self.symbols)
        if prices is None:
            self.metrics.ticks_without_data += 1
            return

        price_alerts = self.evaluator.check_price_alerts(prices)
        change_alerts = await self.evaluator.check_change_alerts(prices)
        self.metrics.price_alerts_triggered += len(price_alerts)
        self.metrics.change_alerts_triggered += len(change_alerts)

        if price_alerts:
            if self.price_gate.ready():
                if await self._send(price_alerts, "price"):
                    self.price_gate.mark_sent()
            else:
                logger.info(
                    "Price alerts in cooldown, %.0fs remaining", self.price_gate.remaining()
                )

        # Change alerts carry their own per-key cooldown, already recorded.
        if change_alerts:
            await self._send(change_alerts, "change")

        if self.settings.log_price_summary:
            await self._log_price_summary(prices, source)

    async def _send(self, alerts: Sequence[AlertEvent], kind: str) -> bool:
        try:
            await self.notifier.send(format_alert_body(alerts))
        except Exception as exc:
            self.metrics.alerts_failed += len(alerts)
            logger.exception("Failed to send %d %s alert(s): %s", len(alerts), kind, exc)
            return False

        self.metrics.alerts_sent += len(alerts)
        logger.info("Sent %d %s alert(s)", len(alerts), kind)
        return True

    async def _log_price_summary(self, prices: Mapping[str, float], source: str) -> None:
        entries: list[str] = []
        for symbol in self.symbols:
            price = prices.get(symbol_key(symbol))
            if price is None:
                continue
            daily_open = await self._historical_or_none(symbol, "daily")
            price_15m = await self._historical_or_none(symbol, "15m")
            entries.append(format_price_summary_entry(symbol, price, daily_open, price_15m))
        if entries:
            logger.info("[%s] %s", source, " | ".join(entries))

    async def _historical_or_none(self, symbol: str, period: str) -> float | None:
        try:
            return await self.resolver.get_historical_price(symbol, period)
        except HistoricalPriceError:
            return None

    def _log_startup(self) -> None:
        logger.info(
            "Starting crypto price monitor: topic=%s interval=%ss cooldown=%smin",
            self.settings.ntfy_topic,
            self.settings.check_interval_seconds,
            self.settings.alert_cooldown_minutes,
        )
        for rule in self.settings.price_alert_rules:
            logger.info("Price rule: %s", describe_price_rule(rule))
        for rule in self.settings.change_alert_rules:
            logger.info("Change rule: %s", describe_change_rule(rule))

    async def _health_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.health_log_interval_seconds)
            logger.info(
                (
                    "health ticks=%d no_data=%d price_triggered=%d change_triggered=%d "
                    "alerts_sent=%d alerts_failed=%d"
                ),
                self.metrics.ticks,
                self.metrics.ticks_without_data,
                self.metrics.price_alerts_triggered,
                self.metrics.change_alerts_triggered,
                self.metrics.alerts_sent,
                self.metrics.alerts_failed,
            )
