from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from .cooldown import CooldownTracker
from .formatting import format_change_message, format_threshold_message, percent_change
from .history import HistoricalPriceError, HistoricalPriceResolver
from .types import AlertEvent, ChangeAlertRule, PriceAlertRule, symbol_key

logger = logging.getLogger(__name__)


def threshold_crossed(rule: PriceAlertRule, price: float) -> bool:
    if rule.comparison == "<":
        return price < rule.threshold
    if rule.comparison == ">":
        return price > rule.threshold
    return False


def check_price_alerts(
    prices: Mapping[str, float],
    rules: Sequence[PriceAlertRule],
) -> list[AlertEvent]:
    triggered: list[AlertEvent] = []
    for rule in rules:
        key = symbol_key(rule.symbol)
        price = prices.get(key)
        if price is None:
            logger.warning("Symbol %s not present in price snapshot", key)
            continue

        if threshold_crossed(rule, price):
            triggered.append(
                AlertEvent(
                    symbol=rule.symbol,
                    kind="price",
                    current_price=price,
                    message=format_threshold_message(rule),
                )
            )
    return triggered


def change_alert_key(rule: ChangeAlertRule) -> str:
    return f"{symbol_key(rule.symbol)}_{rule.period}"


class RuleEvaluator:
    """Evaluates change-percent rules against historical base prices.

    A firing is recorded in the cooldown tracker as soon as the rule passes,
    before any notification is attempted, so a failed send still consumes the
    cooldown window for that key.
    """

    def __init__(
        self,
        price_rules: Sequence[PriceAlertRule],
        change_rules: Sequence[ChangeAlertRule],
        resolver: HistoricalPriceResolver,
        cooldowns: CooldownTracker,
    ) -> None:
        self.price_rules = list(price_rules)
        self.change_rules = list(change_rules)
        self.resolver = resolver
        self.cooldowns = cooldowns

    def check_price_alerts(self, prices: Mapping[str, float]) -> list[AlertEvent]:
        return check_price_alerts(prices, self.price_rules)

    async def check_change_alerts(self, prices: Mapping[str, float]) -> list[AlertEvent]:
        triggered: list[AlertEvent] = []
        for rule in self.change_rules:
            alert = await self.evaluate_change_rule(rule, prices)
            if alert is not None:
                triggered.append(alert)
        return triggered

    async def evaluate_change_rule(
        self,
        rule: ChangeAlertRule,
        prices: Mapping[str, float],
    ) -> AlertEvent | None:
        current = prices.get(symbol_key(rule.symbol))
        if current is None:
            return None

        try:
            base = await self.resolver.get_historical_price(rule.symbol, rule.period)
        except HistoricalPriceError as exc:
            logger.warning("Historical price for %s %s unavailable: %s", rule.symbol, rule.period, exc)
            return None
        if base <= 0:
            return None

        change = percent_change(current, base)
        if not abs(change) >= rule.change_percent:
            return None

        key = change_alert_key(rule)
        if not self.cooldowns.try_acquire(key):
            logger.debug("Change alert %s in cooldown (%.0fs left)", key, self.cooldowns.remaining(key))
            return None

        return AlertEvent(
            symbol=rule.symbol,
            kind="change",
            current_price=current,
            message=format_change_message(rule.period, change, base, current),
        )
