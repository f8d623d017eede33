from __future__ import annotations

from collections.abc import Sequence

from .types import AlertEvent, ChangeAlertRule, PriceAlertRule

ALERT_TITLE = "Crypto price alert"

_PERIOD_LABELS = {
    "daily": "Daily",
    "15m": "15-minute",
}
_KIND_EMOJI = {
    "price": "💰",
    "change": "📈",
}


def period_label(period: str) -> str:
    return _PERIOD_LABELS.get(period, period)


def percent_change(current: float, base: float) -> float:
    return (current - base) / base * 100


def format_threshold_message(rule: PriceAlertRule) -> str:
    if rule.comparison == "<":
        return f"fell below ${rule.threshold:.2f}"
    return f"rose above ${rule.threshold:.2f}"


def format_change_message(period: str, change: float, base: float, current: float) -> str:
    direction = "up" if change > 0 else "down"
    return (
        f"{period_label(period)} {direction} {abs(change):.2f}% "
        f"(from ${base:.2f} to ${current:.2f})"
    )


def format_alert_line(alert: AlertEvent) -> str:
    emoji = _KIND_EMOJI.get(alert.kind, "🔔")
    return f"{emoji} {alert.symbol} {alert.message}\nCurrent: ${alert.current_price:.2f}"


def format_alert_body(alerts: Sequence[AlertEvent]) -> str:
    lines = "\n\n".join(format_alert_line(a) for a in alerts)
    return f"🚨 {ALERT_TITLE}\n\n{lines}"


def describe_price_rule(rule: PriceAlertRule) -> str:
    op = "below" if rule.comparison == "<" else "above"
    return f"{rule.symbol} {op} ${rule.threshold:.2f}"


def describe_change_rule(rule: ChangeAlertRule) -> str:
    return f"{rule.symbol} {period_label(rule.period).lower()} change beyond {rule.change_percent:.1f}%"


def trend_arrow(change: float) -> str:
    if change > 0:
        return "↑"
    if change < 0:
        return "↓"
    return "→"


def format_price_summary_entry(
    symbol: str,
    price: float,
    daily_open: float | None,
    price_15m: float | None,
) -> str:
    if not daily_open or daily_open <= 0:
        return f"{symbol}: ${price:.2f}"

    daily = percent_change(price, daily_open)
    entry = f"{symbol}: ${price:.2f} {trend_arrow(daily)}{daily:.2f}%(daily)"
    if price_15m and price_15m > 0:
        entry += f" {percent_change(price, price_15m):.2f}%(15m)"
    return entry
