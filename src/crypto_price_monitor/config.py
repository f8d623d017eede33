from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any

from dotenv import load_dotenv

from .types import ChangeAlertRule, PriceAlertRule

_COMPARISONS = {
    "<": "<",
    "below": "<",
    ">": ">",
    "above": ">",
}
_PERIODS = ("daily", "15m")


@dataclass(frozen=True)
class Settings:
    ntfy_topic: str
    ntfy_url: str = "https://ntfy.sh"
    binance_url: str = "https://api.binance.com/api/v3/ticker/price"
    binance_kline_url: str = "https://api.binance.com/api/v3/klines"
    bybit_url: str = "https://api.bybit.com/v5/market/tickers?category=spot"
    bybit_kline_url: str = "https://api.bybit.com/v5/market/kline"
    coinbase_url_template: str = "https://api.coinbase.com/v2/prices/{symbol}-USD/spot"
    kraken_url_template: str = "https://api.kraken.com/0/public/Ticker?pair={pair}"
    check_interval_seconds: int = 60
    alert_cooldown_minutes: int = 30
    request_timeout_seconds: float = 10.0
    health_log_interval_seconds: int = 600
    log_price_summary: bool = True
    log_level: str = "INFO"
    price_alert_rules: tuple[PriceAlertRule, ...] = field(default_factory=tuple)
    change_alert_rules: tuple[ChangeAlertRule, ...] = field(default_factory=tuple)

    @property
    def alert_cooldown_seconds(self) -> float:
        return self.alert_cooldown_minutes * 60.0

    def monitored_symbols(self) -> list[str]:
        """Base symbols referenced by any rule, in first-seen order."""
        symbols = [r.symbol for r in self.price_alert_rules]
        symbols.extend(r.symbol for r in self.change_alert_rules)
        return list(dict.fromkeys(symbols))


def _required(name: str) -> str:
    value = os.getenv(name, "").strip()
    if not value:
        raise ValueError(f"Missing required environment variable: {name}")
    return value


def _optional_str(name: str, default: str) -> str:
    return os.getenv(name, default).strip() or default


def _optional_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _optional_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


def _optional_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _optional_json_list(name: str) -> list[Any]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return []
    parsed = json.loads(raw)
    if not isinstance(parsed, list):
        raise ValueError(f"{name} must decode to a JSON list")
    return parsed


def parse_price_rule(raw: dict[str, Any]) -> PriceAlertRule:
    if not isinstance(raw, dict):
        raise ValueError(f"Price rule must be a JSON object: {raw!r}")
    comparison = _COMPARISONS.get(str(raw.get("comparison", "")).strip().lower())
    if comparison is None:
        raise ValueError(f"Unknown comparison in price rule: {raw!r}")
    return PriceAlertRule(
        symbol=str(raw["symbol"]).strip().upper(),
        threshold=float(raw["threshold"]),
        comparison=comparison,
    )


def parse_change_rule(raw: dict[str, Any]) -> ChangeAlertRule:
    if not isinstance(raw, dict):
        raise ValueError(f"Change rule must be a JSON object: {raw!r}")
    period = str(raw.get("period", "")).strip()
    if period not in _PERIODS:
        raise ValueError(f"Unknown period in change rule: {raw!r}")
    return ChangeAlertRule(
        symbol=str(raw["symbol"]).strip().upper(),
        change_percent=float(raw["change_percent"]),
        period=period,
    )


def load_settings() -> Settings:
    load_dotenv()
    defaults = Settings(ntfy_topic="")
    return Settings(
        ntfy_topic=_required("NTFY_TOPIC"),
        ntfy_url=_optional_str("NTFY_URL", defaults.ntfy_url),
        binance_url=_optional_str("BINANCE_URL", defaults.binance_url),
        binance_kline_url=_optional_str("BINANCE_KLINE_URL", defaults.binance_kline_url),
        bybit_url=_optional_str("BYBIT_URL", defaults.bybit_url),
        bybit_kline_url=_optional_str("BYBIT_KLINE_URL", defaults.bybit_kline_url),
        coinbase_url_template=_optional_str("COINBASE_URL_TEMPLATE", defaults.coinbase_url_template),
        kraken_url_template=_optional_str("KRAKEN_URL_TEMPLATE", defaults.kraken_url_template),
        check_interval_seconds=_optional_int("CHECK_INTERVAL_SECONDS", 60),
        alert_cooldown_minutes=_optional_int("ALERT_COOLDOWN_MINUTES", 30),
        request_timeout_seconds=_optional_float("REQUEST_TIMEOUT_SECONDS", 10.0),
        health_log_interval_seconds=_optional_int("HEALTH_LOG_INTERVAL_SECONDS", 600),
        log_price_summary=_optional_bool("LOG_PRICE_SUMMARY", True),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
        price_alert_rules=tuple(
            parse_price_rule(r) for r in _optional_json_list("PRICE_ALERT_RULES")
        ),
        change_alert_rules=tuple(
            parse_change_rule(r) for r in _optional_json_list("CHANGE_ALERT_RULES")
        ),
    )
