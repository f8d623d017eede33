from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

PriceSnapshot = dict[str, float]

Comparison = Literal["<", ">"]
Period = Literal["daily", "15m"]
AlertKind = Literal["price", "change"]

QUOTE = "USDT"


def symbol_key(symbol: str) -> str:
    return f"{symbol}{QUOTE}"


@dataclass(frozen=True)
class PriceAlertRule:
    symbol: str
    threshold: float
    comparison: Comparison


@dataclass(frozen=True)
class ChangeAlertRule:
    symbol: str
    change_percent: float
    period: Period


@dataclass(frozen=True)
class AlertEvent:
    symbol: str
    kind: AlertKind
    current_price: float
    message: str


@dataclass(frozen=True)
class Candle:
    open_time: int
    open: float
    high: float
    low: float
    close: float
    volume: float
