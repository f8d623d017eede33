from __future__ import annotations

import time
from collections.abc import Callable


class CooldownTracker:
    """Per-key cooldown for change alerts. State lives in memory only."""

    def __init__(self, cooldown_seconds: float, clock: Callable[[], float] = time.time) -> None:
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._last_fired: dict[str, float] = {}

    def try_acquire(self, key: str) -> bool:
        # Check and record in one step, with no await in between, so two
        # coroutines evaluating the same key cannot both pass.
        now = self._clock()
        last = self._last_fired.get(key)
        if last is not None and now - last < self.cooldown_seconds:
            return False
        self._last_fired[key] = now
        return True

    def remaining(self, key: str) -> float:
        last = self._last_fired.get(key)
        if last is None:
            return 0.0
        return max(0.0, self.cooldown_seconds - (self._clock() - last))

    def reset(self) -> None:
        self._last_fired.clear()


class BatchCooldown:
    """Single shared gate for price alerts: one batch per cooldown window."""

    def __init__(self, cooldown_seconds: float, clock: Callable[[], float] = time.time) -> None:
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._last_sent: float | None = None

    def ready(self) -> bool:
        if self._last_sent is None:
            return True
        return self._clock() - self._last_sent > self.cooldown_seconds

    def mark_sent(self) -> None:
        self._last_sent = self._clock()

    def remaining(self) -> float:
        if self._last_sent is None:
            return 0.0
        return max(0.0, self.cooldown_seconds - (self._clock() - self._last_sent))
