from crypto_price_monitor.cooldown import BatchCooldown, CooldownTracker


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_tracker_rejects_within_window() -> None:
    clock = FakeClock()
    tracker = CooldownTracker(300, clock=clock)
    assert tracker.try_acquire("BTCUSDT_daily") is True
    clock.now += 299
    assert tracker.try_acquire("BTCUSDT_daily") is False
    assert tracker.remaining("BTCUSDT_daily") == 1


def test_tracker_allows_at_window_end() -> None:
    clock = FakeClock()
    tracker = CooldownTracker(300, clock=clock)
    tracker.try_acquire("BTCUSDT_daily")
    clock.now += 300
    assert tracker.try_acquire("BTCUSDT_daily") is True


def test_tracker_keys_are_independent() -> None:
    tracker = CooldownTracker(300, clock=FakeClock())
    assert tracker.try_acquire("BTCUSDT_daily") is True
    assert tracker.try_acquire("BTCUSDT_15m") is True
    tracker.reset()
    assert tracker.try_acquire("BTCUSDT_daily") is True


def test_batch_cooldown_opens_after_window() -> None:
    clock = FakeClock()
    gate = BatchCooldown(300, clock=clock)
    assert gate.ready() is True
    gate.mark_sent()
    clock.now += 300
    assert gate.ready() is False
    assert gate.remaining() == 0
    clock.now += 1
    assert gate.ready() is True
