"""Stream activity tracking and deadline tests."""

from __future__ import annotations

from prototype_builder.activity_monitor import ActivityMonitor, TimeoutConfig


class FakeClock:
    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_should_timeout_only_after_window_passes() -> None:
    clock = FakeClock()
    monitor = ActivityMonitor(TimeoutConfig(activity_window_ms=30_000), clock=clock)

    clock.now += 30.0
    assert monitor.should_timeout() is False

    clock.now += 0.5
    assert monitor.should_timeout() is True
    assert monitor.seconds_since_activity() == 30


def test_record_activity_resets_inactivity() -> None:
    clock = FakeClock()
    monitor = ActivityMonitor(TimeoutConfig(activity_window_ms=1_000), clock=clock)

    clock.now += 0.5
    monitor.record_activity()
    clock.now += 0.5

    assert monitor.inactive_ms() == 500.0
    assert monitor.should_timeout() is False


def test_timeout_for_grows_per_retry_and_caps() -> None:
    monitor = ActivityMonitor(TimeoutConfig(initial_ms=120_000, per_retry_ms=60_000, maximum_ms=600_000))

    assert monitor.timeout_for(0) == 120_000
    assert monitor.timeout_for(1) == 180_000
    assert monitor.timeout_for(2) == 240_000
    assert monitor.timeout_for(9) == 600_000


def test_reset_starts_a_fresh_window() -> None:
    clock = FakeClock()
    monitor = ActivityMonitor(TimeoutConfig(activity_window_ms=10), clock=clock)
    clock.now += 5.0

    monitor.reset()

    assert monitor.inactive_ms() == 0.0
