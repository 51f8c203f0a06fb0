"""Stream liveness tracking and per-attempt deadlines."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import time
from typing import Callable

LOGGER = logging.getLogger("prototype_builder.activity_monitor")


@dataclass(frozen=True)
class TimeoutConfig:
    """Deadline policy in milliseconds."""

    initial_ms: int = 120_000
    per_retry_ms: int = 60_000
    maximum_ms: int = 600_000
    activity_window_ms: int = 30_000


DEFAULT_TIMEOUT_CONFIG = TimeoutConfig()


class ActivityMonitor:
    """Predicate over stream liveness; cancellation is left to the caller."""

    def __init__(
        self,
        config: TimeoutConfig = DEFAULT_TIMEOUT_CONFIG,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self._clock = clock
        self._last_activity = clock()

    def record_activity(self) -> None:
        self._last_activity = self._clock()

    def inactive_ms(self) -> float:
        return (self._clock() - self._last_activity) * 1000.0

    def should_timeout(self) -> bool:
        inactive = self.inactive_ms()
        stalled = inactive > self.config.activity_window_ms
        if stalled:
            LOGGER.warning(
                "stream_stall inactive_ms=%d activity_window_ms=%d",
                int(inactive),
                self.config.activity_window_ms,
            )
        return stalled

    def timeout_for(self, retry_attempt: int = 0) -> int:
        """Overall deadline for an attempt, growing per retry up to the maximum."""
        timeout = self.config.initial_ms + retry_attempt * self.config.per_retry_ms
        return min(timeout, self.config.maximum_ms)

    def seconds_since_activity(self) -> int:
        return int(self.inactive_ms() // 1000)

    def reset(self) -> None:
        self._last_activity = self._clock()
