"""Retry decisions and exponential backoff for one logical generation request."""

from __future__ import annotations

from dataclasses import dataclass
import logging

from prototype_builder.error_messages import RETRYABLE_KINDS, error_text, structured_kind

LOGGER = logging.getLogger("prototype_builder.retry")

DEFAULT_RETRYABLE_SIGNATURES = (
    "timeout",
    "econnreset",
    "connection reset",
    "rate limit",
    "network",
    "enotfound",
    "etimedout",
    "timed out",
    "parse",
    "unterminated",
    "truncated",
    "incomplete",
)


@dataclass(frozen=True)
class RetryConfig:
    """Retry policy: attempt cap and backoff bounds in milliseconds."""

    max_attempts: int = 3
    base_delay_ms: int = 2000
    max_delay_ms: int = 16000
    retryable_signatures: tuple[str, ...] = DEFAULT_RETRYABLE_SIGNATURES

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1.")
        if self.base_delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("Retry delays must be >= 0.")


DEFAULT_RETRY_CONFIG = RetryConfig()


class RetryController:
    """Stateful retry bookkeeping for one logical request.

    ``attempt`` counts retries already performed (0 during the first attempt), so
    ``attempt_number()`` is the 1-based number of the attempt in progress.
    """

    def __init__(self, config: RetryConfig = DEFAULT_RETRY_CONFIG) -> None:
        self.config = config
        self.attempt = 0
        self._signatures = tuple(signature.lower() for signature in config.retryable_signatures)

    def is_retryable(self, error: BaseException) -> bool:
        """Return whether an error is transient, ignoring the attempt budget."""
        tagged = structured_kind(error)
        if tagged is not None:
            return tagged in RETRYABLE_KINDS
        lowered = error_text(error).lower()
        return any(signature in lowered for signature in self._signatures)

    def should_retry(self, error: BaseException) -> bool:
        if self.attempt_number() >= self.config.max_attempts:
            LOGGER.info("retry_decision retry=false reason=max_attempts attempt=%d", self.attempt_number())
            return False
        retryable = self.is_retryable(error)
        if not retryable:
            LOGGER.info("retry_decision retry=false reason=not_retryable error=%s", error_text(error))
        return retryable

    def delay_ms(self) -> int:
        """Backoff for the retry about to happen: base * 2**attempt, capped."""
        delay = self.config.base_delay_ms * (2**self.attempt)
        return min(delay, self.config.max_delay_ms)

    def increment_attempt(self) -> None:
        self.attempt += 1
        LOGGER.info("retry_increment attempt=%d", self.attempt_number())

    def attempt_number(self) -> int:
        return self.attempt + 1

    def total_attempts(self) -> int:
        return self.config.max_attempts

    def reset(self) -> None:
        self.attempt = 0
