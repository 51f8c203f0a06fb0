"""Error taxonomy and user-facing messages for failed generations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from prototype_builder.llm_client import LLMError

ErrorKind = Literal[
    "timeout",
    "rate_limit",
    "network",
    "parse",
    "token_limit",
    "auth",
    "service_unavailable",
    "unknown",
]

RETRYABLE_KINDS: frozenset[str] = frozenset(
    {"timeout", "network", "rate_limit", "parse", "service_unavailable"}
)

# Ordered: the first matching group wins for untagged errors.
_KEYWORD_GROUPS: tuple[tuple[ErrorKind, tuple[str, ...]], ...] = (
    ("timeout", ("timeout", "timed out", "econnreset", "etimedout", "connection reset")),
    ("rate_limit", ("rate limit", "429")),
    ("network", ("network", "enotfound", "econnrefused", "dns")),
    ("parse", ("parse", "json")),
    ("token_limit", ("token", "length", "too long", "truncated")),
    ("auth", ("401", "unauthorized", "api key", "api_key", "authentication")),
    ("service_unavailable", ("503", "service unavailable", "overloaded")),
)

_CATEGORY_KINDS: dict[str, ErrorKind] = {
    "auth": "auth",
    "rate_limit": "rate_limit",
    "network": "network",
    "timeout": "timeout",
    "server": "service_unavailable",
}

_SUGGESTION_GROUPS: tuple[tuple[tuple[str, ...], tuple[str, ...]], ...] = (
    (
        ("timeout", "timed out", "length", "too long"),
        (
            "Try requesting a simpler version",
            "Break your request into smaller parts",
            "Focus on core features first",
        ),
    ),
    (
        ("parse", "json"),
        ("Click \"Try Again\" to regenerate", "The partial code may still be usable"),
    ),
    (
        ("rate limit", "429"),
        ("Wait a moment and try again", "Consider upgrading your API plan"),
    ),
    (
        ("network", "enotfound"),
        ("Check your internet connection", "Verify the API endpoint is accessible"),
    ),
    (
        ("401", "api key", "api_key", "unauthorized"),
        ("Verify your API key in the .env file", "Check if your API key has expired"),
    ),
    (
        ("503", "service unavailable", "overloaded"),
        ("Wait a moment and try again",),
    ),
)

_KIND_SUGGESTIONS: dict[str, tuple[str, ...]] = {
    "timeout": _SUGGESTION_GROUPS[0][1],
    "token_limit": _SUGGESTION_GROUPS[0][1],
    "parse": _SUGGESTION_GROUPS[1][1],
    "rate_limit": _SUGGESTION_GROUPS[2][1],
    "network": _SUGGESTION_GROUPS[3][1],
    "auth": _SUGGESTION_GROUPS[4][1],
    "service_unavailable": _SUGGESTION_GROUPS[5][1],
}


class GenerationError(Exception):
    """Failure inside one generation attempt, tagged with a structured kind at its origin."""

    def __init__(self, message: str, kind: ErrorKind | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind


@dataclass(frozen=True)
class ErrorClassification:
    """User-facing view of one failure."""

    kind: ErrorKind
    user_message: str
    suggestions: tuple[str, ...]
    retryable: bool


def error_text(error: BaseException) -> str:
    text = str(error).strip()
    return text or error.__class__.__name__


def _kind_from_keywords(lowered: str) -> ErrorKind:
    for kind, keywords in _KEYWORD_GROUPS:
        if any(keyword in lowered for keyword in keywords):
            return kind
    return "unknown"


def structured_kind(error: BaseException) -> ErrorKind | None:
    """Return the kind tagged at the error's origin, if any."""
    if isinstance(error, GenerationError):
        return error.kind
    if isinstance(error, LLMError):
        return _CATEGORY_KINDS.get(error.category)
    return None


def error_kind(error: BaseException) -> ErrorKind:
    """Resolve an error's kind from its structured tag, falling back to keyword matching."""
    tagged = structured_kind(error)
    if tagged is not None:
        return tagged
    return _kind_from_keywords(error_text(error).lower())


def _message_for(
    kind: ErrorKind,
    raw_text: str,
    *,
    retry_attempt: int | None,
    max_attempts: int | None,
) -> str:
    if kind == "timeout":
        if retry_attempt and max_attempts and retry_attempt < max_attempts:
            return (
                "Generation took too long. Retrying with optimized settings "
                f"(attempt {retry_attempt + 1}/{max_attempts})..."
            )
        attempts_text = f" after {max_attempts} attempts" if max_attempts else ""
        return (
            f"Generation timed out{attempts_text}. Try simplifying your request "
            "or breaking it into smaller parts."
        )
    if kind == "rate_limit":
        return "API rate limit reached. Waiting before retry..."
    if kind == "network":
        return "Connection lost. Retrying..."
    if kind == "parse":
        return (
            "Received incomplete response. Using partial results. "
            "You may want to regenerate for complete code."
        )
    if kind == "token_limit":
        return "Response too large. Try requesting a simpler version or specific features."
    if kind == "auth":
        return "API authentication failed. Please check your API key configuration."
    if kind == "service_unavailable":
        return "LLM service temporarily unavailable. Retrying..."
    return f"Generation failed: {raw_text}. Please try again or simplify your request."


def _suggestions_for(kind: ErrorKind, lowered: str) -> tuple[str, ...]:
    suggestions: list[str] = []
    for keywords, group in _SUGGESTION_GROUPS:
        if any(keyword in lowered for keyword in keywords):
            for suggestion in group:
                if suggestion not in suggestions:
                    suggestions.append(suggestion)
    if not suggestions:
        suggestions.extend(_KIND_SUGGESTIONS.get(kind, ()))
    return tuple(suggestions)


def classify_error(
    error: BaseException,
    *,
    retry_attempt: int | None = None,
    max_attempts: int | None = None,
) -> ErrorClassification:
    """Map a failure to a kind, a templated user message, and remediation suggestions.

    ``retry_attempt`` is the number of retries already performed; together with
    ``max_attempts`` it selects interim versus final wording for timeouts.
    """
    raw_text = error_text(error)
    lowered = raw_text.lower()
    kind = error_kind(error)
    return ErrorClassification(
        kind=kind,
        user_message=_message_for(kind, raw_text, retry_attempt=retry_attempt, max_attempts=max_attempts),
        suggestions=_suggestions_for(kind, lowered),
        retryable=kind in RETRYABLE_KINDS,
    )
