"""Tolerant parsing of LLM code payloads, including recovery of truncated JSON."""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
import re
from typing import Any

from prototype_builder.models import CODE_FIELDS, CodePayload

LOGGER = logging.getLogger("prototype_builder.json_recovery")

PARTIAL_EXPLANATION = (
    "Recovered a partial response: generation was cut off before it finished, "
    "so some code may be missing. Regenerate for a complete version."
)
_FENCE_OPEN_PATTERN = re.compile(r"^```[\w+-]*[ \t]*\n?")
_FENCE_CLOSE_PATTERN = re.compile(r"\n?```$")
_CLOSERS = {"{": "}", "[": "]"}
# A \u escape cut before its four hex digits.
_PARTIAL_UNICODE_ESCAPE_PATTERN = re.compile(r"\\u[0-9a-fA-F]{0,3}")
# What can follow "{" or "," before a member has a value: nothing, a cut key, or a key and colon.
_INCOMPLETE_MEMBER_PATTERN = re.compile(r'\s*(?:"(?:[^"\\]|\\.)*\\?|"(?:[^"\\]|\\.)*"\s*:?)?\s*')
_TAIL_CHARS = 200


@dataclass(frozen=True)
class ParseResult:
    """Outcome of one parse attempt.

    ``is_partial`` means the input had to be completed before it decoded, so the payload
    is a best-effort reconstruction. ``success`` implies ``payload`` is a decoded object.
    """

    success: bool
    payload: dict[str, Any] | None = None
    is_partial: bool = False
    missing_fields: tuple[str, ...] = ()
    error: str | None = None


def strip_code_fence(text: str) -> str:
    """Remove one leading/trailing fenced code block marker, if present."""
    stripped = str(text or "").strip()
    if not stripped.startswith("```"):
        return stripped
    without_open = _FENCE_OPEN_PATTERN.sub("", stripped, count=1)
    return _FENCE_CLOSE_PATTERN.sub("", without_open, count=1).strip()


def first_object_end(text: str) -> int | None:
    """Return the index just past the first balanced top-level object, or None."""
    depth = 0
    in_string = False
    escaped = False
    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in "{[":
            depth += 1
        elif char in "}]":
            depth -= 1
            if depth == 0:
                return index + 1
    return None


def complete_truncated_json(text: str) -> tuple[str, bool]:
    """Close an unterminated string and any open objects/arrays.

    A trailing object member that never got its value (a cut key, or a key and colon)
    is dropped back to the last complete member. Returns the completed text and whether
    anything was appended or trimmed.
    """
    in_string = False
    escaped = False
    escape_start: int | None = None
    open_stack: list[str] = []
    # Index of the "{", "[" or "," that opened the current member slot, per open container.
    slot_starts: list[int] = []
    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
                escape_start = index
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in _CLOSERS:
            open_stack.append(_CLOSERS[char])
            slot_starts.append(index)
        elif char in "}]" and open_stack and open_stack[-1] == char:
            open_stack.pop()
            slot_starts.pop()
        elif char == "," and slot_starts:
            slot_starts[-1] = index

    completed = text
    modified = False
    if open_stack and open_stack[-1] == "}":
        slot_start = slot_starts[-1]
        if _INCOMPLETE_MEMBER_PATTERN.fullmatch(text, slot_start + 1):
            cut = slot_start if text[slot_start] == "," else slot_start + 1
            if cut < len(text):
                completed = text[:cut]
                modified = True
                in_string = False
                LOGGER.debug("json_completion dropped_incomplete_member=true")

    if in_string:
        if escaped:
            # A dangling backslash would escape the closing quote.
            completed = completed[:-1]
        elif escape_start is not None and _PARTIAL_UNICODE_ESCAPE_PATTERN.fullmatch(completed, escape_start):
            completed = completed[:escape_start]
        completed += '"'
        modified = True
        LOGGER.debug("json_completion added_closing_quote=true")
    elif open_stack:
        trimmed = completed.rstrip()
        if trimmed.endswith(","):
            completed = trimmed[:-1]
            modified = True

    if open_stack:
        completed += "".join(reversed(open_stack))
        modified = True
        LOGGER.debug("json_completion added_closers=%d", len(open_stack))
    return completed, modified


def missing_required_fields(data: dict[str, Any]) -> tuple[str, ...]:
    """Return required code fields that are absent or null in a decoded payload."""
    return tuple(field_name for field_name in CODE_FIELDS if data.get(field_name) is None)


def _tail(text: str) -> str:
    if len(text) <= _TAIL_CHARS:
        return text
    return f"...{text[-_TAIL_CHARS:]}"


def parse_with_recovery(raw_text: str) -> ParseResult:
    """Parse a raw LLM response into a payload dict, completing truncated JSON if needed."""
    clean = strip_code_fence(raw_text)
    if not clean.startswith("{"):
        preview = clean[:80]
        return ParseResult(
            success=False,
            error=f"Content does not start with {{ (got {preview!r}).",
        )

    object_end = first_object_end(clean)
    candidate = clean[:object_end] if object_end is not None else clean

    try:
        decoded = json.loads(candidate)
    except json.JSONDecodeError as exc:
        LOGGER.debug("json_parse direct_failed error=%s", exc.msg)
    else:
        if isinstance(decoded, dict):
            return ParseResult(
                success=True,
                payload=decoded,
                is_partial=False,
                missing_fields=missing_required_fields(decoded),
            )

    completed, was_modified = complete_truncated_json(candidate)
    if not was_modified:
        return ParseResult(
            success=False,
            error=f"Failed to parse JSON and nothing to complete. Tail: {_tail(candidate)!r}",
        )
    try:
        decoded = json.loads(completed)
    except json.JSONDecodeError as exc:
        return ParseResult(
            success=False,
            is_partial=True,
            error=(
                f"Failed to parse even after completion: {exc.msg} at line {exc.lineno}, "
                f"column {exc.colno}. Tail: {_tail(candidate)!r}"
            ),
        )
    if not isinstance(decoded, dict):
        return ParseResult(success=False, is_partial=True, error="Completed JSON is not an object.")

    missing = missing_required_fields(decoded)
    LOGGER.warning("json_parse recovered_truncated=true missing_fields=%s", ",".join(missing) or "none")
    return ParseResult(success=True, payload=decoded, is_partial=True, missing_fields=missing)


def _as_text(value: object) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def fill_missing_fields(result: ParseResult) -> CodePayload:
    """Build a CodePayload from a successful parse, defaulting anything missing.

    Code fields default to empty strings, a partial parse without an explanation gets a
    degraded-status explanation, and non-list suggestions become an empty tuple.
    """
    if not result.success or result.payload is None:
        raise ValueError("fill_missing_fields requires a successful ParseResult.")
    data = result.payload

    explanation = _as_text(data.get("explanation")).strip()
    if not explanation:
        explanation = PARTIAL_EXPLANATION if result.is_partial else "Code generated successfully."

    raw_suggestions = data.get("suggestions")
    suggestions: tuple[str, ...] = ()
    if isinstance(raw_suggestions, list):
        suggestions = tuple(_as_text(item) for item in raw_suggestions if _as_text(item).strip())

    return CodePayload(
        html=_as_text(data.get("html")),
        css=_as_text(data.get("css")),
        js=_as_text(data.get("js")),
        explanation=explanation,
        suggestions=suggestions,
    )
