"""Utilities for rendering human-readable code diffs between history states."""

from __future__ import annotations

import difflib

from prototype_builder.models import CODE_FIELDS


def unified_text_diff(
    before_text: str,
    after_text: str,
    *,
    before_label: str = "before",
    after_label: str = "after",
) -> str:
    """Return a unified diff string between two versions of one file."""
    before_lines = str(before_text).splitlines()
    after_lines = str(after_text).splitlines()
    diff_lines = difflib.unified_diff(
        before_lines,
        after_lines,
        fromfile=before_label,
        tofile=after_label,
        lineterm="",
    )
    return "\n".join(diff_lines)


def code_diff(before: dict[str, str], after: dict[str, str]) -> str:
    """Concatenate per-file diffs for the html/css/js fields that changed."""
    sections: list[str] = []
    for field_name in CODE_FIELDS:
        diff = unified_text_diff(
            before.get(field_name, ""),
            after.get(field_name, ""),
            before_label=f"{field_name} (before)",
            after_label=f"{field_name} (after)",
        )
        if diff:
            sections.append(diff)
    return "\n\n".join(sections)
