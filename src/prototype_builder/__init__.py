"""AI prototype builder core: generation orchestration, tolerant parsing, and undo/redo history."""

from __future__ import annotations

__all__ = [
    "config",
    "models",
    "llm_client",
    "json_recovery",
    "error_messages",
    "retry",
    "prompt_strategy",
    "activity_monitor",
    "prompts",
    "events",
    "orchestrator",
    "editor_state",
    "history",
    "diffs",
    "surgical_edit",
    "response_cache",
]
