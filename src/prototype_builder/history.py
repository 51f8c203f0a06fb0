"""Reversible edit commands and the bounded undo/redo engine that records them.

Commands are plain data. ``apply_command`` and ``revert_command`` interpret them against an
explicitly passed :class:`EditorDocument`; the engine owns the stacks and never edits the
document except through those two functions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import threading
import time
from typing import Literal, Union
import uuid

from prototype_builder.diffs import code_diff, unified_text_diff
from prototype_builder.editor_state import CodeField, CodeSnapshot, EditorDocument
from prototype_builder.models import CodePayload

LOGGER = logging.getLogger("prototype_builder.history")

CommandKind = Literal["visual-edit", "surgical-edit", "agent-generation", "component-add", "component-delete"]

DEFAULT_MAX_DEPTH = 50
DESCRIPTION_PROMPT_CHARS = 50

_KIND_LABELS: dict[str, str] = {
    "visual-edit": "Visual edit",
    "surgical-edit": "Surgical edit",
    "agent-generation": "Agent",
    "component-add": "Component added",
    "component-delete": "Component removed",
}


class HistoryError(Exception):
    """Raised for history navigation targets that do not exist."""


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class SnapshotCommand:
    """Whole-document edit captured as before/after snapshots."""

    kind: CommandKind
    description: str
    before: CodeSnapshot
    after: CodeSnapshot
    id: str = field(default_factory=_new_id)
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class FileEditCommand:
    """Single-file edit captured as before/after text."""

    file: CodeField
    before: str
    after: str
    description: str
    kind: CommandKind = "surgical-edit"
    id: str = field(default_factory=_new_id)
    timestamp: float = field(default_factory=time.time)


HistoryCommand = Union[SnapshotCommand, FileEditCommand]


def apply_command(command: HistoryCommand, document: EditorDocument) -> None:
    if isinstance(command, SnapshotCommand):
        document.apply_snapshot(command.after)
    elif isinstance(command, FileEditCommand):
        document.update_field(command.file, command.after)
    else:
        raise TypeError(f"Unsupported history command: {type(command).__name__}")


def revert_command(command: HistoryCommand, document: EditorDocument) -> None:
    if isinstance(command, SnapshotCommand):
        document.apply_snapshot(command.before)
    elif isinstance(command, FileEditCommand):
        document.update_field(command.file, command.before)
    else:
        raise TypeError(f"Unsupported history command: {type(command).__name__}")


def _prompt_excerpt(prompt: str) -> str:
    text = " ".join(str(prompt).split())
    if len(text) > DESCRIPTION_PROMPT_CHARS:
        return f"{text[:DESCRIPTION_PROMPT_CHARS]}..."
    return text


def make_visual_edit(before: CodeSnapshot, after: CodeSnapshot, description: str) -> SnapshotCommand:
    return SnapshotCommand(kind="visual-edit", description=description, before=before, after=after)


def make_surgical_edit(file: CodeField, before: str, after: str, description: str) -> FileEditCommand:
    return FileEditCommand(file=file, before=before, after=after, description=description)


def make_agent_generation(
    before: CodeSnapshot,
    after: CodeSnapshot,
    prompt: str,
    *,
    partial: bool = False,
) -> SnapshotCommand:
    """Agent output command; degraded payloads say so in the description."""
    prefix = "Generated (partial)" if partial else "Generated"
    return SnapshotCommand(
        kind="agent-generation",
        description=f"{prefix}: {_prompt_excerpt(prompt)}",
        before=before,
        after=after,
    )


def make_component_add(before: CodeSnapshot, after: CodeSnapshot, component_name: str) -> SnapshotCommand:
    return SnapshotCommand(
        kind="component-add",
        description=f"Added component: {component_name}",
        before=before,
        after=after,
    )


def make_component_delete(before: CodeSnapshot, after: CodeSnapshot, component_name: str) -> SnapshotCommand:
    return SnapshotCommand(
        kind="component-delete",
        description=f"Removed component: {component_name}",
        before=before,
        after=after,
    )


class HistoryEngine:
    """Bounded undo/redo stacks with single-writer access.

    ``add_command`` records an edit the caller has already applied; ``undo`` and ``redo``
    move one command between the stacks after reverting or re-applying it. When
    ``apply``/``revert`` fails the document is restored and both stacks stay as they were.
    """

    def __init__(self, document: EditorDocument, *, max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        if max_depth < 1:
            raise ValueError("max_depth must be >= 1.")
        self.document = document
        self.max_depth = max_depth
        self._undo: list[HistoryCommand] = []
        self._redo: list[HistoryCommand] = []
        self._lock = threading.RLock()

    def add_command(self, command: HistoryCommand) -> None:
        with self._lock:
            self._undo.append(command)
            if len(self._undo) > self.max_depth:
                evicted = self._undo.pop(0)
                LOGGER.info("history_evicted id=%s kind=%s", evicted.id, evicted.kind)
            self._redo.clear()
            LOGGER.info(
                "history_add kind=%s undo=%d description=%s",
                command.kind,
                len(self._undo),
                command.description,
            )

    def undo(self) -> HistoryCommand | None:
        with self._lock:
            if not self._undo:
                LOGGER.warning("history_undo_empty")
                return None
            command = self._undo[-1]
            self._run_guarded(revert_command, command)
            self._undo.pop()
            self._redo.append(command)
            LOGGER.info("history_undo kind=%s undo=%d redo=%d", command.kind, len(self._undo), len(self._redo))
            return command

    def redo(self) -> HistoryCommand | None:
        with self._lock:
            if not self._redo:
                LOGGER.warning("history_redo_empty")
                return None
            command = self._redo[-1]
            self._run_guarded(apply_command, command)
            self._redo.pop()
            self._undo.append(command)
            LOGGER.info("history_redo kind=%s undo=%d redo=%d", command.kind, len(self._undo), len(self._redo))
            return command

    def _run_guarded(self, action, command: HistoryCommand) -> None:
        checkpoint = self.document.snapshot()
        try:
            action(command, self.document)
        except Exception:
            LOGGER.exception("history_action_failed id=%s kind=%s", command.id, command.kind)
            self.document.apply_snapshot(checkpoint)
            raise

    def can_undo(self) -> bool:
        with self._lock:
            return bool(self._undo)

    def can_redo(self) -> bool:
        with self._lock:
            return bool(self._redo)

    def clear_history(self) -> None:
        with self._lock:
            self._undo.clear()
            self._redo.clear()
            LOGGER.info("history_cleared")

    def history(self) -> list[HistoryCommand]:
        """Undo stack, oldest first."""
        with self._lock:
            return list(self._undo)

    def redo_history(self) -> list[HistoryCommand]:
        """Commands redo would re-apply, next one first."""
        with self._lock:
            return list(reversed(self._redo))

    def timeline(self) -> list[HistoryCommand]:
        with self._lock:
            return self.history() + self.redo_history()

    def current_index(self) -> int:
        """Index of the last applied command in ``timeline()``; -1 when nothing is applied."""
        with self._lock:
            return len(self._undo) - 1

    def jump_to_point(self, target_index: int) -> None:
        """Undo or redo step by step until ``timeline()[target_index]`` is the last applied edit.

        If a step fails, the steps already taken are walked back so the document and
        both stacks end where they started, and the error is re-raised.
        """
        with self._lock:
            last_index = len(self._undo) + len(self._redo) - 1
            if target_index < -1 or target_index > last_index:
                raise HistoryError(f"History index {target_index} is outside [-1, {last_index}].")
            start_index = self.current_index()
            try:
                self._walk_to(target_index)
            except Exception:
                LOGGER.warning(
                    "history_jump_failed target=%d reached=%d returning_to=%d",
                    target_index,
                    self.current_index(),
                    start_index,
                )
                self._walk_to(start_index)
                raise
            LOGGER.info("history_jump target=%d steps=%d", target_index, target_index - start_index)

    def _walk_to(self, target_index: int) -> None:
        while self.current_index() > target_index:
            self.undo()
        while self.current_index() < target_index:
            self.redo()


def commit_generation(
    document: EditorDocument,
    history: HistoryEngine,
    payload: CodePayload,
    prompt: str,
    *,
    partial: bool = False,
) -> SnapshotCommand:
    """Apply a generated payload to the document and record it as one undoable step."""
    before = document.snapshot()
    document.set_payload(payload)
    command = make_agent_generation(before, document.snapshot(), prompt, partial=partial)
    history.add_command(command)
    return command


def format_command_label(command: HistoryCommand) -> str:
    label = _KIND_LABELS.get(command.kind, command.kind)
    if isinstance(command, FileEditCommand):
        return f"{label} ({command.file}) | {command.description}"
    return f"{label} | {command.description}"


def format_relative_time(timestamp: float, now: float | None = None) -> str:
    seconds = int(max(0.0, (time.time() if now is None else now) - timestamp))
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24
    if seconds < 60:
        return "just now"
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes > 1 else ''} ago"
    if hours < 24:
        return f"{hours} hour{'s' if hours > 1 else ''} ago"
    return f"{days} day{'s' if days > 1 else ''} ago"


def command_diff(command: HistoryCommand) -> str:
    """Unified diff of what the command changes when applied."""
    if isinstance(command, FileEditCommand):
        return unified_text_diff(
            command.before,
            command.after,
            before_label=f"{command.file} (before)",
            after_label=f"{command.file} (after)",
        )
    return code_diff(command.before.code(), command.after.code())
