"""Undo/redo engine and history command tests."""

from __future__ import annotations

import pytest

from prototype_builder.editor_state import CodeSnapshot, EditorDocument
from prototype_builder.history import (
    FileEditCommand,
    HistoryEngine,
    HistoryError,
    command_diff,
    commit_generation,
    format_command_label,
    format_relative_time,
    make_agent_generation,
    make_component_add,
    make_component_delete,
    make_surgical_edit,
    make_visual_edit,
)
from prototype_builder.models import CodePayload


def _edit(document: EditorDocument, history: HistoryEngine, html: str) -> object:
    """Apply an html change the way a caller does, then record it."""
    before = document.snapshot()
    document.update_html(html)
    command = make_visual_edit(before, document.snapshot(), f"html -> {html}")
    history.add_command(command)
    return command


def test_new_command_after_undo_discards_redo_branch() -> None:
    document = EditorDocument()
    history = HistoryEngine(document)
    command_a = _edit(document, history, "A")
    _edit(document, history, "B")

    history.undo()
    command_c = _edit(document, history, "C")

    assert history.can_redo() is False
    assert history.redo_history() == []
    assert history.history() == [command_a, command_c]
    assert document.html == "C"


def test_undo_and_redo_move_commands_between_stacks() -> None:
    document = EditorDocument()
    history = HistoryEngine(document)
    _edit(document, history, "A")
    command_b = _edit(document, history, "B")

    assert history.undo() is command_b
    assert document.html == "A"
    assert history.redo_history() == [command_b]

    assert history.redo() is command_b
    assert document.html == "B"
    assert history.can_redo() is False


def test_undo_and_redo_on_empty_stacks_are_noops() -> None:
    document = EditorDocument()
    document.update_html("untouched")
    history = HistoryEngine(document)

    assert history.undo() is None
    assert history.redo() is None
    assert document.html == "untouched"
    assert history.can_undo() is False
    assert history.can_redo() is False


def test_depth_bound_evicts_oldest_permanently() -> None:
    document = EditorDocument()
    history = HistoryEngine(document, max_depth=50)
    commands = [_edit(document, history, f"v{index}") for index in range(51)]

    assert len(history.history()) == 50
    assert history.history()[0] is commands[1]

    while history.undo() is not None:
        pass
    # The evicted first edit can no longer be reverted.
    assert document.html == "v0"
    assert commands[0] not in history.redo_history()


def test_clear_history_empties_both_stacks() -> None:
    document = EditorDocument()
    history = HistoryEngine(document)
    _edit(document, history, "A")
    _edit(document, history, "B")
    history.undo()

    history.clear_history()

    assert history.timeline() == []
    assert document.html == "A"


def test_jump_to_point_walks_with_undo_and_redo() -> None:
    document = EditorDocument()
    history = HistoryEngine(document)
    for html in ("A", "B", "C", "D"):
        _edit(document, history, html)

    history.jump_to_point(1)
    assert document.html == "B"
    assert history.current_index() == 1
    assert len(history.redo_history()) == 2

    history.jump_to_point(3)
    assert document.html == "D"

    history.jump_to_point(-1)
    assert document.html == ""
    assert history.can_undo() is False


@pytest.mark.parametrize("target", [-2, 4])
def test_jump_to_point_rejects_out_of_range(target: int) -> None:
    document = EditorDocument()
    history = HistoryEngine(document)
    for html in ("A", "B", "C", "D"):
        _edit(document, history, html)

    with pytest.raises(HistoryError):
        history.jump_to_point(target)
    assert document.html == "D"


def test_failed_revert_leaves_stacks_and_document_unchanged() -> None:
    document = EditorDocument()
    history = HistoryEngine(document)
    _edit(document, history, "A")
    broken = FileEditCommand(file="py", before="x", after="y", description="bad file")  # type: ignore[arg-type]
    history.add_command(broken)

    with pytest.raises(ValueError):
        history.undo()

    assert history.history()[-1] is broken
    assert history.can_redo() is False
    assert document.html == "A"


def test_surgical_edit_command_reverts_single_file() -> None:
    document = EditorDocument()
    document.set_code(html="<p>x</p>", css="p { color: red; }", js="")
    history = HistoryEngine(document)
    document.update_css("p { color: blue; }")
    history.add_command(make_surgical_edit("css", "p { color: red; }", "p { color: blue; }", "Blue text"))

    history.undo()

    assert document.css == "p { color: red; }"
    assert document.html == "<p>x</p>"


def test_snapshot_commands_restore_selection_and_viewport() -> None:
    document = EditorDocument()
    history = HistoryEngine(document)
    before = document.snapshot()
    document.set_selected_element(".card")
    document.set_viewport("mobile")
    history.add_command(make_visual_edit(before, document.snapshot(), "Select card"))

    history.undo()

    assert document.selected_element is None
    assert document.viewport == "desktop"


def test_commit_generation_records_one_agent_step() -> None:
    document = EditorDocument()
    history = HistoryEngine(document)
    payload = CodePayload(html="<div>app</div>", css="div{}", js="go();")

    command = commit_generation(document, history, payload, "Build a simple button")

    assert document.html == "<div>app</div>"
    assert command.kind == "agent-generation"
    assert command.description == "Generated: Build a simple button"
    history.undo()
    assert document.current_code() == CodePayload()


def test_agent_generation_description_truncates_and_flags_partial() -> None:
    before = CodeSnapshot()
    prompt = "Build a task tracker with filters, charts, reminders and team sharing"

    full = make_agent_generation(before, before, prompt)
    partial = make_agent_generation(before, before, prompt, partial=True)

    assert full.description == f"Generated: {prompt[:50]}..."
    assert partial.description.startswith("Generated (partial): ")


def test_component_command_descriptions() -> None:
    snapshot = CodeSnapshot()

    assert make_component_add(snapshot, snapshot, "Card").description == "Added component: Card"
    assert make_component_delete(snapshot, snapshot, "Card").kind == "component-delete"


def test_format_command_label_and_diff() -> None:
    command = make_surgical_edit("css", "a { color: red; }", "a { color: blue; }", "Blue links")

    assert format_command_label(command) == "Surgical edit (css) | Blue links"
    diff = command_diff(command)
    assert "--- css (before)" in diff
    assert "+a { color: blue; }" in diff


def test_snapshot_command_diff_covers_changed_files() -> None:
    before = CodeSnapshot(html="<p>a</p>")
    after = CodeSnapshot(html="<p>b</p>", js="init();")

    diff = command_diff(make_visual_edit(before, after, "Edit"))

    assert "-<p>a</p>" in diff
    assert "+init();" in diff


@pytest.mark.parametrize(
    ("elapsed", "expected"),
    [
        (5, "just now"),
        (60, "1 minute ago"),
        (125, "2 minutes ago"),
        (3600, "1 hour ago"),
        (3 * 3600, "3 hours ago"),
        (2 * 86400, "2 days ago"),
    ],
)
def test_format_relative_time(elapsed: int, expected: str) -> None:
    assert format_relative_time(1_000_000.0, now=1_000_000.0 + elapsed) == expected


def test_history_engine_rejects_zero_depth() -> None:
    with pytest.raises(ValueError):
        HistoryEngine(EditorDocument(), max_depth=0)


def test_failed_jump_returns_to_starting_point() -> None:
    document = EditorDocument()
    history = HistoryEngine(document)
    broken = FileEditCommand(file="py", before="x", after="y", description="bad file")  # type: ignore[arg-type]
    history.add_command(broken)
    for html in ("A", "B", "C"):
        _edit(document, history, html)

    with pytest.raises(ValueError):
        history.jump_to_point(-1)

    assert document.html == "C"
    assert history.current_index() == 3
    assert history.can_redo() is False
    assert history.history()[0] is broken
