"""Lifecycle event serialization tests."""

from __future__ import annotations

import json

from prototype_builder.events import (
    CODE_GENERATED_EVENT,
    Custom,
    RunError,
    RunStarted,
    TextMessageContent,
    event_type,
    format_sse,
)


def test_events_use_camel_case_wire_keys() -> None:
    started = RunStarted(thread_id="t-1", run_id="r-1").to_dict()
    content = TextMessageContent(message_id="m-1", delta="Hi").to_dict()

    assert started["type"] == "RunStarted"
    assert started["threadId"] == "t-1"
    assert started["runId"] == "r-1"
    assert started["timestamp"]
    assert content == {"type": "TextMessageContent", "messageId": "m-1", "delta": "Hi", "timestamp": content["timestamp"]}


def test_run_error_carries_suggestions_as_list() -> None:
    payload = RunError(message="failed", suggestions=("a", "b")).to_dict()

    assert payload["suggestions"] == ["a", "b"]


def test_format_sse_frames_event() -> None:
    event = Custom(name=CODE_GENERATED_EVENT, value={"html": "<p>é</p>"})

    frame = format_sse(event)

    assert frame.startswith("event: Custom\ndata: ")
    assert frame.endswith("\n\n")
    data = json.loads(frame.split("data: ", 1)[1])
    assert data["name"] == "code_generated"
    assert data["value"]["html"] == "<p>é</p>"


def test_event_type_reads_wire_type() -> None:
    assert event_type(RunError(message="x")) == "RunError"
