"""Run lifecycle events emitted to the caller during a generation."""

from __future__ import annotations

from dataclasses import dataclass, field
import json
from typing import Any, Callable, Union

from prototype_builder.models import utc_now_iso

CODE_GENERATED_EVENT = "code_generated"


@dataclass(frozen=True)
class RunStarted:
    thread_id: str
    run_id: str
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {"type": "RunStarted", "threadId": self.thread_id, "runId": self.run_id, "timestamp": self.timestamp}


@dataclass(frozen=True)
class TextMessageStart:
    message_id: str
    role: str = "assistant"
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "TextMessageStart",
            "messageId": self.message_id,
            "role": self.role,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class TextMessageContent:
    message_id: str
    delta: str
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "TextMessageContent",
            "messageId": self.message_id,
            "delta": self.delta,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class TextMessageEnd:
    message_id: str
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {"type": "TextMessageEnd", "messageId": self.message_id, "timestamp": self.timestamp}


@dataclass(frozen=True)
class Custom:
    name: str
    value: dict[str, Any]
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {"type": "Custom", "name": self.name, "value": self.value, "timestamp": self.timestamp}


@dataclass(frozen=True)
class RunFinished:
    thread_id: str
    run_id: str
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {"type": "RunFinished", "threadId": self.thread_id, "runId": self.run_id, "timestamp": self.timestamp}


@dataclass(frozen=True)
class RunError:
    message: str
    suggestions: tuple[str, ...] = ()
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "RunError",
            "message": self.message,
            "suggestions": list(self.suggestions),
            "timestamp": self.timestamp,
        }


LifecycleEvent = Union[
    RunStarted,
    TextMessageStart,
    TextMessageContent,
    TextMessageEnd,
    Custom,
    RunFinished,
    RunError,
]
EventSink = Callable[[LifecycleEvent], None]


def event_type(event: LifecycleEvent) -> str:
    return str(event.to_dict()["type"])


def format_sse(event: LifecycleEvent) -> str:
    """Render one event as a Server-Sent Events frame."""
    payload = event.to_dict()
    return f"event: {payload['type']}\ndata: {json.dumps(payload, ensure_ascii=False)}\n\n"
