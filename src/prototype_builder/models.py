"""Canonical request, payload, and plan models for prototype generation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

MessageRole = Literal["system", "user", "assistant"]

CODE_FIELDS = ("html", "css", "js")
PAYLOAD_FIELDS = ("html", "css", "js", "explanation", "suggestions")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class ChatMessage:
    """One conversation turn sent to the LLM capability."""

    role: MessageRole
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class CodePayload:
    """Structured result of one generation: the three code files plus narration."""

    html: str = ""
    css: str = ""
    js: str = ""
    explanation: str = ""
    suggestions: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "html": self.html,
            "css": self.css,
            "js": self.js,
            "explanation": self.explanation,
            "suggestions": list(self.suggestions),
        }

    def code_only(self) -> dict[str, str]:
        return {"html": self.html, "css": self.css, "js": self.js}


@dataclass(frozen=True)
class ImplementationPlan:
    """Plan produced by the optional planning call, used only for progress narration."""

    understanding: str = ""
    components: tuple[str, ...] = ()
    features: tuple[str, ...] = ()
    data_model: str = ""
    tech_stack: tuple[str, ...] = ()
    estimated_complexity: str = ""

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> ImplementationPlan:
        def _strings(value: object) -> tuple[str, ...]:
            if not isinstance(value, list):
                return ()
            return tuple(str(item) for item in value)

        return cls(
            understanding=str(payload.get("understanding") or ""),
            components=_strings(payload.get("components")),
            features=_strings(payload.get("features")),
            data_model=str(payload.get("dataModel") or ""),
            tech_stack=_strings(payload.get("techStack")),
            estimated_complexity=str(payload.get("estimatedComplexity") or ""),
        )


@dataclass(frozen=True)
class GenerationRequest:
    """Immutable input for one attempt of a logical generation request.

    ``retry_attempt`` is 0 for the first attempt and increments across attempts of the
    same logical request; the orchestrator derives a new request per attempt with
    ``dataclasses.replace``.
    """

    user_message: str
    conversation_history: tuple[ChatMessage, ...] = ()
    prior_plan: ImplementationPlan | None = None
    retry_attempt: int = 0
    current_code: CodePayload | None = None
    thread_id: str | None = None
    created_at: str = field(default_factory=utc_now_iso)

    def __post_init__(self) -> None:
        if self.retry_attempt < 0:
            raise ValueError("retry_attempt must be >= 0.")
