"""LLM capability contract over an OpenAI-compatible endpoint, with normalized API errors."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Callable, Literal, Sequence

from prototype_builder.config import AppConfig
from prototype_builder.models import ChatMessage

ErrorCategory = Literal["auth", "rate_limit", "network", "timeout", "invalid_request", "server", "unknown"]
ChunkHandler = Callable[[str], None]

LOGGER = logging.getLogger("prototype_builder.llm_client")
if not LOGGER.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
    LOGGER.addHandler(handler)
LOGGER.setLevel(logging.INFO)
LOGGER.propagate = False


@dataclass(frozen=True)
class LLMResponse:
    """Normalized response contract for completion calls."""

    text: str
    model_used: str
    finish_reason: str | None = None
    request_id: str | None = None
    usage_input_tokens: int | None = None
    usage_output_tokens: int | None = None


class LLMError(Exception):
    """Normalized error carrying a user-readable message and category."""

    def __init__(self, message: str, category: ErrorCategory) -> None:
        super().__init__(message)
        self.message = message
        self.category = category


class LLMClient:
    """Async chat-completions client; build once at startup and inject where needed."""

    def __init__(self, config: AppConfig, timeout_seconds: float = 600.0) -> None:
        self.config = config
        self.timeout_seconds = timeout_seconds
        self._client: Any = None

    def _get_client(self) -> Any:
        if self._client is not None:
            return self._client
        try:
            from openai import AsyncOpenAI
        except ModuleNotFoundError as exc:
            raise LLMError(
                "OpenAI client dependency is missing. Install project requirements.",
                "unknown",
            ) from exc
        self._client = AsyncOpenAI(
            api_key=self.config.openai_api_key,
            base_url=self.config.base_url,
            timeout=self.timeout_seconds,
            max_retries=0,
        )
        return self._client

    def _log_request(
        self,
        *,
        messages: Sequence[ChatMessage],
        streamed: bool,
        outcome: Literal["success", "error"],
        error_category: ErrorCategory | None,
        finish_reason: str | None = None,
    ) -> None:
        LOGGER.info(
            "llm_request model=%s streamed=%s messages=%d prompt_chars=%d outcome=%s "
            "finish_reason=%s error_category=%s",
            self.config.model,
            streamed,
            len(messages),
            sum(len(message.content) for message in messages),
            outcome,
            finish_reason or "none",
            error_category or "none",
        )

    @staticmethod
    def _extract_token_count(usage: object, primary_key: str, fallback_key: str) -> int | None:
        if usage is None:
            return None
        value = getattr(usage, primary_key, None)
        if value is None:
            value = getattr(usage, fallback_key, None)
        return value if isinstance(value, int) else None

    @staticmethod
    def _compact_error_message(error: BaseException, *, max_chars: int = 320) -> str:
        compact = " ".join(str(error).split())
        if len(compact) <= max_chars:
            return compact
        return f"{compact[: max_chars - 3]}..."

    def _normalize_error(self, exc: Exception) -> LLMError:
        from openai import (
            APIConnectionError,
            APIStatusError,
            APITimeoutError,
            AuthenticationError,
            BadRequestError,
            RateLimitError,
        )

        if isinstance(exc, AuthenticationError):
            return LLMError("Authentication failed (401). Check OPENAI_API_KEY and model access.", "auth")
        if isinstance(exc, RateLimitError):
            return LLMError("Rate limit reached (429). Retry in a moment.", "rate_limit")
        if isinstance(exc, APITimeoutError):
            return LLMError("Request timed out while contacting the LLM provider.", "timeout")
        if isinstance(exc, APIConnectionError):
            return LLMError("Network error while contacting the LLM provider.", "network")
        detail = self._compact_error_message(exc)
        if isinstance(exc, BadRequestError):
            return LLMError(f"Invalid request sent to the LLM provider: {detail}", "invalid_request")
        if isinstance(exc, APIStatusError):
            status_code = getattr(exc, "status_code", None)
            if status_code is not None and status_code >= 500:
                return LLMError(
                    f"LLM service unavailable (status {status_code}): {detail}",
                    "server",
                )
            if status_code is not None and 400 <= status_code < 500:
                return LLMError(
                    f"LLM API error (status {status_code}): {detail}",
                    "invalid_request",
                )
        return LLMError(f"Unexpected LLM request failure: {detail}", "unknown")

    async def _create(
        self,
        *,
        messages: Sequence[ChatMessage],
        max_output_tokens: int,
        temperature: float | None,
        stream: bool,
    ) -> Any:
        from openai import BadRequestError

        client = self._get_client()
        token_field = "max_completion_tokens"
        include_stream_options = stream
        for _ in range(3):
            request: dict[str, object] = {
                "model": self.config.model,
                "messages": [message.to_dict() for message in messages],
                "temperature": self.config.temperature if temperature is None else temperature,
                token_field: max_output_tokens,
            }
            if stream:
                request["stream"] = True
            if include_stream_options:
                request["stream_options"] = {"include_usage": True}
            try:
                return await client.chat.completions.create(**request)
            except BadRequestError as retry_exc:
                message = str(retry_exc)
                changed = False
                if token_field == "max_completion_tokens" and "max_completion_tokens" in message:
                    token_field = "max_tokens"
                    changed = True
                if include_stream_options and "stream_options" in message:
                    include_stream_options = False
                    changed = True
                if not changed:
                    raise
        raise LLMError("Unable to prepare a compatible LLM request.", "invalid_request")

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        *,
        max_output_tokens: int = 4000,
        temperature: float | None = None,
    ) -> LLMResponse:
        """Send messages and return the whole completion."""
        try:
            completion = await self._create(
                messages=messages,
                max_output_tokens=max_output_tokens,
                temperature=temperature,
                stream=False,
            )
        except LLMError as exc:
            self._log_request(messages=messages, streamed=False, outcome="error", error_category=exc.category)
            raise
        except Exception as exc:
            normalized = self._normalize_error(exc)
            self._log_request(
                messages=messages, streamed=False, outcome="error", error_category=normalized.category
            )
            raise normalized from exc

        choice = completion.choices[0]
        usage = getattr(completion, "usage", None)
        request_id_raw = getattr(completion, "id", None)
        self._log_request(
            messages=messages,
            streamed=False,
            outcome="success",
            error_category=None,
            finish_reason=choice.finish_reason,
        )
        return LLMResponse(
            text=choice.message.content or "",
            model_used=str(getattr(completion, "model", None) or self.config.model),
            finish_reason=choice.finish_reason,
            request_id=str(request_id_raw) if request_id_raw is not None else None,
            usage_input_tokens=self._extract_token_count(usage, "prompt_tokens", "input_tokens"),
            usage_output_tokens=self._extract_token_count(usage, "completion_tokens", "output_tokens"),
        )

    async def stream_complete(
        self,
        messages: Sequence[ChatMessage],
        *,
        on_chunk: ChunkHandler,
        max_output_tokens: int = 4000,
        temperature: float | None = None,
    ) -> LLMResponse:
        """Stream a completion, calling ``on_chunk`` per content delta in arrival order."""
        parts: list[str] = []
        finish_reason: str | None = None
        usage: object = None
        request_id: str | None = None
        model_used = self.config.model
        try:
            stream = await self._create(
                messages=messages,
                max_output_tokens=max_output_tokens,
                temperature=temperature,
                stream=True,
            )
            async for chunk in stream:
                if request_id is None and getattr(chunk, "id", None) is not None:
                    request_id = str(chunk.id)
                model_used = str(getattr(chunk, "model", None) or model_used)
                if getattr(chunk, "usage", None) is not None:
                    usage = chunk.usage
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                delta = choice.delta.content if choice.delta is not None else None
                if delta:
                    parts.append(delta)
                    on_chunk(delta)
                if choice.finish_reason:
                    finish_reason = choice.finish_reason
        except LLMError as exc:
            self._log_request(messages=messages, streamed=True, outcome="error", error_category=exc.category)
            raise
        except Exception as exc:
            normalized = self._normalize_error(exc)
            self._log_request(
                messages=messages, streamed=True, outcome="error", error_category=normalized.category
            )
            raise normalized from exc

        self._log_request(
            messages=messages,
            streamed=True,
            outcome="success",
            error_category=None,
            finish_reason=finish_reason,
        )
        return LLMResponse(
            text="".join(parts),
            model_used=model_used,
            finish_reason=finish_reason,
            request_id=request_id,
            usage_input_tokens=self._extract_token_count(usage, "prompt_tokens", "input_tokens"),
            usage_output_tokens=self._extract_token_count(usage, "completion_tokens", "output_tokens"),
        )
