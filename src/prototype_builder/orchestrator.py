"""Generation orchestration: planning, streamed attempts, tolerant parsing, and retries.

One call to :meth:`GenerationOrchestrator.run` handles one logical user request and walks
the state machine ``planning -> generating -> parsing -> complete``, looping through
``retrying`` while the retry controller allows it and ending in ``failed`` otherwise.
Every run emits ``RunStarted`` first and exactly one of ``RunFinished`` / ``RunError`` last.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
import json
import logging
import time
from typing import Any, Awaitable, Callable, Literal
import uuid

from prototype_builder.activity_monitor import DEFAULT_TIMEOUT_CONFIG, ActivityMonitor, TimeoutConfig
from prototype_builder.config import AppConfig
from prototype_builder.error_messages import (
    ErrorClassification,
    GenerationError,
    classify_error,
    error_text,
)
from prototype_builder.events import (
    CODE_GENERATED_EVENT,
    Custom,
    EventSink,
    LifecycleEvent,
    RunError,
    RunFinished,
    RunStarted,
    TextMessageContent,
    TextMessageEnd,
    TextMessageStart,
)
from prototype_builder.json_recovery import ParseResult, fill_missing_fields, parse_with_recovery, strip_code_fence
from prototype_builder.llm_client import LLMClient, LLMResponse
from prototype_builder.models import ChatMessage, CodePayload, GenerationRequest, ImplementationPlan
from prototype_builder.prompt_strategy import PromptStrategy, select_strategy
from prototype_builder.prompts import (
    AGENT_SYSTEM_PROMPT,
    PLAN_SYSTEM_PROMPT,
    build_generation_prompt,
    build_plan_prompt,
    determine_action,
    format_completion_summary,
    format_plan_narration,
)
from prototype_builder.response_cache import ResponseCache
from prototype_builder.retry import DEFAULT_RETRY_CONFIG, RetryConfig, RetryController

LOGGER = logging.getLogger("prototype_builder.orchestrator")

OrchestratorState = Literal["planning", "generating", "parsing", "retrying", "complete", "failed"]

DEFAULT_MAX_HISTORY_MESSAGES = 10
DEFAULT_PROGRESS_INTERVAL_SECONDS = 2.0
DEFAULT_POLL_INTERVAL_SECONDS = 0.25
PLAN_MAX_OUTPUT_TOKENS = 1200
PROGRESS_TICK = "."


class GenerationFailed(Exception):
    """Terminal failure of a logical request, raised after ``RunError`` was emitted."""

    def __init__(
        self,
        classification: ErrorClassification,
        last_error: BaseException,
        *,
        attempts: int,
        states: tuple[OrchestratorState, ...] = (),
    ) -> None:
        super().__init__(classification.user_message)
        self.classification = classification
        self.last_error = last_error
        self.attempts = attempts
        self.states = states


@dataclass(frozen=True)
class GenerationResult:
    """Delivered payload plus the bookkeeping that produced it."""

    payload: CodePayload
    parse_result: ParseResult
    attempts: int
    strategy: PromptStrategy
    plan: ImplementationPlan | None = None
    warnings: tuple[str, ...] = ()
    finish_reason: str | None = None
    states: tuple[OrchestratorState, ...] = ()

    @property
    def is_partial(self) -> bool:
        return self.parse_result.is_partial

    @property
    def is_degraded(self) -> bool:
        return self.parse_result.is_partial or bool(self.warnings)


@dataclass
class _Candidate:
    payload: CodePayload
    parse_result: ParseResult
    strategy: PromptStrategy
    attempt_number: int
    finish_reason: str | None
    warnings: tuple[str, ...]
    retry_reason: str | None


@dataclass
class _Run:
    run_id: str
    thread_id: str
    sink: EventSink
    states: list[OrchestratorState] = field(default_factory=list)
    open_message_id: str | None = None

    def emit(self, event: LifecycleEvent) -> None:
        self.sink(event)

    def start_message(self, message_id: str) -> None:
        self.sink(TextMessageStart(message_id=message_id))
        self.open_message_id = message_id

    def end_message(self) -> None:
        if self.open_message_id is None:
            return
        self.sink(TextMessageEnd(message_id=self.open_message_id))
        self.open_message_id = None

    def say(self, message_id: str, delta: str) -> None:
        self.sink(TextMessageContent(message_id=message_id, delta=delta))

    def transition(self, state: OrchestratorState) -> None:
        self.states.append(state)
        LOGGER.info("generation_state run_id=%s state=%s", self.run_id, state)


class StreamAccumulator:
    """Ordered buffer for streamed chunks that also feeds the activity monitor."""

    def __init__(
        self,
        monitor: ActivityMonitor,
        *,
        clock: Callable[[], float] = time.monotonic,
        progress_interval_seconds: float = DEFAULT_PROGRESS_INTERVAL_SECONDS,
        on_progress: Callable[[], None] | None = None,
    ) -> None:
        self._monitor = monitor
        self._clock = clock
        self._progress_interval = progress_interval_seconds
        self._on_progress = on_progress
        self._last_progress = clock()
        self._parts: list[str] = []
        self._length = 0
        self.chunk_count = 0

    def add(self, chunk: str) -> None:
        self._monitor.record_activity()
        if not chunk:
            return
        self._parts.append(chunk)
        self._length += len(chunk)
        self.chunk_count += 1
        if self._on_progress is None:
            return
        now = self._clock()
        if now - self._last_progress >= self._progress_interval:
            self._last_progress = now
            self._on_progress()

    def text(self) -> str:
        return "".join(self._parts)

    def __len__(self) -> int:
        return self._length


def parse_plan(text: str) -> ImplementationPlan:
    """Decode the planning call's JSON; raises ValueError on anything unusable."""
    decoded = json.loads(strip_code_fence(text))
    if not isinstance(decoded, dict):
        raise ValueError("Plan response must be a JSON object.")
    return ImplementationPlan.from_dict(decoded)


class GenerationOrchestrator:
    """Drives generation attempts against an injected LLM capability.

    ``llm`` needs an async ``complete(messages, *, max_output_tokens, temperature)`` and may
    offer ``stream_complete(messages, *, on_chunk, max_output_tokens, temperature)``; both
    return an :class:`LLMResponse`. The orchestrator holds no per-request state, so one
    instance can serve concurrent requests.
    """

    def __init__(
        self,
        llm: Any,
        *,
        retry_config: RetryConfig = DEFAULT_RETRY_CONFIG,
        timeout_config: TimeoutConfig = DEFAULT_TIMEOUT_CONFIG,
        response_cache: ResponseCache | None = None,
        temperature: float | None = None,
        max_history_messages: int = DEFAULT_MAX_HISTORY_MESSAGES,
        progress_interval_seconds: float = DEFAULT_PROGRESS_INTERVAL_SECONDS,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.llm = llm
        self.retry_config = retry_config
        self.timeout_config = timeout_config
        self.response_cache = response_cache
        self.temperature = temperature
        self.max_history_messages = max(0, max_history_messages)
        self.progress_interval_seconds = progress_interval_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self._sleep = sleep
        self._clock = clock

    def build_messages(
        self,
        request: GenerationRequest,
        strategy: PromptStrategy,
        plan: ImplementationPlan | None = None,
    ) -> list[ChatMessage]:
        """System prompt, the most recent history turns, then the strategy-specific prompt."""
        history = request.conversation_history
        if self.max_history_messages:
            history = history[-self.max_history_messages :]
        else:
            history = ()
        messages = [ChatMessage(role="system", content=AGENT_SYSTEM_PROMPT)]
        messages.extend(message for message in history if message.role in ("user", "assistant"))
        messages.append(ChatMessage(role="user", content=build_generation_prompt(request, strategy, plan)))
        return messages

    async def run(
        self,
        request: GenerationRequest,
        emit: EventSink,
        *,
        plan_first: bool = True,
    ) -> GenerationResult:
        """Run one logical request to completion or terminal failure."""
        run = _Run(
            run_id=str(uuid.uuid4()),
            thread_id=request.thread_id or str(uuid.uuid4()),
            sink=emit,
        )
        LOGGER.info(
            "generation_run_started run_id=%s message_chars=%d history=%d",
            run.run_id,
            len(request.user_message),
            len(request.conversation_history),
        )
        run.emit(RunStarted(thread_id=run.thread_id, run_id=run.run_id))
        try:
            result = await self._run_attempts(request, run, plan_first=plan_first)
        except GenerationFailed as exc:
            run.emit(RunError(message=exc.classification.user_message, suggestions=exc.classification.suggestions))
            raise
        except asyncio.CancelledError:
            LOGGER.warning("generation_run_cancelled run_id=%s", run.run_id)
            run.end_message()
            run.emit(RunError(message="Generation cancelled."))
            raise
        except Exception as exc:
            LOGGER.exception("generation_run_crashed run_id=%s", run.run_id)
            run.end_message()
            classification = classify_error(exc)
            run.emit(RunError(message=classification.user_message, suggestions=classification.suggestions))
            raise GenerationFailed(classification, exc, attempts=0, states=tuple(run.states)) from exc
        run.emit(RunFinished(thread_id=run.thread_id, run_id=run.run_id))
        return result

    async def _run_attempts(
        self,
        request: GenerationRequest,
        run: _Run,
        *,
        plan_first: bool,
    ) -> GenerationResult:
        plan = request.prior_plan
        if plan_first and plan is None and determine_action(request) == "create":
            run.transition("planning")
            plan = await self._plan(request, run)

        message_id = str(uuid.uuid4())
        run.start_message(message_id)
        run.say(message_id, "**Generating your prototype...**\n\n")

        retry = RetryController(self.retry_config)
        fallback: _Candidate | None = None
        while True:
            attempt_request = replace(request, retry_attempt=retry.attempt)
            strategy = select_strategy(request.user_message, retry.attempt)
            LOGGER.info(
                "generation_attempt run_id=%s attempt=%d/%d strategy=%s max_output_tokens=%d",
                run.run_id,
                retry.attempt_number(),
                retry.total_attempts(),
                strategy.kind,
                strategy.max_output_tokens,
            )
            try:
                run.transition("generating")
                response, text = await self._generate(attempt_request, strategy, plan, run, message_id)
                run.transition("parsing")
                candidate = self._evaluate(text, response, strategy, retry.attempt_number())
            except Exception as exc:
                error: BaseException = exc
                LOGGER.warning(
                    "generation_attempt_failed run_id=%s attempt=%d error=%s",
                    run.run_id,
                    retry.attempt_number(),
                    error_text(exc),
                )
            else:
                if candidate.retry_reason is None:
                    return self._complete(candidate, plan, run, message_id, request.user_message)
                fallback = self._better_fallback(fallback, candidate)
                error = GenerationError(candidate.retry_reason, kind="parse")
                LOGGER.warning(
                    "generation_attempt_degraded run_id=%s attempt=%d reason=%s",
                    run.run_id,
                    retry.attempt_number(),
                    candidate.retry_reason,
                )

            if not retry.should_retry(error):
                if fallback is not None:
                    LOGGER.warning("generation_deliver_fallback run_id=%s attempt=%d", run.run_id, fallback.attempt_number)
                    return self._complete(fallback, plan, run, message_id, request.user_message)
                raise self._fail(error, retry, run, message_id)

            interim = classify_error(
                error,
                retry_attempt=retry.attempt_number(),
                max_attempts=retry.total_attempts(),
            )
            delay_ms = retry.delay_ms()
            run.transition("retrying")
            run.say(message_id, f"\n\n{interim.user_message}\n\n")
            LOGGER.warning(
                "generation_retry_scheduled run_id=%s next_attempt=%d delay_ms=%d kind=%s",
                run.run_id,
                retry.attempt_number() + 1,
                delay_ms,
                interim.kind,
            )
            await self._sleep(delay_ms / 1000.0)
            retry.increment_attempt()

    async def _plan(self, request: GenerationRequest, run: _Run) -> ImplementationPlan | None:
        message_id = str(uuid.uuid4())
        run.start_message(message_id)
        run.say(message_id, "**Analyzing your request...**\n\n")
        messages = [
            ChatMessage(role="system", content=PLAN_SYSTEM_PROMPT),
            ChatMessage(role="user", content=build_plan_prompt(request.user_message)),
        ]
        plan: ImplementationPlan | None = None
        try:
            response = await asyncio.wait_for(
                self.llm.complete(
                    messages,
                    max_output_tokens=PLAN_MAX_OUTPUT_TOKENS,
                    temperature=self.temperature,
                ),
                timeout=self.timeout_config.initial_ms / 1000.0,
            )
            plan = parse_plan(response.text)
        except (ValueError, asyncio.TimeoutError) as exc:
            LOGGER.warning("plan_unusable run_id=%s error=%s", run.run_id, error_text(exc))
        except Exception as exc:
            # Planning is narration only; generation reports real failures itself.
            LOGGER.warning("plan_call_failed run_id=%s error=%s", run.run_id, error_text(exc))

        if plan is not None:
            run.say(message_id, format_plan_narration(plan))
        run.end_message()
        return plan

    async def _generate(
        self,
        request: GenerationRequest,
        strategy: PromptStrategy,
        plan: ImplementationPlan | None,
        run: _Run,
        message_id: str,
    ) -> tuple[LLMResponse, str]:
        messages = self.build_messages(request, strategy, plan)
        monitor = ActivityMonitor(self.timeout_config, clock=self._clock)
        accumulator = StreamAccumulator(
            monitor,
            clock=self._clock,
            progress_interval_seconds=self.progress_interval_seconds,
            on_progress=lambda: run.say(message_id, PROGRESS_TICK),
        )
        stream_complete = getattr(self.llm, "stream_complete", None)
        if stream_complete is not None:
            call = stream_complete(
                messages,
                on_chunk=accumulator.add,
                max_output_tokens=strategy.max_output_tokens,
                temperature=self.temperature,
            )
        else:
            call = self.llm.complete(
                messages,
                max_output_tokens=strategy.max_output_tokens,
                temperature=self.temperature,
            )
        response = await self._await_with_deadline(
            call,
            monitor,
            retry_attempt=request.retry_attempt,
            watch_activity=stream_complete is not None,
        )
        text = accumulator.text() or response.text
        LOGGER.info(
            "generation_response chars=%d chunks=%d finish_reason=%s output_tokens=%s",
            len(text),
            accumulator.chunk_count,
            response.finish_reason or "none",
            response.usage_output_tokens,
        )
        return response, text

    async def _await_with_deadline(
        self,
        call: Awaitable[LLMResponse],
        monitor: ActivityMonitor,
        *,
        retry_attempt: int,
        watch_activity: bool,
    ) -> LLMResponse:
        """Await the capability, cancelling it on stall or when the attempt deadline passes."""
        deadline_ms = monitor.timeout_for(retry_attempt)
        started = self._clock()
        monitor.reset()
        task = asyncio.ensure_future(call)
        try:
            while True:
                done, _ = await asyncio.wait({task}, timeout=self.poll_interval_seconds)
                if task in done:
                    return task.result()
                if watch_activity and monitor.should_timeout():
                    raise GenerationError(
                        f"Stream timeout: no data received for {monitor.seconds_since_activity()}s",
                        kind="timeout",
                    )
                if (self._clock() - started) * 1000.0 >= deadline_ms:
                    raise GenerationError(
                        f"Generation timeout after {deadline_ms / 1000.0:.0f}s",
                        kind="timeout",
                    )
        finally:
            if not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)

    def _evaluate(
        self,
        text: str,
        response: LLMResponse,
        strategy: PromptStrategy,
        attempt_number: int,
    ) -> _Candidate:
        parse_result = parse_with_recovery(text)
        if not parse_result.success:
            raise GenerationError(f"Failed to parse generated code: {parse_result.error}", kind="parse")

        payload = fill_missing_fields(parse_result)
        warnings: list[str] = []
        if parse_result.is_partial:
            warnings.append("The response was cut off and recovered as a partial result.")
        if parse_result.missing_fields:
            warnings.append(f"Missing fields were left empty: {', '.join(parse_result.missing_fields)}.")

        retry_reason: str | None = None
        if not payload.html.strip():
            warnings.append("The generated payload has no HTML content.")
            retry_reason = "Incomplete response: generated payload has no HTML content."
        elif response.finish_reason == "length" and (parse_result.is_partial or parse_result.missing_fields):
            warnings.append("The output hit the token limit.")
            retry_reason = "Incomplete response: output truncated at the token limit."

        return _Candidate(
            payload=payload,
            parse_result=parse_result,
            strategy=strategy,
            attempt_number=attempt_number,
            finish_reason=response.finish_reason,
            warnings=tuple(warnings),
            retry_reason=retry_reason,
        )

    @staticmethod
    def _better_fallback(current: _Candidate | None, candidate: _Candidate) -> _Candidate:
        if current is None:
            return candidate
        if candidate.payload.html.strip() or not current.payload.html.strip():
            return candidate
        return current

    def _complete(
        self,
        candidate: _Candidate,
        plan: ImplementationPlan | None,
        run: _Run,
        message_id: str,
        prompt: str,
    ) -> GenerationResult:
        run.transition("complete")
        payload = candidate.payload
        run.say(message_id, format_completion_summary(payload, candidate.warnings))
        run.end_message()
        value = payload.to_dict()
        value["isPartial"] = candidate.parse_result.is_partial
        value["warnings"] = list(candidate.warnings)
        run.emit(Custom(name=CODE_GENERATED_EVENT, value=value))

        if self.response_cache is not None and not candidate.warnings:
            self.response_cache.save_response(prompt, payload)

        LOGGER.info(
            "generation_complete run_id=%s attempt=%d partial=%s warnings=%d html_chars=%d",
            run.run_id,
            candidate.attempt_number,
            candidate.parse_result.is_partial,
            len(candidate.warnings),
            len(payload.html),
        )
        return GenerationResult(
            payload=payload,
            parse_result=candidate.parse_result,
            attempts=candidate.attempt_number,
            strategy=candidate.strategy,
            plan=plan,
            warnings=candidate.warnings,
            finish_reason=candidate.finish_reason,
            states=tuple(run.states),
        )

    def _fail(
        self,
        error: BaseException,
        retry: RetryController,
        run: _Run,
        message_id: str,
    ) -> GenerationFailed:
        classification = classify_error(
            error,
            retry_attempt=retry.attempt_number(),
            max_attempts=retry.total_attempts(),
        )
        run.transition("failed")
        LOGGER.error(
            "generation_failed run_id=%s attempts=%d kind=%s error=%s",
            run.run_id,
            retry.attempt_number(),
            classification.kind,
            error_text(error),
        )
        lines = [f"\n\n{classification.user_message}"]
        if classification.suggestions:
            lines.append("")
            lines.extend(f"- {suggestion}" for suggestion in classification.suggestions)
        run.say(message_id, "\n".join(lines))
        run.end_message()
        return GenerationFailed(
            classification,
            error,
            attempts=retry.attempt_number(),
            states=tuple(run.states),
        )


def create_orchestrator(config: AppConfig, llm: Any = None) -> GenerationOrchestrator:
    """Build an orchestrator from application config around one shared capability."""
    return GenerationOrchestrator(
        llm if llm is not None else LLMClient(config),
        retry_config=RetryConfig(
            max_attempts=config.max_attempts,
            base_delay_ms=config.retry_base_delay_ms,
            max_delay_ms=config.retry_max_delay_ms,
        ),
        timeout_config=TimeoutConfig(
            initial_ms=config.timeout_initial_ms,
            per_retry_ms=config.timeout_per_retry_ms,
            maximum_ms=config.timeout_maximum_ms,
            activity_window_ms=config.activity_window_ms,
        ),
        response_cache=ResponseCache(config.response_cache_dir) if config.response_cache_dir else None,
        temperature=config.temperature,
    )
