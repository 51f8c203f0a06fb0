"""Prompt strategy selection from request complexity and retry count."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Literal

LOGGER = logging.getLogger("prototype_builder.prompt_strategy")

StrategyKind = Literal["standard", "concise", "minimal"]

COMPLEX_KEYWORDS = ("dashboard", "crm", "admin", "management", "system", "platform", "portal")
FEATURE_KEYWORDS = ("crud", "search", "filter", "sort", "chart", "graph", "table", "form", "list")
ENTITY_KEYWORDS = ("user", "customer", "product", "order", "task", "project", "contact")

# Standard asks for less room than the retry strategies; retries follow a truncation
# and must not re-truncate.
STANDARD_MAX_OUTPUT_TOKENS = 6144
REDUCED_MAX_OUTPUT_TOKENS = 8192


@dataclass(frozen=True)
class PromptStrategy:
    """How much output to request and which focus hints to inject."""

    kind: StrategyKind
    max_output_tokens: int
    focus_areas: tuple[str, ...]


def assess_complexity(request_text: str) -> float:
    """Score request complexity on a 0..1 scale from keyword and length heuristics."""
    lowered = str(request_text or "").lower()
    score = 0.0

    complex_hits = [keyword for keyword in COMPLEX_KEYWORDS if keyword in lowered]
    feature_hits = [keyword for keyword in FEATURE_KEYWORDS if keyword in lowered]
    score += 0.2 * len(complex_hits)
    score += 0.1 * len(feature_hits)

    word_count = len(lowered.split())
    if word_count > 50:
        score += 0.2
    if word_count > 100:
        score += 0.2

    entities_found = sum(1 for keyword in ENTITY_KEYWORDS if keyword in lowered)
    if entities_found > 2:
        score += 0.2

    final_score = min(round(score, 4), 1.0)
    LOGGER.info(
        "complexity_assessed score=%.2f words=%d complex=%d features=%d entities=%d",
        final_score,
        word_count,
        len(complex_hits),
        len(feature_hits),
        entities_found,
    )
    return final_score


def select_strategy(request_text: str, retry_attempt: int = 0) -> PromptStrategy:
    """Pick standard/concise/minimal; any retry skips scoring and steps down the ladder."""
    if retry_attempt > 0:
        LOGGER.info("strategy_selected reason=retry retry_attempt=%d", retry_attempt)
        if retry_attempt >= 2:
            return PromptStrategy(
                kind="minimal",
                max_output_tokens=REDUCED_MAX_OUTPUT_TOKENS,
                focus_areas=("core functionality only", "minimal features"),
            )
        return PromptStrategy(
            kind="concise",
            max_output_tokens=REDUCED_MAX_OUTPUT_TOKENS,
            focus_areas=("working prototype", "essential features"),
        )

    complexity = assess_complexity(request_text)
    if complexity > 0.7:
        return PromptStrategy(
            kind="minimal",
            max_output_tokens=REDUCED_MAX_OUTPUT_TOKENS,
            focus_areas=("core functionality", "essential features only"),
        )
    if complexity > 0.4:
        return PromptStrategy(
            kind="concise",
            max_output_tokens=REDUCED_MAX_OUTPUT_TOKENS,
            focus_areas=("working prototype", "key features"),
        )
    return PromptStrategy(
        kind="standard",
        max_output_tokens=STANDARD_MAX_OUTPUT_TOKENS,
        focus_areas=("complete implementation",),
    )
