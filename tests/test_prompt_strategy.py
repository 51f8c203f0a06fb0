"""Prompt strategy selection tests."""

from __future__ import annotations

import pytest

from prototype_builder.prompt_strategy import (
    REDUCED_MAX_OUTPUT_TOKENS,
    STANDARD_MAX_OUTPUT_TOKENS,
    assess_complexity,
    select_strategy,
)


def test_simple_request_scores_zero_and_uses_standard() -> None:
    assert assess_complexity("Build a simple button") == 0.0

    strategy = select_strategy("Build a simple button")

    assert strategy.kind == "standard"
    assert strategy.max_output_tokens == STANDARD_MAX_OUTPUT_TOKENS


def test_medium_request_uses_concise() -> None:
    text = "A dashboard with search and filter and chart"

    assert assess_complexity(text) == pytest.approx(0.5)
    assert select_strategy(text).kind == "concise"


def test_heavy_request_uses_minimal() -> None:
    text = "Build an admin dashboard for a CRM portal"

    assert assess_complexity(text) == pytest.approx(0.8)
    assert select_strategy(text).kind == "minimal"


def test_entities_only_count_when_more_than_two() -> None:
    assert assess_complexity("user and customer") == 0.0
    assert assess_complexity("user, customer and product") == pytest.approx(0.2)


def test_long_requests_add_length_weight() -> None:
    assert assess_complexity("word " * 60) == pytest.approx(0.2)
    assert assess_complexity("word " * 120) == pytest.approx(0.4)


def test_score_is_capped_at_one() -> None:
    text = "dashboard crm admin management system platform portal " + "word " * 120

    assert assess_complexity(text) == 1.0


@pytest.mark.parametrize("text", ["Build a simple button", "Build an admin dashboard for a CRM portal", ""])
def test_retry_one_is_always_concise(text: str) -> None:
    strategy = select_strategy(text, 1)

    assert strategy.kind == "concise"
    assert strategy.max_output_tokens == REDUCED_MAX_OUTPUT_TOKENS


@pytest.mark.parametrize("retry_attempt", [2, 3, 7])
def test_later_retries_are_always_minimal(retry_attempt: int) -> None:
    assert select_strategy("Build a simple button", retry_attempt).kind == "minimal"


def test_focus_areas_are_present() -> None:
    assert select_strategy("Build a simple button").focus_areas
    assert select_strategy("x", 2).focus_areas == ("core functionality only", "minimal features")
