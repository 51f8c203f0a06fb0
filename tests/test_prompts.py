"""Prompt rendering and action detection tests."""

from __future__ import annotations

from prototype_builder.models import CodePayload, GenerationRequest, ImplementationPlan
from prototype_builder.prompt_strategy import select_strategy
from prototype_builder.prompts import (
    build_generation_prompt,
    build_plan_prompt,
    determine_action,
    format_completion_summary,
    format_plan_narration,
)

PLAN = ImplementationPlan(
    understanding="A todo app",
    components=("Header", "TaskList"),
    features=("Add tasks", "Filter tasks"),
    data_model="tasks: [{id, title, done}]",
    tech_stack=("HTML5", "CSS3", "JavaScript"),
    estimated_complexity="Simple",
)


def test_determine_action_without_code_is_create() -> None:
    assert determine_action(GenerationRequest(user_message="fix the header")) == "create"
    empty = CodePayload(html="   ")
    assert determine_action(GenerationRequest(user_message="fix it", current_code=empty)) == "create"


def test_determine_action_with_code_detects_fix_and_modify() -> None:
    code = CodePayload(html="<div>app</div>")

    assert determine_action(GenerationRequest(user_message="There is a BUG in save", current_code=code)) == "fix"
    assert determine_action(GenerationRequest(user_message="Add a dark mode", current_code=code)) == "modify"


def test_standard_prompt_includes_plan_and_focus_areas() -> None:
    request = GenerationRequest(user_message="Build a simple button")
    strategy = select_strategy(request.user_message)

    prompt = build_generation_prompt(request, strategy, PLAN)

    assert "Create a new HTML prototype" in prompt
    assert "- Components: Header, TaskList" in prompt
    assert prompt.endswith("Focus areas: complete implementation")


def test_retry_strategies_shrink_the_prompt() -> None:
    request = GenerationRequest(user_message="Build a simple button")

    concise = build_generation_prompt(request, select_strategy(request.user_message, 1), PLAN)
    minimal = build_generation_prompt(request, select_strategy(request.user_message, 2), PLAN)

    assert "CONCISE MODE" in concise
    assert "Plan: Header, TaskList" in concise
    assert "ULTRA-MINIMAL" in minimal
    assert "Header" not in minimal


def test_modify_prompt_embeds_truncated_current_html() -> None:
    code = CodePayload(html="<p>" + "x" * 5000 + "</p>")
    request = GenerationRequest(user_message="Add a footer", current_code=code)

    prompt = build_generation_prompt(request, select_strategy(request.user_message))

    assert prompt.startswith("Modify the existing prototype")
    assert "x" * 1997 in prompt
    assert "x" * 2001 not in prompt


def test_plan_prompt_asks_for_json_plan() -> None:
    prompt = build_plan_prompt("A todo app")

    assert "A todo app" in prompt
    assert '"estimatedComplexity"' in prompt


def test_plan_narration_lists_components() -> None:
    text = format_plan_narration(PLAN)

    assert "**Understanding:** A todo app" in text
    assert "1. Header\n2. TaskList" in text
    assert "**Data Model:** tasks" in text


def test_completion_summary_discloses_degraded_payload() -> None:
    payload = CodePayload(html="<div>", explanation="Partial result.", suggestions=("Regenerate",))

    degraded = format_completion_summary(payload, ("Missing fields were left empty: css, js.",))
    clean = format_completion_summary(payload)

    assert "Implementation Complete (partial)" in degraded
    assert "Missing fields were left empty" in degraded
    assert "Implementation Complete!" in clean
    assert "1. Regenerate" in clean
