"""Prompt text for planning and code generation, selected per strategy and action."""

from __future__ import annotations

from typing import Literal

from prototype_builder.models import CodePayload, GenerationRequest, ImplementationPlan
from prototype_builder.prompt_strategy import PromptStrategy

AgentAction = Literal["create", "modify", "fix"]

CURRENT_CODE_EXCERPT_CHARS = 2000
FIX_KEYWORDS = ("fix", "bug", "error")

AGENT_SYSTEM_PROMPT = """You are an autonomous agent inside an HTML prototype builder.

Your job is to generate complete, working, clickable HTML prototypes from a user's description,
or to modify an existing prototype on request.

CRITICAL: respond with ONLY valid JSON. No markdown, no code fences, no text outside the JSON.

Output format (strict):
{
  "html": "body content only (no <!DOCTYPE>, <html>, <head>, or <body> tags)",
  "css": "complete CSS",
  "js": "complete JavaScript",
  "explanation": "brief explanation of what you created",
  "suggestions": ["suggestion 1", "suggestion 2", "suggestion 3"]
}

Rules:
1. Output the raw JSON object only, starting with { and ending with }.
2. Escape every JSON string correctly.
3. Keep code concise; avoid long comments.
4. Every button and form must have a working handler.
5. Persist app data with localStorage and seed realistic sample records on first load.
6. Use modern, responsive CSS (flexbox, grid, CSS variables) with no external assets.
7. Prefer working core functionality over breadth of features.
"""

PLAN_SYSTEM_PROMPT = "You are a helpful assistant that creates implementation plans for web prototypes."

_JSON_SHAPE_HINT = '{"html":"...","css":"...","js":"...","explanation":"...","suggestions":[]}'


def build_plan_prompt(description: str) -> str:
    return (
        "Analyze this request and create an implementation plan:\n\n"
        f"{description}\n\n"
        "Respond with a JSON object containing your plan:\n"
        "{\n"
        '  "understanding": "Brief summary of what the user wants",\n'
        '  "components": ["Component 1", "Component 2"],\n'
        '  "features": ["Feature 1", "Feature 2"],\n'
        '  "dataModel": "Description of data structure if applicable",\n'
        '  "techStack": ["HTML5", "CSS3", "JavaScript"],\n'
        '  "estimatedComplexity": "Simple/Medium/Complex"\n'
        "}\n\n"
        "Respond with ONLY the JSON object."
    )


def determine_action(request: GenerationRequest) -> AgentAction:
    """Choose create/modify/fix from the request text and whether code already exists."""
    if request.current_code is None or not request.current_code.html.strip():
        return "create"
    lowered = request.user_message.lower()
    if any(keyword in lowered for keyword in FIX_KEYWORDS):
        return "fix"
    return "modify"


def _focus_line(strategy: PromptStrategy) -> str:
    return "Focus areas: " + ", ".join(strategy.focus_areas)


def _create_standard(description: str, plan: ImplementationPlan | None) -> str:
    lines = ["Create a new HTML prototype based on this description:", "", description]
    if plan is not None:
        lines.extend(
            [
                "",
                "Based on the approved plan:",
                f"- Components: {', '.join(plan.components)}",
                f"- Features: {', '.join(plan.features)}",
                f"- Data model: {plan.data_model}",
            ]
        )
    lines.extend(
        [
            "",
            "Requirements:",
            "1. Visually polished, modern design with smooth interactions.",
            "2. Fully functional: every button, form, and list works.",
            "3. Data-driven apps store data in localStorage with 5-10 sample records.",
            "4. A single updateUI() function refreshes counters, charts, and lists after every change.",
            "5. The app initializes on DOMContentLoaded with no setup needed.",
            "",
            "The explanation should say what was built, its key features, and how to use it.",
            "Respond with ONLY the JSON object. Start with { and end with }.",
        ]
    )
    return "\n".join(lines)


def _create_concise(description: str, plan: ImplementationPlan | None) -> str:
    plan_line = f"Plan: {', '.join(plan.components)}" if plan is not None and plan.components else ""
    return (
        f"Create working HTML prototype: {description}\n"
        f"{plan_line}\n\n"
        "CONCISE MODE - keep it small:\n"
        "1. Core functionality only\n"
        "2. Minimal comments\n"
        "3. Essential styling\n"
        "4. localStorage for data, 5-7 sample records max\n\n"
        f"JSON output only (no markdown):\n{_JSON_SHAPE_HINT}"
    )


def _create_minimal(description: str) -> str:
    return (
        f"Minimal viable prototype: {description}\n\n"
        "ULTRA-MINIMAL:\n"
        "- Core features only\n"
        "- Basic styling\n"
        "- Essential JS\n"
        "- 3-5 sample records\n"
        "- No comments\n\n"
        f"JSON only:\n{_JSON_SHAPE_HINT}"
    )


def _current_code_excerpt(code: CodePayload) -> str:
    return code.html[:CURRENT_CODE_EXCERPT_CHARS]


def _modify_prompt(description: str, code: CodePayload) -> str:
    return (
        "Modify the existing prototype based on this request:\n\n"
        f"{description}\n\n"
        f"Current code:\n```html\n{_current_code_excerpt(code)}\n```\n\n"
        "Generate the updated code. Respond with valid JSON only."
    )


def _fix_prompt(issue: str, code: CodePayload) -> str:
    return (
        "Fix this issue in the prototype:\n\n"
        f"{issue}\n\n"
        f"Current code:\n```html\n{_current_code_excerpt(code)}\n```\n\n"
        "Generate the fixed code. Respond with valid JSON only."
    )


def build_generation_prompt(
    request: GenerationRequest,
    strategy: PromptStrategy,
    plan: ImplementationPlan | None = None,
) -> str:
    """Render the user prompt for one attempt from the action and strategy."""
    action = determine_action(request)
    description = request.user_message.strip()
    if action == "modify" and request.current_code is not None:
        body = _modify_prompt(description, request.current_code)
    elif action == "fix" and request.current_code is not None:
        body = _fix_prompt(description, request.current_code)
    elif strategy.kind == "minimal":
        body = _create_minimal(description)
    elif strategy.kind == "concise":
        body = _create_concise(description, plan)
    else:
        body = _create_standard(description, plan)
    return f"{body}\n\n{_focus_line(strategy)}"


def _numbered(items: tuple[str, ...]) -> str:
    return "\n".join(f"{index}. {item}" for index, item in enumerate(items, start=1))


def format_plan_narration(plan: ImplementationPlan) -> str:
    """Human-readable plan text streamed to the user before generation starts."""
    sections = [
        "**Implementation Plan:**",
        "",
        f"**Understanding:** {plan.understanding}",
        "",
        "**Components to Build:**",
        _numbered(plan.components),
        "",
        "**Key Features:**",
        _numbered(plan.features),
        "",
    ]
    if plan.data_model:
        sections.extend([f"**Data Model:** {plan.data_model}", ""])
    sections.extend(
        [
            f"**Tech Stack:** {', '.join(plan.tech_stack)}",
            "",
            f"**Complexity:** {plan.estimated_complexity}",
            "",
            "---",
            "",
            "**Now generating your prototype...**",
            "",
        ]
    )
    return "\n".join(sections)


def format_completion_summary(payload: CodePayload, warnings: tuple[str, ...] = ()) -> str:
    """Summary text appended to the generation message once code is ready."""
    heading = "**Implementation Complete (partial)**" if warnings else "**Implementation Complete!**"
    lines = ["", "", heading, "", payload.explanation]
    if warnings:
        lines.extend(["", "**Warnings:**", _numbered(warnings)])
    if payload.suggestions:
        lines.extend(["", "**Next Steps & Suggestions:**", _numbered(payload.suggestions)])
    lines.append("")
    return "\n".join(lines)
