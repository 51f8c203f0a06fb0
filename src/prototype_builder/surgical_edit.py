"""Targeted code edits: CSS property changes, exact search/replace, or whole-file rewrites."""

from __future__ import annotations

from dataclasses import dataclass, replace
import json
import logging
import re
from typing import Any, Literal, Union

from prototype_builder.editor_state import CodeField, EditorDocument
from prototype_builder.history import FileEditCommand, HistoryEngine, make_surgical_edit
from prototype_builder.json_recovery import strip_code_fence
from prototype_builder.models import CODE_FIELDS, ChatMessage, CodePayload

LOGGER = logging.getLogger("prototype_builder.surgical_edit")

EditType = Literal["css-selector", "search-replace", "whole-file"]

STYLE_KEYWORDS = ("color", "background", "font", "size", "padding", "margin", "border", "width", "height", "style")
TARGETED_KEYWORDS = ("change", "replace", "update", "modify", "rename")

SURGICAL_MAX_OUTPUT_TOKENS = 2000
SURGICAL_TEMPERATURE = 0.3


class SurgicalEditError(Exception):
    """Raised when an edit response cannot be parsed or names an unknown file."""


@dataclass(frozen=True)
class SelectedElement:
    selector: str
    tag_name: str = ""
    class_name: str | None = None
    element_id: str | None = None


@dataclass(frozen=True)
class SurgicalEditRequest:
    description: str
    current_code: CodePayload
    selected_element: SelectedElement | None = None


@dataclass(frozen=True)
class CssEdit:
    selector: str
    property: str
    value: str


@dataclass(frozen=True)
class SearchReplaceEdit:
    file: CodeField
    search: str
    replace: str


@dataclass(frozen=True)
class WholeFileEdit:
    file: CodeField
    content: str


SurgicalEdit = Union[CssEdit, SearchReplaceEdit, WholeFileEdit]


@dataclass(frozen=True)
class SurgicalEditResponse:
    edits: tuple[SurgicalEdit, ...]
    explanation: str
    edit_type: EditType


def analyze_edit_type(description: str, selected_element: SelectedElement | None = None) -> EditType:
    lowered = description.lower()
    if selected_element is not None and any(keyword in lowered for keyword in STYLE_KEYWORDS):
        return "css-selector"
    if any(keyword in lowered for keyword in TARGETED_KEYWORDS):
        return "search-replace"
    return "whole-file"


_CSS_SYSTEM_PROMPT = """You are a CSS editing assistant. Generate precise CSS property changes using selectors.

Output ONLY valid JSON in this format:
{
  "edits": [
    {"type": "css-selector", "selector": ".button", "property": "background-color", "value": "blue"}
  ],
  "explanation": "Changed button background to blue"
}

Rules:
- Use CSS property names (background-color, not backgroundColor)
- Use valid CSS values
- Target specific selectors (class, id, or tag)
- Multiple edits are allowed for complex changes"""

_SEARCH_REPLACE_SYSTEM_PROMPT = """You are a code editing assistant. Generate precise SEARCH/REPLACE blocks for targeted changes.

Output ONLY valid JSON in this format:
{
  "edits": [
    {"type": "search-replace", "file": "html", "search": "exact text to find", "replace": "exact replacement text"}
  ],
  "explanation": "What was changed"
}

Rules:
- search MUST match the current code exactly, including whitespace
- Only include the minimal code that needs to change
- Preserve indentation and formatting
- file is one of "html", "css", or "js\""""

_WHOLE_FILE_SYSTEM_PROMPT = """You are a code generation assistant. Generate complete, updated file content.

Output ONLY valid JSON in this format:
{
  "edits": [
    {"type": "whole-file", "file": "html", "content": "complete file content here"}
  ],
  "explanation": "What was changed"
}"""


def system_prompt_for(edit_type: EditType) -> str:
    if edit_type == "css-selector":
        return _CSS_SYSTEM_PROMPT
    if edit_type == "search-replace":
        return _SEARCH_REPLACE_SYSTEM_PROMPT
    return _WHOLE_FILE_SYSTEM_PROMPT


def build_edit_prompt(request: SurgicalEditRequest, edit_type: EditType) -> str:
    code = request.current_code
    lines = [f"User request: {request.description}", ""]
    if edit_type == "css-selector":
        element = request.selected_element
        if element is not None:
            lines.append("Selected element:")
            if element.tag_name:
                lines.append(f"- Tag: {element.tag_name}")
            if element.class_name:
                lines.append(f"- Class: {element.class_name}")
            if element.element_id:
                lines.append(f"- ID: {element.element_id}")
            lines.extend([f"- Selector: {element.selector}", ""])
        lines.extend([f"Current CSS (excerpt):\n{code.css[:1000]}", "", "Generate CSS edits to fulfill the request."])
    elif edit_type == "search-replace":
        lines.extend(
            [
                f"Current HTML:\n{code.html[:800]}",
                "",
                f"Current CSS:\n{code.css[:600]}",
                "",
                f"Current JS:\n{code.js[:600]}",
                "",
                "Generate SEARCH/REPLACE blocks to make the requested changes.",
            ]
        )
    else:
        lines.extend(
            [
                "Current code:",
                f"HTML:\n{code.html}",
                "",
                f"CSS:\n{code.css}",
                "",
                f"JS:\n{code.js}",
                "",
                "Generate the complete updated files.",
            ]
        )
    return "\n".join(lines)


def _file_field(raw: dict[str, Any]) -> CodeField:
    value = str(raw.get("file", "")).strip().lower()
    if value not in CODE_FIELDS:
        raise SurgicalEditError(f"Edit targets unknown file: {value or '(missing)'}")
    return value  # type: ignore[return-value]


def _parse_edit(raw: object) -> SurgicalEdit | None:
    if not isinstance(raw, dict):
        raise SurgicalEditError("Each edit must be a JSON object.")
    edit_type = raw.get("type")
    if edit_type == "css-selector":
        return CssEdit(
            selector=str(raw.get("selector", "")).strip(),
            property=str(raw.get("property", "")).strip(),
            value=str(raw.get("value", "")).strip(),
        )
    if edit_type == "search-replace":
        return SearchReplaceEdit(
            file=_file_field(raw),
            search=str(raw.get("search", "")),
            replace=str(raw.get("replace", "")),
        )
    if edit_type == "whole-file":
        return WholeFileEdit(file=_file_field(raw), content=str(raw.get("content", "")))
    LOGGER.warning("surgical_edit_unknown_type type=%s", edit_type)
    return None


def parse_edit_response(text: str, edit_type: EditType) -> SurgicalEditResponse:
    try:
        decoded = json.loads(strip_code_fence(text))
    except ValueError as exc:
        raise SurgicalEditError("Failed to parse LLM response for surgical edit.") from exc
    if not isinstance(decoded, dict):
        raise SurgicalEditError("Surgical edit response must be a JSON object.")
    raw_edits = decoded.get("edits") or []
    if not isinstance(raw_edits, list):
        raise SurgicalEditError("Surgical edit field 'edits' must be a list.")
    edits = tuple(edit for edit in (_parse_edit(item) for item in raw_edits) if edit is not None)
    return SurgicalEditResponse(
        edits=edits,
        explanation=str(decoded.get("explanation") or "Code updated"),
        edit_type=edit_type,
    )


def _apply_css_edit(css: str, edit: CssEdit) -> str:
    if not edit.selector or not edit.property:
        LOGGER.warning("surgical_edit_css_incomplete selector=%s property=%s", edit.selector, edit.property)
        return css
    selector = re.escape(edit.selector)
    declaration = f"{edit.property}: {edit.value};"
    existing = re.compile(rf"({selector}\s*\{{[^}}]*?(?<=[\s{{;]))({re.escape(edit.property)}\s*:[^;}}]+;?)")
    if existing.search(css):
        return existing.sub(lambda match: match.group(1) + declaration, css)
    rule_open = re.compile(rf"({selector}\s*\{{)")
    if rule_open.search(css):
        return rule_open.sub(lambda match: f"{match.group(1)}\n  {declaration}", css)
    separator = "\n" if css and not css.endswith("\n") else ""
    return f"{css}{separator}{edit.selector} {{\n  {declaration}\n}}\n"


def apply_edits(code: CodePayload, edits: tuple[SurgicalEdit, ...] | list[SurgicalEdit]) -> CodePayload:
    """Apply edits in order and return the updated code; the input is not modified."""
    files = code.code_only()
    for edit in edits:
        if isinstance(edit, CssEdit):
            files["css"] = _apply_css_edit(files["css"], edit)
        elif isinstance(edit, SearchReplaceEdit):
            if not edit.search or edit.search not in files[edit.file]:
                LOGGER.warning("surgical_edit_search_miss file=%s search_chars=%d", edit.file, len(edit.search))
                continue
            files[edit.file] = files[edit.file].replace(edit.search, edit.replace, 1)
        elif isinstance(edit, WholeFileEdit):
            files[edit.file] = edit.content
    return replace(code, html=files["html"], css=files["css"], js=files["js"])


async def generate_surgical_edit(llm: Any, request: SurgicalEditRequest) -> SurgicalEditResponse:
    """Ask the LLM capability for edits matching the request's detected edit type."""
    edit_type = analyze_edit_type(request.description, request.selected_element)
    LOGGER.info("surgical_edit_request type=%s description_chars=%d", edit_type, len(request.description))
    response = await llm.complete(
        [
            ChatMessage(role="system", content=system_prompt_for(edit_type)),
            ChatMessage(role="user", content=build_edit_prompt(request, edit_type)),
        ],
        max_output_tokens=SURGICAL_MAX_OUTPUT_TOKENS,
        temperature=SURGICAL_TEMPERATURE,
    )
    parsed = parse_edit_response(response.text, edit_type)
    LOGGER.info("surgical_edit_parsed type=%s edits=%d", edit_type, len(parsed.edits))
    return parsed


def record_surgical_edits(
    document: EditorDocument,
    history: HistoryEngine,
    before: CodePayload,
    after: CodePayload,
    explanation: str,
) -> list[FileEditCommand]:
    """Apply changed files to the document and record one undoable command per file."""
    commands: list[FileEditCommand] = []
    for field_name in CODE_FIELDS:
        old_text = getattr(before, field_name)
        new_text = getattr(after, field_name)
        if old_text == new_text:
            continue
        document.update_field(field_name, new_text)  # type: ignore[arg-type]
        command = make_surgical_edit(field_name, old_text, new_text, explanation)  # type: ignore[arg-type]
        history.add_command(command)
        commands.append(command)
    return commands
