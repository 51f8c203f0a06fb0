"""Surgical edit parsing, application, and history recording tests."""

from __future__ import annotations

import asyncio
import json

import pytest

from prototype_builder.editor_state import EditorDocument
from prototype_builder.history import HistoryEngine
from prototype_builder.llm_client import LLMResponse
from prototype_builder.models import CodePayload
from prototype_builder.surgical_edit import (
    CssEdit,
    SearchReplaceEdit,
    SelectedElement,
    SurgicalEditError,
    SurgicalEditRequest,
    WholeFileEdit,
    analyze_edit_type,
    apply_edits,
    build_edit_prompt,
    generate_surgical_edit,
    parse_edit_response,
    record_surgical_edits,
)


class FakeCompleteLLM:
    def __init__(self, text: str) -> None:
        self.text = text
        self.calls: list[dict[str, object]] = []

    async def complete(self, messages, *, max_output_tokens=4000, temperature=None):
        self.calls.append(
            {"messages": messages, "max_output_tokens": max_output_tokens, "temperature": temperature}
        )
        return LLMResponse(text=self.text, model_used="fake")


def test_analyze_edit_type_prefers_css_only_with_selection() -> None:
    element = SelectedElement(selector=".header")

    assert analyze_edit_type("make the background darker", element) == "css-selector"
    assert analyze_edit_type("make the background darker") == "whole-file"
    assert analyze_edit_type("Rename the Save button to Store") == "search-replace"
    assert analyze_edit_type("add a login screen") == "whole-file"


def test_edit_prompts_excerpt_current_code() -> None:
    code = CodePayload(html="h" * 900, css="c" * 1200, js="j" * 700)
    request = SurgicalEditRequest(
        description="update the title",
        current_code=code,
        selected_element=SelectedElement(selector="#title", tag_name="h1", element_id="title"),
    )

    css_prompt = build_edit_prompt(request, "css-selector")
    search_prompt = build_edit_prompt(request, "search-replace")

    assert "- Selector: #title" in css_prompt
    assert "c" * 1000 in css_prompt and "c" * 1001 not in css_prompt
    assert "h" * 800 in search_prompt and "h" * 801 not in search_prompt
    assert "j" * 600 in search_prompt and "j" * 601 not in search_prompt


def test_parse_edit_response_accepts_fenced_json() -> None:
    body = {
        "edits": [
            {"type": "css-selector", "selector": ".btn", "property": "color", "value": "blue"},
            {"type": "search-replace", "file": "HTML", "search": "Save", "replace": "Store"},
            {"type": "whole-file", "file": "js", "content": "init();"},
            {"type": "mystery"},
        ],
        "explanation": "Updated",
    }

    response = parse_edit_response(f"```json\n{json.dumps(body)}\n```", "search-replace")

    assert response.edits == (
        CssEdit(selector=".btn", property="color", value="blue"),
        SearchReplaceEdit(file="html", search="Save", replace="Store"),
        WholeFileEdit(file="js", content="init();"),
    )
    assert response.explanation == "Updated"
    assert response.edit_type == "search-replace"


def test_parse_edit_response_defaults_explanation() -> None:
    response = parse_edit_response('{"edits": []}', "whole-file")

    assert response.edits == ()
    assert response.explanation == "Code updated"


@pytest.mark.parametrize(
    "text",
    [
        "not json",
        "[1, 2]",
        '{"edits": "nope"}',
        '{"edits": [{"type": "whole-file", "file": "py", "content": ""}]}',
    ],
)
def test_parse_edit_response_rejects_bad_payloads(text: str) -> None:
    with pytest.raises(SurgicalEditError):
        parse_edit_response(text, "whole-file")


def test_css_edit_replaces_existing_property_only() -> None:
    css = ".button {\n  color: red;\n  background-color: blue;\n}"

    updated = apply_edits(CodePayload(css=css), [CssEdit(".button", "color", "green")]).css

    assert updated == ".button {\n  color: green;\n  background-color: blue;\n}"


def test_css_edit_inserts_missing_property_into_rule() -> None:
    css = ".button { background-color: blue; }"

    updated = apply_edits(CodePayload(css=css), [CssEdit(".button", "color", "green")]).css

    assert updated == ".button {\n  color: green; background-color: blue; }"


def test_css_edit_appends_rule_for_unknown_selector() -> None:
    updated = apply_edits(CodePayload(css="body { margin: 0; }"), [CssEdit(".card", "padding", "8px")]).css

    assert updated == "body { margin: 0; }\n.card {\n  padding: 8px;\n}\n"


def test_search_replace_changes_first_occurrence_only() -> None:
    code = CodePayload(html="<b>Save</b><i>Save</i>", explanation="kept")

    updated = apply_edits(code, [SearchReplaceEdit("html", "Save", "Store")])

    assert updated.html == "<b>Store</b><i>Save</i>"
    assert updated.explanation == "kept"


def test_search_miss_leaves_code_unchanged() -> None:
    code = CodePayload(js="let a = 1;")

    assert apply_edits(code, [SearchReplaceEdit("js", "let b", "let c")]) == code


def test_whole_file_edit_replaces_content() -> None:
    updated = apply_edits(CodePayload(html="<p>old</p>"), [WholeFileEdit("html", "<p>new</p>")])

    assert updated.html == "<p>new</p>"


def test_generate_surgical_edit_uses_detected_type() -> None:
    llm = FakeCompleteLLM(
        json.dumps(
            {
                "edits": [{"type": "search-replace", "file": "html", "search": "Save", "replace": "Store"}],
                "explanation": "Renamed button",
            }
        )
    )
    request = SurgicalEditRequest(description="rename Save to Store", current_code=CodePayload(html="<b>Save</b>"))

    response = asyncio.run(generate_surgical_edit(llm, request))

    assert response.edit_type == "search-replace"
    assert response.explanation == "Renamed button"
    call = llm.calls[0]
    assert call["max_output_tokens"] == 2000
    assert call["temperature"] == 0.3
    assert "SEARCH/REPLACE" in call["messages"][0].content


def test_record_surgical_edits_creates_one_command_per_changed_file() -> None:
    document = EditorDocument()
    document.set_code(html="<b>Save</b>", css="b { color: red; }", js="")
    history = HistoryEngine(document)
    before = document.current_code()
    after = CodePayload(html="<b>Store</b>", css="b { color: blue; }", js="")

    commands = record_surgical_edits(document, history, before, after, "Renamed and recolored")

    assert [command.file for command in commands] == ["html", "css"]
    assert document.html == "<b>Store</b>"
    history.undo()
    assert document.css == "b { color: red; }"
    assert document.html == "<b>Store</b>"
    history.undo()
    assert document.html == "<b>Save</b>"
