"""NiceGUI entrypoint for the AI prototype builder."""

from __future__ import annotations

import logging
from pathlib import Path

from nicegui import ui
from nicegui.events import KeyEventArguments

from prototype_builder.config import ConfigError, get_config
from prototype_builder.editor_state import VIEWPORT_WIDTHS, VIEWPORTS, EditorDocument
from prototype_builder.events import LifecycleEvent, RunError, TextMessageContent
from prototype_builder.history import (
    HistoryEngine,
    HistoryError,
    command_diff,
    commit_generation,
    format_command_label,
    format_relative_time,
    make_component_add,
    make_visual_edit,
)
from prototype_builder.llm_client import LLMClient, LLMError
from prototype_builder.models import ChatMessage, GenerationRequest
from prototype_builder.orchestrator import GenerationFailed, GenerationOrchestrator, create_orchestrator
from prototype_builder.response_cache import ResponseCache
from prototype_builder.surgical_edit import (
    SelectedElement,
    SurgicalEditError,
    SurgicalEditRequest,
    apply_edits,
    generate_surgical_edit,
    record_surgical_edits,
)

LOG_FILE = Path("logs/app.log")
LOGGER = logging.getLogger("prototype_builder.ui")
MAX_CONVERSATION_MESSAGES = 20

COMPONENT_SNIPPETS = {
    "Button": '<button class="pb-button" onclick="alert(\'Clicked\')">Click me</button>',
    "Card": '<div class="pb-card"><h3>Card title</h3><p>Card body text.</p></div>',
    "Form": (
        '<form class="pb-form" onsubmit="event.preventDefault()">'
        '<input placeholder="Name"><button type="submit">Submit</button></form>'
    ),
}


def _has_file_handler(logger: logging.Logger, path: Path) -> bool:
    target_path = path.resolve()
    for handler in logger.handlers:
        if not isinstance(handler, logging.FileHandler):
            continue
        handler_path = Path(getattr(handler, "baseFilename", "")).resolve()
        if handler_path == target_path:
            return True
    return False


def _configure_logging(level: str = "INFO") -> None:
    LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")

    for logger in (
        LOGGER,
        logging.getLogger("prototype_builder"),
        logging.getLogger("prototype_builder.llm_client"),
    ):
        if not _has_file_handler(logger, LOG_FILE):
            file_handler = logging.FileHandler(LOG_FILE, encoding="utf-8")
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        logger.setLevel(level)
        logger.propagate = False


def build_ui(orchestrator: GenerationOrchestrator | None, llm: LLMClient | None, *, history_depth: int,
             cache: ResponseCache | None, config_error: str | None = None) -> None:
    """Render the builder shell: chat input, progress, preview, code, and history timeline."""
    document = EditorDocument()
    history = HistoryEngine(document, max_depth=history_depth)
    conversation: list[ChatMessage] = []
    progress_parts: list[str] = []
    is_run_active = False

    ui.add_css(
        """
        .pb-field,
        .pb-field .q-field {
            width: 100%;
        }
        .pb-preview {
            border: 1px solid #ddd;
            height: 560px;
            background: white;
        }
        """
    )

    ui.label("Prototype Builder").classes("text-3xl font-bold")
    ui.label("Describe an app and iterate on a live HTML prototype").classes("text-sm text-gray-600")

    with ui.row().classes("w-full items-center gap-4"):
        status_label = ui.label("Status: Idle").classes("text-sm")
        error_label = ui.label("Last error: None").classes("text-sm text-red-700")

    def set_status(value: str) -> None:
        status_label.text = f"Status: {value}"

    def set_error(message: str) -> None:
        error_label.text = f"Last error: {message}"

    with ui.row().classes("w-full items-start gap-6"):
        with ui.card().classes("w-full lg:w-1/3"):
            ui.label("Request").classes("text-xl font-semibold")
            prompt_input = ui.textarea(
                label="Describe what to build or change",
                placeholder="Example: A task tracker with filters and a weekly chart",
            ).props("autogrow").classes("pb-field")
            plan_toggle = ui.switch("Plan before generating", value=True)
            generate_button = ui.button("Generate")
            progress_view = ui.markdown("").classes("w-full text-sm")

        with ui.card().classes("w-full lg:w-2/3"):
            with ui.row().classes("w-full items-center justify-between"):
                ui.label("Preview").classes("text-xl font-semibold")
                viewport_input = ui.select(options=list(VIEWPORTS), value=document.viewport, label="Viewport")
            preview_frame = ui.element("iframe").classes("pb-preview")

    with ui.card().classes("w-full"):
        ui.label("Code").classes("text-xl font-semibold")
        with ui.tabs() as code_tabs:
            html_tab = ui.tab("HTML")
            css_tab = ui.tab("CSS")
            js_tab = ui.tab("JS")
        with ui.tab_panels(code_tabs, value=html_tab).classes("w-full"):
            with ui.tab_panel(html_tab):
                html_input = ui.textarea(label="HTML").props("autogrow").classes("pb-field font-mono")
            with ui.tab_panel(css_tab):
                css_input = ui.textarea(label="CSS").props("autogrow").classes("pb-field font-mono")
            with ui.tab_panel(js_tab):
                js_input = ui.textarea(label="JS").props("autogrow").classes("pb-field font-mono")
        with ui.row().classes("w-full gap-2"):
            apply_code_button = ui.button("Apply code edits")
            component_input = ui.select(options=list(COMPONENT_SNIPPETS), value="Button", label="Component")
            add_component_button = ui.button("Insert component")

    with ui.card().classes("w-full"):
        ui.label("Surgical Edit").classes("text-xl font-semibold")
        with ui.row().classes("w-full items-end gap-2"):
            surgical_input = ui.input(
                label="Targeted change",
                placeholder="Example: make the header background dark blue",
            ).classes("w-1/2")
            selector_input = ui.input(label="Selected element (CSS selector)", placeholder=".header").classes("w-1/4")
            surgical_button = ui.button("Apply edit")

    with ui.card().classes("w-full"):
        with ui.row().classes("w-full items-center justify-between"):
            ui.label("History").classes("text-xl font-semibold")
            with ui.row().classes("gap-2"):
                undo_button = ui.button("Undo")
                redo_button = ui.button("Redo")
                clear_button = ui.button("Clear history").props("flat")
        history_container = ui.column().classes("w-full gap-2")

    cache_container = None
    if cache is not None:
        with ui.card().classes("w-full"):
            ui.label("Cached Responses").classes("text-xl font-semibold")
            cache_container = ui.column().classes("w-full gap-1")

    def refresh_editor() -> None:
        html_input.value = document.html
        css_input.value = document.css
        js_input.value = document.js
        viewport_input.value = document.viewport
        selector_input.value = document.selected_element or ""
        preview_frame._props["srcdoc"] = document.render_preview()
        preview_frame.style(f"width: {VIEWPORT_WIDTHS[document.viewport]}")
        preview_frame.update()
        undo_button.set_enabled(history.can_undo())
        redo_button.set_enabled(history.can_redo())

    def jump_action(target_index: int) -> None:
        try:
            history.jump_to_point(target_index)
        except HistoryError as exc:
            LOGGER.exception("History jump rejected.")
            set_error(str(exc))
            ui.notify("That history entry is no longer available.", type="negative")
            return
        refresh_editor()
        render_history()

    def render_history() -> None:
        history_container.clear()
        timeline = history.timeline()
        current = history.current_index()
        with history_container:
            if not timeline:
                ui.label("No edits yet. Generate a prototype to start the timeline.").classes("text-sm text-gray-600")
                return
            with ui.row().classes("w-full"):
                ui.button("Jump to start", on_click=lambda: jump_action(-1)).props("size=sm flat")
            for index, command in enumerate(timeline):
                marker = "(current) " if index == current else ""
                dimmed = " text-gray-400" if index > current else ""
                with ui.expansion(f"{marker}{format_command_label(command)}").classes("w-full" + dimmed):
                    ui.label(format_relative_time(command.timestamp)).classes("text-xs text-gray-600")
                    ui.button(
                        "Jump here",
                        on_click=lambda _event=None, target=index: jump_action(target),
                    ).props("size=sm")
                    diff_text = command_diff(command)
                    ui.textarea(label="Diff", value=diff_text or "(no code changes)").props(
                        "readonly autogrow"
                    ).classes("pb-field font-mono")

    def render_cache() -> None:
        if cache is None or cache_container is None:
            return
        cache_container.clear()
        with cache_container:
            entries = cache.list_responses()
            if not entries:
                ui.label("No cached responses yet.").classes("text-sm text-gray-600")
                return
            for entry in entries:
                with ui.row().classes("w-full items-center gap-2"):
                    ui.label(entry.prompt[:80] or entry.filename).classes("text-sm")
                    ui.button(
                        "Load",
                        on_click=lambda _event=None, prompt=entry.prompt: load_cached_action(prompt),
                    ).props("size=sm")
                    ui.button(
                        "Delete",
                        on_click=lambda _event=None, name=entry.filename: delete_cached_action(name),
                    ).props("size=sm flat")

    def load_cached_action(prompt: str) -> None:
        if cache is None:
            return
        payload = cache.load_response(prompt)
        if payload is None:
            ui.notify("Cached response could not be loaded.", type="negative")
            return
        commit_generation(document, history, payload, prompt)
        refresh_editor()
        render_history()
        ui.notify("Loaded cached response.", type="positive")

    def delete_cached_action(filename: str) -> None:
        if cache is not None and cache.delete_response(filename):
            ui.notify("Cached response deleted.", type="positive")
        render_cache()

    def on_event(event: LifecycleEvent) -> None:
        if isinstance(event, TextMessageContent):
            progress_parts.append(event.delta)
            progress_view.set_content("".join(progress_parts))
        elif isinstance(event, RunError):
            set_error(event.message)

    async def generate_action() -> None:
        nonlocal is_run_active
        if orchestrator is None:
            ui.notify(config_error or "LLM is not configured.", type="negative")
            return
        if is_run_active:
            ui.notify("A generation is already running.", type="warning")
            return
        prompt = str(prompt_input.value or "").strip()
        if not prompt:
            ui.notify("Describe what to build first.", type="warning")
            return
        request = GenerationRequest(
            user_message=prompt,
            conversation_history=tuple(conversation),
            current_code=document.current_code() if document.html.strip() else None,
        )
        progress_parts.clear()
        progress_view.set_content("")
        is_run_active = True
        generate_button.disable()
        set_status("Generating")
        set_error("None")
        try:
            result = await orchestrator.run(request, on_event, plan_first=bool(plan_toggle.value))
        except GenerationFailed as exc:
            LOGGER.error("Generation failed kind=%s", exc.classification.kind)
            set_status("Error")
            set_error(exc.classification.user_message)
            ui.notify(exc.classification.user_message, type="negative")
            return
        finally:
            is_run_active = False
            generate_button.enable()

        commit_generation(document, history, result.payload, prompt, partial=result.is_degraded)
        conversation.extend(
            [
                ChatMessage(role="user", content=prompt),
                ChatMessage(role="assistant", content=result.payload.explanation),
            ]
        )
        del conversation[:-MAX_CONVERSATION_MESSAGES]
        prompt_input.value = ""
        refresh_editor()
        render_history()
        render_cache()
        if result.warnings:
            set_status("Done (partial)")
            ui.notify(" ".join(result.warnings), type="warning")
        else:
            set_status("Idle")
            ui.notify("Prototype updated.", type="positive")

    def apply_code_action() -> None:
        before = document.snapshot()
        document.set_code(
            html=str(html_input.value or ""),
            css=str(css_input.value or ""),
            js=str(js_input.value or ""),
        )
        after = document.snapshot()
        if after == before:
            ui.notify("No code changes to apply.", type="info")
            return
        history.add_command(make_visual_edit(before, after, "Edited code by hand"))
        refresh_editor()
        render_history()

    def add_component_action() -> None:
        name = str(component_input.value or "Button")
        before = document.snapshot()
        document.update_html(f"{document.html}\n{COMPONENT_SNIPPETS[name]}".strip())
        history.add_command(make_component_add(before, document.snapshot(), name))
        refresh_editor()
        render_history()

    def viewport_action() -> None:
        value = str(viewport_input.value or "desktop")
        if value == document.viewport:
            return
        before = document.snapshot()
        document.set_viewport(value)  # type: ignore[arg-type]
        history.add_command(make_visual_edit(before, document.snapshot(), f"Viewport: {value}"))
        refresh_editor()
        render_history()

    async def surgical_action() -> None:
        if llm is None:
            ui.notify(config_error or "LLM is not configured.", type="negative")
            return
        description = str(surgical_input.value or "").strip()
        if not description:
            ui.notify("Describe the targeted change first.", type="warning")
            return
        selector = str(selector_input.value or "").strip()
        document.set_selected_element(selector or None)
        before = document.current_code()
        request = SurgicalEditRequest(
            description=description,
            current_code=before,
            selected_element=SelectedElement(selector=selector) if selector else None,
        )
        set_status("Editing")
        try:
            response = await generate_surgical_edit(llm, request)
        except (LLMError, SurgicalEditError) as exc:
            LOGGER.exception("Surgical edit failed.")
            set_status("Error")
            set_error(str(exc))
            ui.notify(str(exc), type="negative")
            return
        after = apply_edits(before, response.edits)
        commands = record_surgical_edits(document, history, before, after, response.explanation)
        set_status("Idle")
        refresh_editor()
        render_history()
        if commands:
            ui.notify(response.explanation, type="positive")
        else:
            ui.notify("The edit did not change any code.", type="warning")

    def undo_action() -> None:
        if history.undo() is not None:
            refresh_editor()
            render_history()

    def redo_action() -> None:
        if history.redo() is not None:
            refresh_editor()
            render_history()

    def clear_history_action() -> None:
        history.clear_history()
        render_history()
        refresh_editor()

    def handle_key(event: KeyEventArguments) -> None:
        if not event.action.keydown or not (event.modifiers.ctrl or event.modifiers.meta):
            return
        key = str(event.key.name).lower()
        if key == "z" and event.modifiers.shift:
            redo_action()
        elif key == "z":
            undo_action()
        elif key == "y":
            redo_action()

    generate_button.on_click(generate_action)
    apply_code_button.on_click(apply_code_action)
    add_component_button.on_click(add_component_action)
    surgical_button.on_click(surgical_action)
    undo_button.on_click(undo_action)
    redo_button.on_click(redo_action)
    clear_button.on_click(clear_history_action)
    viewport_input.on("update:model-value", lambda _event: viewport_action())
    ui.keyboard(on_key=handle_key, ignore=["input", "textarea", "select"])

    if config_error:
        set_status("Not configured")
        set_error(config_error)
    refresh_editor()
    render_history()
    render_cache()


def main() -> None:
    host = "127.0.0.1"
    port = 8080
    orchestrator: GenerationOrchestrator | None = None
    llm: LLMClient | None = None
    cache: ResponseCache | None = None
    config_error: str | None = None
    history_depth = 50
    try:
        config = get_config()
    except ConfigError as exc:
        _configure_logging()
        LOGGER.error("Configuration error: %s", exc)
        config_error = str(exc)
    else:
        _configure_logging(config.log_level)
        llm = LLMClient(config)
        orchestrator = create_orchestrator(config, llm)
        cache = orchestrator.response_cache
        history_depth = config.history_max_depth
    print(f"Starting Prototype Builder at http://{host}:{port}")
    build_ui(orchestrator, llm, history_depth=history_depth, cache=cache, config_error=config_error)
    ui.run(host=host, port=port, title="Prototype Builder", show=False, reload=False)


if __name__ == "__main__":
    main()
