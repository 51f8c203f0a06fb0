"""In-memory editable document that history commands apply to and revert against."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Literal

from prototype_builder.models import CodePayload

LOGGER = logging.getLogger("prototype_builder.editor_state")

Viewport = Literal["mobile", "tablet", "desktop"]
CodeField = Literal["html", "css", "js"]

VIEWPORTS: tuple[Viewport, ...] = ("mobile", "tablet", "desktop")
VIEWPORT_WIDTHS = {"mobile": "375px", "tablet": "768px", "desktop": "100%"}

_PREVIEW_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Preview</title>
  <style>
    * {{ margin: 0; padding: 0; box-sizing: border-box; }}
    body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; }}
{css}
  </style>
</head>
<body>
{html}
  <script>
{js}
  </script>
</body>
</html>
"""


@dataclass(frozen=True)
class CodeSnapshot:
    """Everything needed to restore the editor to an earlier state."""

    html: str = ""
    css: str = ""
    js: str = ""
    selected_element: str | None = None
    viewport: Viewport = "desktop"

    def code(self) -> dict[str, str]:
        return {"html": self.html, "css": self.css, "js": self.js}


class EditorDocument:
    def __init__(self, *, viewport: Viewport = "desktop") -> None:
        self.html = ""
        self.css = ""
        self.js = ""
        self.selected_element: str | None = None
        self.viewport: Viewport = viewport

    def set_code(self, *, html: str, css: str, js: str) -> None:
        self.html = html
        self.css = css
        self.js = js
        LOGGER.debug("editor_set_code html=%d css=%d js=%d", len(html), len(css), len(js))

    def set_payload(self, payload: CodePayload) -> None:
        self.set_code(html=payload.html, css=payload.css, js=payload.js)

    def update_html(self, html: str) -> None:
        self.html = html

    def update_css(self, css: str) -> None:
        self.css = css

    def update_js(self, js: str) -> None:
        self.js = js

    def update_field(self, field_name: CodeField, content: str) -> None:
        if field_name == "html":
            self.update_html(content)
        elif field_name == "css":
            self.update_css(content)
        elif field_name == "js":
            self.update_js(content)
        else:
            raise ValueError(f"Unknown code field: {field_name}")

    def read_field(self, field_name: CodeField) -> str:
        if field_name not in ("html", "css", "js"):
            raise ValueError(f"Unknown code field: {field_name}")
        return str(getattr(self, field_name))

    def set_selected_element(self, selector: str | None) -> None:
        self.selected_element = selector

    def set_viewport(self, viewport: Viewport) -> None:
        if viewport not in VIEWPORTS:
            raise ValueError(f"viewport must be one of {', '.join(VIEWPORTS)}.")
        self.viewport = viewport

    def clear_code(self) -> None:
        self.set_code(html="", css="", js="")

    def current_code(self) -> CodePayload:
        return CodePayload(html=self.html, css=self.css, js=self.js)

    def snapshot(self) -> CodeSnapshot:
        return CodeSnapshot(
            html=self.html,
            css=self.css,
            js=self.js,
            selected_element=self.selected_element,
            viewport=self.viewport,
        )

    def apply_snapshot(self, snapshot: CodeSnapshot) -> None:
        self.set_code(html=snapshot.html, css=snapshot.css, js=snapshot.js)
        self.set_selected_element(snapshot.selected_element)
        self.set_viewport(snapshot.viewport)

    def render_preview(self) -> str:
        """Single self-contained HTML page for the preview frame."""
        return _PREVIEW_TEMPLATE.format(html=self.html, css=self.css, js=self.js)
