"""JSON file cache of generated payloads keyed by prompt."""

from __future__ import annotations

from dataclasses import dataclass
import hashlib
import json
import logging
from pathlib import Path
import re

from prototype_builder.models import CodePayload, utc_now_iso

LOGGER = logging.getLogger("prototype_builder.response_cache")

SUPPORTED_SCHEMA_VERSIONS = {1}
_SLUG_PATTERN = re.compile(r"[^a-z0-9]+")
_SLUG_MAX_CHARS = 50


@dataclass(frozen=True)
class CachedResponseInfo:
    filename: str
    prompt: str
    timestamp: str


def cache_filename(prompt: str) -> str:
    """Stable filename: prompt slug plus a short content hash."""
    normalized = str(prompt or "").strip()
    slug = _SLUG_PATTERN.sub("-", normalized.lower()).strip("-")[:_SLUG_MAX_CHARS].strip("-") or "prompt"
    digest = hashlib.sha1(normalized.encode("utf-8")).hexdigest()[:8]
    return f"{slug}-{digest}.json"


def _serialize(prompt: str, payload: CodePayload) -> dict[str, object]:
    return {
        "schema_version": 1,
        "prompt": prompt,
        "response": payload.to_dict(),
        "timestamp": utc_now_iso(),
        "metadata": {
            "html_length": len(payload.html),
            "css_length": len(payload.css),
            "js_length": len(payload.js),
        },
    }


def _deserialize(data: dict[str, object]) -> CodePayload:
    schema_version = int(data.get("schema_version", 1))  # type: ignore[arg-type]
    if schema_version not in SUPPORTED_SCHEMA_VERSIONS:
        raise ValueError(f"Unsupported schema_version={schema_version}")
    response = data.get("response")
    if not isinstance(response, dict):
        raise ValueError("Cached entry field 'response' must be an object")
    suggestions = response.get("suggestions", [])
    if not isinstance(suggestions, list):
        suggestions = []
    return CodePayload(
        html=str(response.get("html", "")),
        css=str(response.get("css", "")),
        js=str(response.get("js", "")),
        explanation=str(response.get("explanation", "")),
        suggestions=tuple(str(item) for item in suggestions),
    )


class ResponseCache:
    """Advisory cache: read and write failures are logged, never raised."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory).expanduser()

    def save_response(self, prompt: str, payload: CodePayload) -> Path | None:
        target = self.directory / cache_filename(prompt)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            target.write_text(
                json.dumps(_serialize(prompt, payload), indent=2, ensure_ascii=True) + "\n",
                encoding="utf-8",
            )
        except OSError:
            LOGGER.exception("response_cache_save_failed file=%s", target.name)
            return None
        LOGGER.info("response_cache_saved file=%s", target.name)
        return target

    def load_response(self, prompt: str) -> CodePayload | None:
        target = self.directory / cache_filename(prompt)
        if not target.exists():
            return None
        try:
            data = json.loads(target.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("Cached entry root must be an object")
            return _deserialize(data)
        except (OSError, ValueError):
            LOGGER.exception("response_cache_load_failed file=%s", target.name)
            return None

    def list_responses(self) -> list[CachedResponseInfo]:
        """Cached entries, newest first."""
        if not self.directory.is_dir():
            return []
        entries: list[CachedResponseInfo] = []
        for path in self.directory.glob("*.json"):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError):
                LOGGER.warning("response_cache_skip_unreadable file=%s", path.name)
                continue
            if not isinstance(data, dict):
                continue
            entries.append(
                CachedResponseInfo(
                    filename=path.name,
                    prompt=str(data.get("prompt", "")),
                    timestamp=str(data.get("timestamp", "")),
                )
            )
        entries.sort(key=lambda entry: entry.timestamp, reverse=True)
        return entries

    def delete_response(self, filename: str) -> bool:
        target = self.directory / Path(filename).name
        if not target.exists():
            return False
        try:
            target.unlink()
        except OSError:
            LOGGER.exception("response_cache_delete_failed file=%s", target.name)
            return False
        return True
