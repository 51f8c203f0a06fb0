"""Runtime configuration loading from environment and optional .env file."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os

REQUIRED_ENV_VARS = ("OPENAI_API_KEY", "LLM_MODEL")
LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class ConfigError(Exception):
    """Configuration loading error with user-facing message text."""


@dataclass(frozen=True)
class AppConfig:
    """Application config contract for the LLM endpoint and generation policy."""

    openai_api_key: str
    model: str
    base_url: str | None = None
    temperature: float = 0.7
    max_attempts: int = 3
    retry_base_delay_ms: int = 2000
    retry_max_delay_ms: int = 16000
    timeout_initial_ms: int = 120_000
    timeout_per_retry_ms: int = 60_000
    timeout_maximum_ms: int = 600_000
    activity_window_ms: int = 30_000
    history_max_depth: int = 50
    response_cache_dir: str | None = None
    log_level: str = "INFO"

    def __repr__(self) -> str:
        return (
            "AppConfig("
            "openai_api_key='***REDACTED***', "
            f"model={self.model!r}, "
            f"base_url={self.base_url!r}, "
            f"temperature={self.temperature!r}, "
            f"max_attempts={self.max_attempts!r}, "
            f"retry_base_delay_ms={self.retry_base_delay_ms!r}, "
            f"retry_max_delay_ms={self.retry_max_delay_ms!r}, "
            f"timeout_initial_ms={self.timeout_initial_ms!r}, "
            f"timeout_per_retry_ms={self.timeout_per_retry_ms!r}, "
            f"timeout_maximum_ms={self.timeout_maximum_ms!r}, "
            f"activity_window_ms={self.activity_window_ms!r}, "
            f"history_max_depth={self.history_max_depth!r}, "
            f"response_cache_dir={self.response_cache_dir!r}, "
            f"log_level={self.log_level!r})"
        )


def _parse_env_line(line: str) -> tuple[str, str] | None:
    stripped = line.strip()
    if not stripped or stripped.startswith("#") or "=" not in stripped:
        return None

    key, raw_value = stripped.split("=", 1)
    key = key.strip()
    value = raw_value.strip()
    if not key:
        return None

    if value and value[0] == value[-1] and value[0] in {'"', "'"}:
        value = value[1:-1]
    return key, value


def _load_dotenv(dotenv_path: Path) -> None:
    if not dotenv_path.exists():
        return

    for line in dotenv_path.read_text(encoding="utf-8").splitlines():
        parsed = _parse_env_line(line)
        if parsed is None:
            continue
        key, value = parsed
        os.environ.setdefault(key, value)


def _require_env(name: str) -> str:
    value = os.environ.get(name, "").strip()
    if value:
        return value
    raise KeyError(name)


def _optional_env(name: str) -> str | None:
    value = os.environ.get(name)
    if value is None:
        return None
    normalized = value.strip()
    return normalized or None


def _optional_float_env(name: str, default: float) -> float:
    value = _optional_env(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ConfigError(
            f"Configuration error: {name} must be a valid float, got {value!r}."
        ) from exc


def _optional_int_env(name: str, default: int, *, minimum: int = 0) -> int:
    value = _optional_env(name)
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError as exc:
        raise ConfigError(
            f"Configuration error: {name} must be a valid integer, got {value!r}."
        ) from exc
    if parsed < minimum:
        raise ConfigError(f"Configuration error: {name} must be >= {minimum}, got {parsed}.")
    return parsed


def _log_level_env(name: str) -> str:
    value = (_optional_env(name) or "INFO").upper()
    if value not in LOG_LEVELS:
        allowed = ", ".join(sorted(LOG_LEVELS))
        raise ConfigError(f"Configuration error: {name} must be one of {allowed}, got {value!r}.")
    return value


def get_config() -> AppConfig:
    """Load config from environment variables and `.env` in the working directory."""
    _load_dotenv(Path(".env"))

    missing: list[str] = []
    values: dict[str, str] = {}
    for var_name in REQUIRED_ENV_VARS:
        try:
            values[var_name] = _require_env(var_name)
        except KeyError:
            missing.append(var_name)

    if missing:
        missing_text = ", ".join(missing)
        raise ConfigError(
            "Configuration error: missing required environment variables: "
            f"{missing_text}. Set them in your shell or in `.env`."
        )

    return AppConfig(
        openai_api_key=values["OPENAI_API_KEY"],
        model=values["LLM_MODEL"],
        base_url=_optional_env("LLM_BASE_URL"),
        temperature=_optional_float_env("LLM_TEMPERATURE", 0.7),
        max_attempts=_optional_int_env("GENERATION_MAX_ATTEMPTS", 3, minimum=1),
        retry_base_delay_ms=_optional_int_env("RETRY_BASE_DELAY_MS", 2000),
        retry_max_delay_ms=_optional_int_env("RETRY_MAX_DELAY_MS", 16000),
        timeout_initial_ms=_optional_int_env("GENERATION_TIMEOUT_MS", 120_000, minimum=1),
        timeout_per_retry_ms=_optional_int_env("GENERATION_TIMEOUT_PER_RETRY_MS", 60_000),
        timeout_maximum_ms=_optional_int_env("GENERATION_TIMEOUT_MAX_MS", 600_000, minimum=1),
        activity_window_ms=_optional_int_env("STREAM_ACTIVITY_WINDOW_MS", 30_000, minimum=1),
        history_max_depth=_optional_int_env("HISTORY_MAX_DEPTH", 50, minimum=1),
        response_cache_dir=_optional_env("RESPONSE_CACHE_DIR"),
        log_level=_log_level_env("LOG_LEVEL"),
    )
