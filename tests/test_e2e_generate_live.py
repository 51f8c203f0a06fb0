"""Live E2E repro for prototype generation using .env config."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

import pytest

from prototype_builder.config import ConfigError, get_config
from prototype_builder.events import event_type
from prototype_builder.models import GenerationRequest
from prototype_builder.orchestrator import GenerationFailed, create_orchestrator

RUN_FLAG = "RUN_LIVE_E2E_GENERATE"
PROMPT_ENV = "LIVE_E2E_PROMPT"
DEFAULT_PROMPT = "Build a simple counter with increment and reset buttons"
E2E_LOG_PATH = Path("logs/e2e_generate_live.log")


def _is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _configure_loggers(log_path: Path) -> logging.Logger:
    log_path.parent.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")

    e2e_logger = logging.getLogger("prototype_builder.e2e.generate")
    if not e2e_logger.handlers:
        e2e_handler = logging.FileHandler(log_path, encoding="utf-8")
        e2e_handler.setFormatter(formatter)
        e2e_logger.addHandler(e2e_handler)
    e2e_logger.setLevel(logging.INFO)
    e2e_logger.propagate = False

    for name in ("prototype_builder.llm_client", "prototype_builder.orchestrator"):
        logger = logging.getLogger(name)
        if not any(
            isinstance(handler, logging.FileHandler) and Path(handler.baseFilename) == log_path.resolve()
            for handler in logger.handlers
        ):
            handler = logging.FileHandler(log_path, encoding="utf-8")
            handler.setFormatter(formatter)
            logger.addHandler(handler)

    return e2e_logger


def test_live_generate_prototype() -> None:
    """Run one live generation end to end for repro diagnostics."""
    if not _is_truthy(os.environ.get(RUN_FLAG)):
        pytest.skip(f"Set {RUN_FLAG}=1 to run this live E2E test.")

    logger = _configure_loggers(E2E_LOG_PATH)
    logger.info("Starting live E2E generation test.")

    try:
        config = get_config()
    except ConfigError as exc:
        pytest.fail(f"Live test needs a configured environment: {exc}")
    logger.info("Config snapshot %r", config)

    prompt = os.environ.get(PROMPT_ENV, "").strip() or DEFAULT_PROMPT
    events: list = []
    orchestrator = create_orchestrator(config)
    try:
        result = asyncio.run(orchestrator.run(GenerationRequest(user_message=prompt), events.append))
    except GenerationFailed as exc:
        logger.exception("Live generation failed.")
        pytest.fail(
            f"Live generation failed after {exc.attempts} attempt(s): {exc.classification.user_message} "
            f"See {E2E_LOG_PATH} for details."
        )

    logger.info(
        "Live generation succeeded attempts=%d strategy=%s partial=%s html_chars=%d css_chars=%d js_chars=%d",
        result.attempts,
        result.strategy.kind,
        result.is_partial,
        len(result.payload.html),
        len(result.payload.css),
        len(result.payload.js),
    )
    assert result.payload.html.strip()
    assert event_type(events[0]) == "RunStarted"
    assert event_type(events[-1]) == "RunFinished"
