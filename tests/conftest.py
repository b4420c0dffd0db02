"""Shared pytest fixtures."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from timetrack_preview.services import telemetry
from timetrack_preview.utils import logging as logging_utils

_ENV_VARS = (
    "TIMETRACK_PREVIEW_SETTINGS",
    "TIMETRACK_PREVIEW_DATA_DIR",
    "TIMETRACK_PREVIEW_EXTENSION",
    "TIMETRACK_PREVIEW_WIDTH",
    "TIMETRACK_PREVIEW_DEBOUNCE_MS",
    "TIMETRACK_PREVIEW_DEBUG",
    "TIMETRACK_PREVIEW_AUTO_OPEN",
    "TIMETRACK_PREVIEW_TIMEOUT",
)


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("TIMETRACK_PREVIEW_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("TIMETRACK_PREVIEW_SETTINGS", str(tmp_path / "unused-settings.json"))


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    root = tmp_path / "time-tracking"
    root.mkdir()
    return root


@pytest.fixture
def telemetry_sink():
    sink = telemetry.InMemoryTelemetrySink().attach(*telemetry.TELEMETRY_EVENTS)
    try:
        yield sink
    finally:
        sink.detach(*telemetry.TELEMETRY_EVENTS)


@pytest.fixture(autouse=True)
def _restore_package_logger(monkeypatch: pytest.MonkeyPatch):
    logger = logging.getLogger("timetrack_preview")
    handlers = list(logger.handlers)
    level, propagate = logger.level, logger.propagate
    monkeypatch.setattr(logging_utils, "_CONFIGURED", False)
    monkeypatch.setattr(logging_utils, "_LOG_PATH", None)
    yield
    for handler in list(logger.handlers):
        if handler not in handlers:
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(level)
    logger.propagate = propagate
