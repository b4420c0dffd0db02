"""Session wiring and the ``timetrack-preview`` command line entry point."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import shutil
import sys
from dataclasses import asdict, dataclass, field
from dataclasses import fields as dataclass_fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, TextIO

from .editor.classifier import FileClassifier
from .editor.host import EditorHost
from .editor.preview_model import PreviewState
from .editor.preview_window import PreviewWindowManager
from .services.formatter import ContentFormatter, FormatResult, FormatterConfig
from .services.settings import SETTINGS_SCHEMA, Settings, SettingsStore
from .ui.dispatcher import HostEventDispatcher
from .ui.scheduler import FormatterClient, UpdateScheduler
from .utils import logging as logging_utils

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_LOGGER = logging.getLogger(__name__)


def configure_logging(
    debug: bool = False,
    *,
    log_dir: Path | str | None = None,
    console: bool = False,
    force: bool = False,
) -> Path:
    """Configure package logging and return the active log file."""

    level = logging.DEBUG if debug else logging.INFO
    path = logging_utils.setup_logging(level, log_dir=log_dir, console=console, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))
    return path


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        settings = active_store.load(overrides=overrides)
    except OSError as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        settings = Settings()
    return settings


def build_formatter(settings: Settings, *, loop: asyncio.AbstractEventLoop | None = None) -> ContentFormatter:
    config = FormatterConfig(
        command=list(settings.formatter_command),
        data_dir=settings.data_path,
        timeout=settings.formatter_timeout,
        prefix=settings.prefix,
        suffix=settings.suffix,
    )
    return ContentFormatter(config, loop=loop)


@dataclass(slots=True)
class PreviewSession:
    """Everything one editor instance needs to drive the preview."""

    host: EditorHost
    settings: Settings
    state: PreviewState
    classifier: FileClassifier
    manager: PreviewWindowManager
    formatter: FormatterClient
    dispatcher: HostEventDispatcher
    scheduler: UpdateScheduler

    def teardown(self) -> None:
        """Detach the scheduler from the bus; the preview itself is left as is."""

        self.scheduler.detach(self.dispatcher.bus)
        self.dispatcher.bus.clear()
        _LOGGER.debug("Preview session torn down")


def create_session(
    host: EditorHost,
    settings: Settings,
    *,
    loop: asyncio.AbstractEventLoop | None = None,
    formatter: FormatterClient | None = None,
) -> PreviewSession:
    """Wire classifier, window manager, formatter and scheduler around ``host``."""

    state = PreviewState()
    classifier = FileClassifier(
        host,
        state,
        data_dir=settings.data_path,
        extension=settings.normalized_extension,
    )
    manager = PreviewWindowManager(
        host,
        state,
        width_fraction=settings.preview_width_fraction,
        min_width=settings.min_preview_width,
    )
    active_formatter = formatter or build_formatter(settings, loop=loop)
    dispatcher = HostEventDispatcher(host)
    scheduler = UpdateScheduler(
        host=host,
        classifier=classifier,
        manager=manager,
        formatter=active_formatter,
        poster=dispatcher,
        debounce_seconds=settings.debounce_seconds,
        auto_open=settings.auto_open,
    )
    scheduler.attach(dispatcher.bus)
    _LOGGER.info(
        "Preview session ready (data_dir=%s, extension=%s)",
        settings.data_path,
        settings.normalized_extension,
    )
    return PreviewSession(
        host=host,
        settings=settings,
        state=state,
        classifier=classifier,
        manager=manager,
        formatter=active_formatter,
        dispatcher=dispatcher,
        scheduler=scheduler,
    )


@dataclass(slots=True)
class CheckReport:
    """Result of probing the data directory and the formatter executable."""

    settings_path: Path | None
    data_dir: Path
    data_dir_exists: bool
    formatter: str
    formatter_path: str | None
    log_path: Path | None = None
    problems: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems

    def lines(self) -> list[str]:
        lines = [
            f"settings: {self.settings_path or '<defaults>'}",
            f"data directory: {self.data_dir} ({'found' if self.data_dir_exists else 'missing'})",
            f"formatter: {self.formatter} ({self.formatter_path or 'not found'})",
        ]
        if self.log_path is not None:
            lines.append(f"log file: {self.log_path}")
        lines.extend(f"problem: {problem}" for problem in self.problems)
        return lines


def check_environment(settings: Settings, *, settings_path: Path | None = None) -> CheckReport:
    data_dir = settings.data_path
    data_dir_exists = data_dir.is_dir()
    formatter = settings.formatter_command[0] if settings.formatter_command else ""
    formatter_path = shutil.which(formatter) if formatter else None
    problems: list[str] = []
    if not data_dir_exists:
        problems.append(f"data directory {data_dir} does not exist")
    if formatter_path is None:
        problems.append(f"formatter '{formatter}' is not on PATH")
    return CheckReport(
        settings_path=settings_path,
        data_dir=data_dir,
        data_dir_exists=data_dir_exists,
        formatter=formatter,
        formatter_path=formatter_path,
        log_path=logging_utils.get_log_path(),
        problems=problems,
    )


def render_file(settings: Settings, path: Path) -> FormatResult:
    """Run the formatter once on ``path`` and return its result."""

    text = path.read_text(encoding="utf-8")
    formatter = build_formatter(settings)
    return asyncio.run(formatter.run(text))


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point invoked by the ``timetrack-preview`` console script."""

    args = _parse_cli_args(argv)
    debug = args.debug or _env_flag("TIMETRACK_PREVIEW_DEBUG", default=False)
    configure_logging(debug, console=debug)

    settings_path = Path(args.settings_path).expanduser() if args.settings_path else None
    store = SettingsStore(settings_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        return 2

    settings = load_settings(store=store, overrides=cli_overrides or None)

    if args.dump_settings:
        _dump_settings(settings, store, overrides=cli_overrides)
        return 0

    if settings.debug_logging and not debug:
        configure_logging(True, log_dir=settings.log_dir, force=True)

    if args.command == "check":
        report = check_environment(settings, settings_path=store.path)
        for line in report.lines():
            print(line)
        return 0 if report.ok else 1

    if args.command == "render":
        path = Path(args.file).expanduser()
        try:
            result = render_file(settings, path)
        except OSError as exc:
            print(f"Unable to read {path}: {exc}", file=sys.stderr)
            return 1
        print("\n".join(result.lines()))
        return 0 if result.ok else 1

    _LOGGER.debug("No command given")
    print("nothing to do; try 'check', 'render FILE' or --dump-settings", file=sys.stderr)
    return 2


def _parse_cli_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="timetrack-preview",
        description="Inspect the time tracking preview configuration or render a file.",
    )
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings payload and exit.",
    )
    parser.add_argument(
        "--settings",
        dest="settings_path",
        metavar="PATH",
        help="Override the default ~/.config/timetrack-preview/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings (repeatable).",
    )
    parser.add_argument("--debug", action="store_true", help="Enable DEBUG logging on stderr.")
    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("check", help="Report data directory and formatter availability.")
    render = subparsers.add_parser("render", help="Run the formatter on FILE and print the summary.")
    render.add_argument("file", metavar="FILE")
    return parser.parse_args(argv)


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    """Parse ``KEY=VALUE`` pairs using the JSON types declared for each setting."""

    known = {item.name for item in dataclass_fields(Settings)}
    overrides: Dict[str, Any] = {}
    for entry in items:
        key, sep, raw_value = entry.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        if key not in known:
            raise ValueError(f"Unknown setting '{key}'.")
        overrides[key] = _coerce_value(key, raw_value.strip())
    return overrides


def _coerce_value(key: str, raw_value: str) -> Any:
    kinds = SETTINGS_SCHEMA["properties"][key]["type"]
    if isinstance(kinds, str):
        kinds = [kinds]
    if "null" in kinds and raw_value.lower() in {"none", "null"}:
        return None
    if "boolean" in kinds:
        return _parse_bool(raw_value)
    if "integer" in kinds:
        return int(raw_value, 10)
    if "number" in kinds:
        return float(raw_value)
    if "array" in kinds:
        try:
            value = json.loads(raw_value or "[]")
        except json.JSONDecodeError as exc:
            raise ValueError(f"'{key}' expects a JSON array") from exc
        if not isinstance(value, list):
            raise ValueError(f"'{key}' expects a JSON array")
        return value
    return raw_value


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    metadata = {
        "path": str(store.path),
        "cli_overrides": sorted(overrides.keys()),
        "environment_variables": _active_env_overrides(),
    }
    output = {"settings": asdict(settings), "meta": metadata}
    json.dump(output, destination, indent=2)
    destination.write("\n")


def _active_env_overrides() -> list[str]:
    return sorted(name for name in os.environ if name.startswith("TIMETRACK_PREVIEW_"))
