"""Settings dataclass and persistence helpers."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

from jsonschema import Draft7Validator

__all__ = [
    "Settings",
    "SettingsStore",
    "SETTINGS_SCHEMA",
    "DEFAULT_FORMATTER_COMMAND",
    "default_settings_path",
    "validate_payload",
]

LOGGER = logging.getLogger(__name__)
_SETTINGS_DIR = Path.home() / ".config" / "timetrack-preview"
_DEFAULT_SETTINGS_PATH = _SETTINGS_DIR / "settings.json"
_SETTINGS_PATH_ENV = "TIMETRACK_PREVIEW_SETTINGS"
_SETTINGS_VERSION = 1
_ENV_OVERRIDES: Mapping[str, str] = {
    "TIMETRACK_PREVIEW_DATA_DIR": "data_directory",
    "TIMETRACK_PREVIEW_EXTENSION": "extension",
}
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "TIMETRACK_PREVIEW_DEBUG": "debug_logging",
    "TIMETRACK_PREVIEW_AUTO_OPEN": "auto_open",
}
_FLOAT_ENV_OVERRIDES: Mapping[str, str] = {
    "TIMETRACK_PREVIEW_WIDTH": "preview_width_fraction",
    "TIMETRACK_PREVIEW_TIMEOUT": "formatter_timeout",
}
_INT_ENV_OVERRIDES: Mapping[str, str] = {
    "TIMETRACK_PREVIEW_DEBOUNCE_MS": "debounce_ms",
}
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}

DEFAULT_FORMATTER_COMMAND: tuple[str, ...] = (
    "time-tracking-cli",
    "--stdin",
    "--data-directory",
    "{data_dir}",
)

SETTINGS_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "properties": {
        "data_directory": {"type": "string"},
        "extension": {"type": "string", "minLength": 1, "pattern": r"^\.?[^./\\]+$"},
        "preview_width_fraction": {"type": "number", "exclusiveMinimum": 0, "maximum": 1},
        "min_preview_width": {"type": "integer", "minimum": 1},
        "formatter_command": {
            "type": "array",
            "items": {"type": "string"},
            "minItems": 1,
        },
        "formatter_timeout": {"type": ["number", "null"], "exclusiveMinimum": 0},
        "debounce_ms": {"type": "integer", "minimum": 0},
        "auto_open": {"type": "boolean"},
        "prefix": {"type": "string"},
        "suffix": {"type": "string"},
        "debug_logging": {"type": "boolean"},
        "log_dir": {"type": ["string", "null"]},
        "version": {"type": "integer"},
    },
}
_VALIDATOR = Draft7Validator(SETTINGS_SCHEMA)


def _accepts_null(key: str) -> bool:
    kind = SETTINGS_SCHEMA["properties"].get(key, {}).get("type")
    return isinstance(kind, list) and "null" in kind


def default_settings_path() -> Path:
    """Return the settings file location, honoring the environment override."""

    override = os.environ.get(_SETTINGS_PATH_ENV)
    if override:
        return Path(override).expanduser()
    return _DEFAULT_SETTINGS_PATH


@dataclass(slots=True)
class Settings:
    """User-configurable options for the preview engine."""

    data_directory: str = "~/time-tracking"
    extension: str = "md"
    preview_width_fraction: float = 1 / 3
    min_preview_width: int = 20
    formatter_command: list[str] = field(default_factory=lambda: list(DEFAULT_FORMATTER_COMMAND))
    formatter_timeout: float | None = 10.0
    debounce_ms: int = 150
    auto_open: bool = True
    prefix: str = ""
    suffix: str = ""
    debug_logging: bool = False
    log_dir: str | None = None

    @property
    def data_path(self) -> Path:
        return Path(self.data_directory).expanduser()

    @property
    def debounce_seconds(self) -> float:
        return max(0, self.debounce_ms) / 1000.0

    @property
    def normalized_extension(self) -> str:
        return self.extension.strip().lstrip(".")


def validate_payload(payload: Mapping[str, Any]) -> tuple[Dict[str, Any], list[str]]:
    """Split ``payload`` into schema-valid known fields and error messages."""

    allowed = {item.name for item in fields(Settings)}
    accepted: Dict[str, Any] = {}
    problems: list[str] = []
    invalid_keys: set[str] = set()
    for error in _VALIDATOR.iter_errors(dict(payload)):
        key = str(error.path[0]) if error.path else ""
        invalid_keys.add(key)
        label = key or "<root>"
        problems.append(f"{label}: {error.message}")
    if "" in invalid_keys:
        return {}, problems
    for key, value in payload.items():
        if key not in allowed or key in invalid_keys:
            continue
        if key == "formatter_command":
            value = [str(part) for part in value]
        accepted[key] = value
    return accepted, problems


class SettingsStore:
    """Persistence adapter for :class:`Settings`."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or default_settings_path()

    @property
    def path(self) -> Path:
        """Return the resolved path backing this store."""

        return self._path

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        """Load settings from disk, applying runtime/environment overrides when present."""

        payload = self._read_payload()
        settings = Settings()
        if payload:
            data, problems = validate_payload(payload)
            for problem in problems:
                LOGGER.warning("Ignoring invalid setting in %s: %s", self._path, problem)
            settings = replace(settings, **data)
            LOGGER.debug("Settings loaded from %s: %s", self._path, sorted(data))

        if overrides:
            settings = self._apply_overrides(settings, overrides, source="runtime")

        return self._apply_env_overrides(settings)

    def save(self, settings: Settings) -> Path:
        """Persist settings to disk with atomic file writes."""

        payload = asdict(settings)
        payload["version"] = _SETTINGS_VERSION
        body = json.dumps(payload, indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            text = self._path.read_text(encoding="utf-8")
            payload = json.loads(text)
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(payload, dict):
            LOGGER.warning("Settings file %s does not contain an object", self._path)
            return {}
        return payload

    def _apply_overrides(
        self,
        settings: Settings,
        overrides: Mapping[str, Any],
        *,
        source: str = "runtime",
    ) -> Settings:
        filtered = {
            key: value
            for key, value in overrides.items()
            if value is not None or _accepts_null(key)
        }
        data, problems = validate_payload(filtered)
        for problem in problems:
            LOGGER.warning("Ignoring invalid %s setting override: %s", source, problem)
        if data:
            LOGGER.debug("Applying %s settings overrides: %s", source, sorted(data))
            settings = replace(settings, **data)
        return settings

    def _apply_env_overrides(self, settings: Settings) -> Settings:
        overrides: Dict[str, Any] = {}
        for env_name, field_name in _ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value
        for env_name, field_name in _BOOL_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value.strip().lower() in _TRUE_VALUES
        for env_name, field_name in _INT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = int(value, 10)
            except ValueError:
                LOGGER.warning(
                    "Environment override %s=%s is not a valid integer",
                    env_name,
                    value,
                )
        for env_name, field_name in _FLOAT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = float(value)
            except ValueError:
                LOGGER.warning(
                    "Environment override %s=%s is not a valid float", env_name, value
                )
        if overrides:
            settings = self._apply_overrides(settings, overrides, source="environment")
        return settings
