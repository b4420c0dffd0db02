"""Service layer helpers (formatter, settings, telemetry)."""

from .formatter import ContentFormatter, FormatResult, FormatterConfig
from .settings import Settings, SettingsStore

__all__ = [
    "ContentFormatter",
    "FormatResult",
    "FormatterConfig",
    "Settings",
    "SettingsStore",
]
