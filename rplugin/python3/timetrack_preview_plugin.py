"""Remote plugin entry point discovered by ``:UpdateRemotePlugins``."""

from timetrack_preview.nvim.plugin import TimeTrackingPlugin

__all__ = ["TimeTrackingPlugin"]
