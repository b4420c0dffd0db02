"""Neovim binding: pynvim host adapter and the remote plugin class."""

from .host import NvimHost
from .plugin import TimeTrackingPlugin

__all__ = ["NvimHost", "TimeTrackingPlugin"]
