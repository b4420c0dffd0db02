"""Translate host notifications into typed events on the main sequence."""

from __future__ import annotations

import logging
from typing import Callable, Mapping

from ..editor.host import EditorHost
from .events import (
    CloseRequested,
    Event,
    EventBus,
    ManualRefreshRequested,
    ShutdownRequested,
    TextChanged,
    ToggleRequested,
    WindowEntered,
    WindowLeft,
)

__all__ = [
    "AUTOCOMMANDS",
    "COMMANDS",
    "HostEventDispatcher",
    "UnknownNotification",
]

LOGGER = logging.getLogger(__name__)

ENTER_AUTOCOMMANDS = ("VimEnter", "BufWinEnter", "BufEnter", "BufWritePost")
TEXT_AUTOCOMMANDS = ("TextChanged", "TextChangedI")
LEAVE_AUTOCOMMANDS = ("WinClosed", "BufWinLeave", "TabEnter")
AUTOCOMMANDS = ENTER_AUTOCOMMANDS + TEXT_AUTOCOMMANDS + LEAVE_AUTOCOMMANDS + ("QuitPre", "VimLeavePre")

COMMANDS: Mapping[str, Callable[[], Event]] = {
    "TimeTrackingToggle": ToggleRequested,
    "TimeTrackingPreview": ToggleRequested,
    "TimeTrackingUpdate": ManualRefreshRequested,
    "TimeTrackingClose": CloseRequested,
}


class UnknownNotification(KeyError):
    """Raised when a notification name has no event mapping."""


class HostEventDispatcher:
    """Owns the event bus and the host-to-event translation table.

    ``post``/``post_later`` always deliver through the host's scheduling
    primitives so that events are processed one at a time on the main
    sequence, whatever thread produced them.
    """

    def __init__(self, host: EditorHost, bus: EventBus[Event] | None = None) -> None:
        self._host = host
        self._bus: EventBus[Event] = bus or EventBus()

    @property
    def bus(self) -> EventBus[Event]:
        return self._bus

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------
    def post(self, event: Event) -> None:
        self._host.schedule(lambda: self._bus.publish(event))

    def post_later(self, delay: float, event: Event) -> None:
        self._host.schedule_later(delay, lambda: self._bus.publish(event))

    def publish_now(self, event: Event) -> None:
        """Publish synchronously; only valid on the main sequence."""

        self._bus.publish(event)

    # ------------------------------------------------------------------
    # Translation
    # ------------------------------------------------------------------
    def event_for_autocmd(
        self,
        name: str,
        *,
        window: int | None = None,
        buffer: int | None = None,
    ) -> Event:
        if name in ENTER_AUTOCOMMANDS:
            if window is None:
                window = self._host.current_window()
            return WindowEntered(window=window)
        if name in TEXT_AUTOCOMMANDS:
            if buffer is None:
                raise ValueError(f"{name} requires a buffer handle")
            return TextChanged(buffer=buffer)
        if name in LEAVE_AUTOCOMMANDS:
            return WindowLeft(window=window)
        if name == "QuitPre":
            return CloseRequested()
        if name == "VimLeavePre":
            return ShutdownRequested()
        raise UnknownNotification(name)

    def event_for_command(self, name: str) -> Event:
        try:
            factory = COMMANDS[name]
        except KeyError:
            raise UnknownNotification(name) from None
        return factory()

    def on_autocmd(
        self,
        name: str,
        *,
        window: int | None = None,
        buffer: int | None = None,
        sync: bool = False,
    ) -> None:
        """Translate an autocommand and deliver it.

        ``sync`` publishes immediately instead of queueing; callers use it when
        already running on the main sequence and the host is about to exit.
        """

        event = self.event_for_autocmd(name, window=window, buffer=buffer)
        if name not in TEXT_AUTOCOMMANDS:
            LOGGER.debug("Autocommand %s -> %s", name, type(event).__name__)
        if sync:
            self.publish_now(event)
        else:
            self.post(event)

    def on_command(self, name: str, *, sync: bool = True) -> None:
        event = self.event_for_command(name)
        LOGGER.debug("Command %s -> %s", name, type(event).__name__)
        if sync:
            self.publish_now(event)
        else:
            self.post(event)
