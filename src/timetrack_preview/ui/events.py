"""Typed host events and the bus that delivers them to the scheduler.

Host-native notifications (autocommands, user commands, timer and process
callbacks) are translated into the closed set of event classes below before
they reach :class:`~timetrack_preview.ui.scheduler.UpdateScheduler`, so the
state machine never depends on the editor binding.
"""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import (
    Callable,
    Generic,
    TypeVar,
    TYPE_CHECKING,
)
from weakref import WeakMethod

from ..editor.host import BufferHandle, WindowHandle
from ..services.formatter import FormatResult

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from typing import DefaultDict

logger = logging.getLogger(__name__)

# Type variable for event types
E = TypeVar("E", bound="Event")

# Handler type: a callable that takes an event and returns None
Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for all events consumed by the scheduler."""

    pass


# High-frequency event types that should not log each publish
_QUIET_EVENT_TYPES: set[type] = set()


# =============================================================================
# Host events
# =============================================================================


@dataclass(slots=True)
class WindowEntered(Event):
    """A window started showing a buffer, or received focus.

    Attributes:
        window: Handle of the window that was entered.
    """

    window: WindowHandle


@dataclass(slots=True)
class TextChanged(Event):
    """The text of a buffer changed in normal or insert mode.

    Attributes:
        buffer: Handle of the modified buffer.
    """

    buffer: BufferHandle


@dataclass(slots=True)
class WindowLeft(Event):
    """A window was closed, stopped showing its buffer, or the tab page changed.

    Attributes:
        window: Handle of the affected window, or None when the host did not
            report one.
    """

    window: WindowHandle | None = None


# =============================================================================
# Commands
# =============================================================================


@dataclass(slots=True)
class ToggleRequested(Event):
    """The user asked to open the preview if closed, or close it if open."""


@dataclass(slots=True)
class ManualRefreshRequested(Event):
    """The user asked to re-run the formatter right away."""


@dataclass(slots=True)
class CloseRequested(Event):
    """The user (or a quit in progress) asked to close the preview."""


@dataclass(slots=True)
class ShutdownRequested(Event):
    """The host is exiting; the scheduler closes the preview and stops."""


# =============================================================================
# Main-sequence callbacks
# =============================================================================


@dataclass(slots=True)
class FormatCompleted(Event):
    """A formatter run finished; posted back onto the main sequence.

    Attributes:
        buffer: The buffer whose text was formatted.
        generation: Generation counter value the request was issued with.
        result: The classified formatter outcome.
    """

    buffer: BufferHandle
    generation: int
    result: FormatResult


@dataclass(slots=True)
class RefreshDue(Event):
    """The edit debounce delay for a buffer elapsed.

    Attributes:
        buffer: The buffer to refresh.
        token: Debounce token; only the newest token per buffer is honored.
    """

    buffer: BufferHandle
    token: int


_QUIET_EVENT_TYPES.update({TextChanged, RefreshDue})


class EventBus(Generic[E]):
    """Synchronous typed dispatch from the dispatcher to the scheduler.

    Bound methods are held weakly so a torn-down session does not keep its
    scheduler alive; other callables are held strongly. A failing handler is
    logged and the remaining handlers still run. Publish only from the host's
    main sequence.
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        self._handlers: DefaultDict[type[Event], list[_Ref]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        self._handlers[event_type].append(_reference(handler))
        logger.debug("%s subscribed to %s", _describe(handler), event_type.__name__)

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Drop the first registration of ``handler``; unknown handlers are ignored."""
        refs = self._handlers.get(event_type, [])
        for index, ref in enumerate(refs):
            if ref() == handler:
                del refs[index]
                return

    def publish(self, event: E) -> None:
        event_type = type(event)
        refs = self._handlers.get(event_type, [])
        if event_type not in _QUIET_EVENT_TYPES:
            logger.debug("Publishing %s to %d handler(s)", event_type.__name__, len(refs))

        collected = False
        for ref in list(refs):
            handler = ref()
            if handler is None:
                collected = True
                continue
            try:
                handler(event)
            except Exception:
                logger.exception("%s failed while handling %s", _describe(handler), event_type.__name__)
        if collected:
            refs[:] = [ref for ref in refs if ref() is not None]

    def clear(self) -> None:
        self._handlers.clear()

    def handler_count(self, event_type: type[E] | None = None) -> int:
        if event_type is not None:
            return len(self._handlers.get(event_type, []))
        return sum(len(refs) for refs in self._handlers.values())


_Ref = Callable[[], "Handler | None"]


def _reference(handler: Handler) -> _Ref:
    if inspect.ismethod(handler):
        return WeakMethod(handler)
    return lambda: handler


def _describe(handler: Handler) -> str:
    if inspect.ismethod(handler):
        return f"{type(handler.__self__).__name__}.{handler.__func__.__name__}"
    return getattr(handler, "__name__", repr(handler))


HOST_EVENT_TYPES: tuple[type[Event], ...] = (
    WindowEntered,
    TextChanged,
    WindowLeft,
    ToggleRequested,
    ManualRefreshRequested,
    CloseRequested,
    ShutdownRequested,
    FormatCompleted,
    RefreshDue,
)

__all__ = [
    # Core infrastructure
    "Event",
    "EventBus",
    "Handler",
    "HOST_EVENT_TYPES",
    # Host events
    "WindowEntered",
    "TextChanged",
    "WindowLeft",
    # Commands
    "ToggleRequested",
    "ManualRefreshRequested",
    "CloseRequested",
    "ShutdownRequested",
    # Main-sequence callbacks
    "FormatCompleted",
    "RefreshDue",
]
