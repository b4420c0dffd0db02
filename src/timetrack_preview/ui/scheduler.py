"""Event-driven controller deciding when the preview opens, refreshes or closes."""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping, Protocol

from ..editor.classifier import FileClassifier
from ..editor.host import BufferHandle, EditorHost, HostError
from ..editor.preview_window import PreviewWindowManager
from ..services.formatter import FormatResult
from .events import (
    CloseRequested,
    Event,
    EventBus,
    FormatCompleted,
    HOST_EVENT_TYPES,
    ManualRefreshRequested,
    RefreshDue,
    ShutdownRequested,
    TextChanged,
    ToggleRequested,
    WindowEntered,
    WindowLeft,
)

__all__ = ["SchedulerPhase", "UpdateScheduler", "FormatterClient", "EventPoster"]

LOGGER = logging.getLogger(__name__)


class SchedulerPhase(str, Enum):
    """States of the preview state machine."""

    IDLE = "idle"
    PREVIEW_OPEN = "preview_open"
    SHUTDOWN = "shutdown"


class FormatterClient(Protocol):
    """Non-blocking formatter entry point used by the scheduler."""

    def submit(self, text: str, callback: Callable[[FormatResult], None]) -> Any:  # pragma: no cover - protocol
        ...


class EventPoster(Protocol):
    """Delivers events onto the host's main sequence."""

    def post(self, event: Event) -> None:  # pragma: no cover - protocol
        ...

    def post_later(self, delay: float, event: Event) -> None:  # pragma: no cover - protocol
        ...


@dataclass(slots=True)
class _FormatJob:
    buffer: BufferHandle
    generation: int
    stale: bool = False
    issued_at: float = field(default_factory=time.monotonic)


class UpdateScheduler:
    """State machine consuming typed host events.

    Guarantees at most one formatter invocation in flight per buffer: edits
    arriving while a run is outstanding mark it stale, and its completion
    triggers exactly one follow-up run instead of rendering.
    """

    def __init__(
        self,
        *,
        host: EditorHost,
        classifier: FileClassifier,
        manager: PreviewWindowManager,
        formatter: FormatterClient,
        poster: EventPoster,
        debounce_seconds: float = 0.0,
        auto_open: bool = True,
    ) -> None:
        self._host = host
        self._classifier = classifier
        self._manager = manager
        self._formatter = formatter
        self._poster = poster
        self._debounce_seconds = max(0.0, float(debounce_seconds))
        self._auto_open = auto_open
        self._phase = SchedulerPhase.IDLE
        self._active_buffer: BufferHandle | None = None
        self._inflight: dict[BufferHandle, _FormatJob] = {}
        self._debounce_tokens: dict[BufferHandle, int] = {}
        self._token_seq = 0
        self._handling = False
        self._backlog: deque[Event] = deque()
        self._handlers: Mapping[type[Event], Callable[[Any], None]] = {
            WindowEntered: self._on_window_entered,
            TextChanged: self._on_text_changed,
            WindowLeft: self._on_window_left,
            ToggleRequested: self._on_toggle,
            ManualRefreshRequested: self._on_manual_refresh,
            CloseRequested: self._on_close,
            ShutdownRequested: self._on_shutdown,
            FormatCompleted: self._on_format_completed,
            RefreshDue: self._on_refresh_due,
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def phase(self) -> SchedulerPhase:
        return self._phase

    @property
    def active_buffer(self) -> BufferHandle | None:
        return self._active_buffer

    def in_flight(self) -> dict[BufferHandle, int]:
        """Return buffer → generation for outstanding formatter runs."""

        return {buffer: job.generation for buffer, job in self._inflight.items()}

    def is_stale(self, buffer: BufferHandle) -> bool:
        job = self._inflight.get(buffer)
        return job is not None and job.stale

    def attach(self, bus: EventBus[Event]) -> None:
        for event_type in HOST_EVENT_TYPES:
            bus.subscribe(event_type, self.handle)

    def detach(self, bus: EventBus[Event]) -> None:
        for event_type in HOST_EVENT_TYPES:
            bus.unsubscribe(event_type, self.handle)

    def handle(self, event: Event) -> None:
        """Apply one event to the state machine.

        Events arriving while a transition is still running (a synchronous
        host request served during one of its RPC calls) are applied after it.
        """

        if self._handling:
            LOGGER.debug("Deferring %s until the current transition finishes", type(event).__name__)
            self._backlog.append(event)
            return
        self._handling = True
        try:
            self._apply(event)
            while self._backlog:
                self._apply(self._backlog.popleft())
        finally:
            self._handling = False

    def _apply(self, event: Event) -> None:
        if self._phase is SchedulerPhase.SHUTDOWN:
            LOGGER.debug("Ignoring %s after shutdown", type(event).__name__)
            return
        handler = self._handlers.get(type(event))
        if handler is None:
            LOGGER.debug("No transition for %s", type(event).__name__)
            return
        self._heal()
        handler(event)
        if self._phase is SchedulerPhase.PREVIEW_OPEN:
            self._close_if_nothing_visible()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def _on_window_entered(self, event: WindowEntered) -> None:
        buffer = self._tracking_buffer_of(event.window)
        if buffer is None:
            return
        if self._phase is SchedulerPhase.IDLE:
            if self._auto_open:
                self._open_for(buffer)
            return
        if buffer != self._active_buffer:
            LOGGER.debug("Active tracking buffer switched %s -> %s", self._active_buffer, buffer)
            self._active_buffer = buffer
            self._request_format(buffer)

    def _on_text_changed(self, event: TextChanged) -> None:
        if self._phase is not SchedulerPhase.PREVIEW_OPEN:
            return
        buffer = event.buffer
        if self._manager.state.rendering or self._manager.is_preview_buffer(buffer):
            return
        if buffer != self._active_buffer:
            return
        if self._debounce_seconds <= 0:
            self._request_format(buffer)
            return
        self._token_seq += 1
        token = self._token_seq
        self._debounce_tokens[buffer] = token
        self._poster.post_later(self._debounce_seconds, RefreshDue(buffer=buffer, token=token))

    def _on_refresh_due(self, event: RefreshDue) -> None:
        if self._debounce_tokens.get(event.buffer) != event.token:
            return
        del self._debounce_tokens[event.buffer]
        if self._phase is not SchedulerPhase.PREVIEW_OPEN or event.buffer != self._active_buffer:
            return
        self._request_format(event.buffer)

    def _on_window_left(self, event: WindowLeft) -> None:
        # Visibility is re-evaluated after every event in ``handle``.
        if event.window is not None and self._manager.is_preview_window(event.window):
            LOGGER.debug("Preview window %s is being closed by the host", event.window)

    def _on_toggle(self, event: ToggleRequested) -> None:
        if self._phase is SchedulerPhase.PREVIEW_OPEN:
            self._close()
            return
        try:
            window = self._host.current_window()
        except HostError:
            LOGGER.debug("Toggle ignored; current window unavailable", exc_info=True)
            return
        buffer = self._tracking_buffer_of(window)
        if buffer is None:
            LOGGER.debug("Toggle ignored; window %s is not a tracking file", window)
            return
        self._open_for(buffer)

    def _on_manual_refresh(self, event: ManualRefreshRequested) -> None:
        if self._phase is not SchedulerPhase.PREVIEW_OPEN:
            return
        buffer: BufferHandle | None = None
        try:
            buffer = self._tracking_buffer_of(self._host.current_window())
        except HostError:
            LOGGER.debug("Current window unavailable for manual refresh", exc_info=True)
        if buffer is None:
            buffer = self._active_buffer
        if buffer is None:
            return
        self._active_buffer = buffer
        self._debounce_tokens.pop(buffer, None)
        self._request_format(buffer)

    def _on_close(self, event: CloseRequested) -> None:
        self._close()

    def _on_shutdown(self, event: ShutdownRequested) -> None:
        self._close()
        self._phase = SchedulerPhase.SHUTDOWN
        LOGGER.info("Preview scheduler shut down")

    def _on_format_completed(self, event: FormatCompleted) -> None:
        job = self._inflight.get(event.buffer)
        if job is None or job.generation != event.generation:
            LOGGER.debug("Dropping completion for unknown request %s/%s", event.buffer, event.generation)
            return
        del self._inflight[event.buffer]
        if self._phase is not SchedulerPhase.PREVIEW_OPEN:
            return
        if job.stale:
            if event.buffer == self._active_buffer:
                LOGGER.debug("Buffer %s changed during formatting; issuing follow-up", event.buffer)
                self._request_format(event.buffer)
            return
        if not self._manager.state.is_current(event.generation):
            LOGGER.debug("Discarding superseded result for buffer %s", event.buffer)
            return
        self._render(event.result)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _tracking_buffer_of(self, window: int | None) -> BufferHandle | None:
        if not self._classifier.is_tracking_window(window):
            return None
        try:
            return self._host.window_buffer(window)  # type: ignore[arg-type]
        except HostError:
            return None

    def _open_for(self, buffer: BufferHandle) -> None:
        try:
            self._manager.ensure_open()
        except HostError as exc:
            LOGGER.warning("Unable to open preview window: %s", exc)
            self._manager.reset()
            self._fall_idle()
            return
        self._phase = SchedulerPhase.PREVIEW_OPEN
        self._active_buffer = buffer
        self._request_format(buffer)

    def _request_format(self, buffer: BufferHandle) -> None:
        state = self._manager.state
        job = self._inflight.get(buffer)
        if job is not None:
            job.stale = True
            state.next_generation()
            LOGGER.debug("Coalesced refresh for buffer %s into in-flight run", buffer)
            return
        if not self._classifier.any_tracking_visible():
            self._close()
            return
        try:
            text = "\n".join(self._host.buffer_lines(buffer))
        except HostError:
            LOGGER.debug("Unable to read buffer %s for formatting", buffer, exc_info=True)
            return
        generation = state.next_generation()
        self._inflight[buffer] = _FormatJob(buffer=buffer, generation=generation)

        def _on_result(result: FormatResult) -> None:
            self._poster.post(FormatCompleted(buffer=buffer, generation=generation, result=result))

        try:
            self._formatter.submit(text, _on_result)
        except RuntimeError as exc:
            LOGGER.error("Unable to schedule formatter run: %s", exc)
            del self._inflight[buffer]
            self._render(FormatResult.failure("could not schedule formatter run", detail=str(exc)))

    def _render(self, result: FormatResult) -> None:
        if not result.ok:
            LOGGER.info("Rendering formatter error: %s", result.message)
        try:
            self._manager.update_content(result.lines())
        except HostError as exc:
            LOGGER.warning("Unable to update preview buffer: %s", exc)
            self._manager.reset()
            self._fall_idle()

    def _close(self) -> None:
        self._manager.close()
        self._fall_idle()

    def _fall_idle(self) -> None:
        self._phase = SchedulerPhase.IDLE
        self._active_buffer = None
        self._debounce_tokens.clear()

    def _heal(self) -> None:
        if self._phase is SchedulerPhase.PREVIEW_OPEN and not self._manager.is_open():
            LOGGER.info("Preview window disappeared; returning to idle")
            self._manager.reset()
            self._fall_idle()

    def _close_if_nothing_visible(self) -> None:
        if not self._classifier.any_tracking_visible():
            LOGGER.debug("No tracking window visible; closing preview")
            self._close()
