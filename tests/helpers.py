"""Shared test helpers and stub classes.

This module contains reusable test stubs that are used across multiple test files.
Import from here instead of duplicating these classes in individual test files.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Sequence

from timetrack_preview.editor.host import HostError
from timetrack_preview.services.formatter import FormatResult


@dataclass
class _FakeBuffer:
    name: str
    lines: list[str] = field(default_factory=list)
    scratch: bool = False


class FakeHost:
    """In-memory editor implementing the ``EditorHost`` protocol.

    ``schedule`` only queues callbacks; tests call :meth:`run_pending` to
    drain the main sequence and :meth:`fire_timers` to expire delayed ones.

    Example:
        host = FakeHost(columns=120)
        buffer = host.add_buffer("/data/day.md", ["08:00 work"])
        window = host.add_window(buffer, current=True)
    """

    def __init__(self, columns: int = 90) -> None:
        self.columns = columns
        self.buffers: dict[int, _FakeBuffer] = {}
        self.windows: dict[int, int] = {}
        self.current: int | None = None
        self.queue: list[Callable[[], None]] = []
        self.timers: list[tuple[float, Callable[[], None]]] = []
        self.splits: list[tuple[int, int]] = []
        self.closed_windows: list[int] = []
        self.deleted_buffers: list[int] = []
        self.writes: list[tuple[int, list[str]]] = []
        self.notifications: list[tuple[str, bool]] = []
        self.fail_split: str | None = None
        self.fail_writes = False
        self._next_buffer = 1
        self._next_window = 1000

    # -- fixture helpers -------------------------------------------------
    def add_buffer(self, name: str | Path, lines: Sequence[str] = ()) -> int:
        handle = self._next_buffer
        self._next_buffer += 1
        self.buffers[handle] = _FakeBuffer(name=str(name), lines=list(lines))
        return handle

    def add_window(self, buffer: int, *, current: bool = False) -> int:
        handle = self._next_window
        self._next_window += 1
        self.windows[handle] = buffer
        if current or self.current is None:
            self.current = handle
        return handle

    def show(self, window: int, buffer: int) -> None:
        self.windows[window] = buffer

    def remove_window(self, window: int) -> None:
        """Simulate the user closing a window behind the plugin's back."""

        self.windows.pop(window, None)
        if self.current == window:
            self.current = next(iter(self.windows), None)

    def set_text(self, buffer: int, lines: Sequence[str]) -> None:
        self.buffers[buffer].lines = list(lines)

    def run_pending(self) -> int:
        ran = 0
        while self.queue:
            callback = self.queue.pop(0)
            callback()
            ran += 1
        return ran

    def fire_timers(self) -> int:
        timers, self.timers = self.timers, []
        for _delay, callback in timers:
            callback()
        return len(timers) + self.run_pending()

    def lines_of(self, buffer: int | None) -> list[str]:
        assert buffer is not None
        return list(self.buffers[buffer].lines)

    # -- EditorHost ------------------------------------------------------
    def visible_windows(self) -> list[int]:
        return list(self.windows)

    def current_window(self) -> int:
        if self.current is None:
            raise HostError("no current window", operation="current_window")
        return self.current

    def window_valid(self, window: int) -> bool:
        return window in self.windows

    def window_buffer(self, window: int) -> int:
        try:
            return self.windows[window]
        except KeyError:
            raise HostError(f"Invalid window id: {window}", operation="window_buffer") from None

    def buffer_valid(self, buffer: int) -> bool:
        return buffer in self.buffers

    def buffer_name(self, buffer: int) -> str:
        try:
            return self.buffers[buffer].name
        except KeyError:
            raise HostError(f"Invalid buffer id: {buffer}", operation="buffer_name") from None

    def buffer_lines(self, buffer: int) -> list[str]:
        try:
            return list(self.buffers[buffer].lines)
        except KeyError:
            raise HostError(f"Invalid buffer id: {buffer}", operation="buffer_lines") from None

    def total_columns(self) -> int:
        return self.columns

    def open_split(self, buffer: int, *, width: int) -> int:
        if self.fail_split:
            raise HostError(self.fail_split, operation="open_split")
        previous = self.current
        window = self.add_window(buffer)
        self.current = previous
        self.splits.append((window, width))
        return window

    def close_window(self, window: int) -> None:
        if window not in self.windows:
            raise HostError(f"Invalid window id: {window}", operation="close_window")
        self.closed_windows.append(window)
        self.remove_window(window)

    def create_scratch_buffer(self, name: str) -> int:
        handle = self.add_buffer(name)
        self.buffers[handle].scratch = True
        return handle

    def find_buffer(self, name: str) -> int | None:
        for handle, buffer in self.buffers.items():
            if buffer.name.endswith(name):
                return handle
        return None

    def delete_buffer(self, buffer: int) -> None:
        if self.buffers.pop(buffer, None) is None:
            raise HostError(f"Invalid buffer id: {buffer}", operation="delete_buffer")
        self.deleted_buffers.append(buffer)

    def set_buffer_lines(self, buffer: int, lines: Sequence[str]) -> None:
        if self.fail_writes or buffer not in self.buffers:
            raise HostError(f"Invalid buffer id: {buffer}", operation="set_buffer_lines")
        self.buffers[buffer].lines = list(lines)
        self.writes.append((buffer, list(lines)))

    def notify(self, message: str, *, error: bool = False) -> None:
        self.notifications.append((message, error))

    def schedule(self, callback: Callable[[], None]) -> None:
        self.queue.append(callback)

    def schedule_later(self, delay: float, callback: Callable[[], None]) -> None:
        self.timers.append((delay, callback))


class FakeFormatter:
    """Formatter stub recording submissions until a test completes them."""

    def __init__(self) -> None:
        self.pending: list[tuple[str, Callable[[FormatResult], None]]] = []
        self.texts: list[str] = []

    @property
    def invocations(self) -> int:
        return len(self.texts)

    def submit(self, text: str, callback: Callable[[FormatResult], None]) -> None:
        self.texts.append(text)
        self.pending.append((text, callback))

    def complete(self, result: FormatResult | None = None) -> str:
        """Finish the oldest pending run; defaults to echoing the input upper-cased."""

        text, callback = self.pending.pop(0)
        callback(result or FormatResult.success(text.upper()))
        return text
