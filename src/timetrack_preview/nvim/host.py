"""``EditorHost`` implementation backed by a pynvim session."""

from __future__ import annotations

import logging
from collections import deque
from typing import Any, Callable, Sequence

from pynvim.api import Nvim, NvimError

from ..editor.host import BufferHandle, HostError, WindowHandle

__all__ = ["NvimHost"]

LOGGER = logging.getLogger(__name__)

_LOG_LEVEL_INFO = 2
_LOG_LEVEL_ERROR = 4
_SCRATCH_OPTIONS: tuple[tuple[str, Any], ...] = (
    ("buflisted", False),
    ("modifiable", False),
    ("bufhidden", "wipe"),
    ("swapfile", False),
)


def _handle(value: Any) -> int:
    """Return the integer id of a pynvim ``Window``/``Buffer`` (or an int)."""

    return int(getattr(value, "handle", value))


class NvimHost:
    """Adapter translating :class:`EditorHost` calls into Neovim API requests.

    Every ``NvimError`` is re-raised as :class:`HostError`. Callbacks passed to
    :meth:`schedule` are drained one at a time from a single queue, so event
    handling stays sequential even when pynvim dispatches notifications while a
    request is waiting for its response.
    """

    def __init__(self, nvim: Nvim) -> None:
        self._nvim = nvim
        self._queue: deque[Callable[[], None]] = deque()
        self._draining = False
        self._drain_pending = False

    @property
    def nvim(self) -> Nvim:
        return self._nvim

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def visible_windows(self) -> list[WindowHandle]:
        windows = self._call("list_tabpage_wins", 0)
        return [_handle(window) for window in windows]

    def current_window(self) -> WindowHandle:
        return _handle(self._call("get_current_win"))

    def window_valid(self, window: WindowHandle) -> bool:
        return bool(self._call("win_is_valid", window))

    def window_buffer(self, window: WindowHandle) -> BufferHandle:
        return _handle(self._call("win_get_buf", window))

    def buffer_valid(self, buffer: BufferHandle) -> bool:
        return bool(self._call("buf_is_valid", buffer))

    def buffer_name(self, buffer: BufferHandle) -> str:
        return str(self._call("buf_get_name", buffer) or "")

    def buffer_lines(self, buffer: BufferHandle) -> list[str]:
        return list(self._call("buf_get_lines", buffer, 0, -1, False))

    def total_columns(self) -> int:
        return int(self._call("get_option_value", "columns", {}))

    def find_buffer(self, name: str) -> BufferHandle | None:
        # Neovim prefixes relative buffer names with the working directory.
        for buffer in self._call("list_bufs"):
            if self.buffer_name(_handle(buffer)).endswith(name):
                return _handle(buffer)
        return None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def open_split(self, buffer: BufferHandle, *, width: int) -> WindowHandle:
        previous = self._call("get_current_win")
        self._command("rightbelow vsplit")
        window = self._call("get_current_win")
        try:
            self._call("win_set_buf", window, buffer)
            self._call("set_option_value", "winfixwidth", True, {"win": window})
            self._call("win_set_width", window, width)
            self._call("set_current_win", previous)
        except HostError:
            try:
                self._call("win_close", window, True)
            except HostError:
                LOGGER.debug("Unable to discard half-open split", exc_info=True)
            raise
        return _handle(window)

    def close_window(self, window: WindowHandle) -> None:
        self._call("win_close", window, False)

    def create_scratch_buffer(self, name: str) -> BufferHandle:
        buffer = self._call("create_buf", False, True)
        self._call("buf_set_name", buffer, name)
        for option, value in _SCRATCH_OPTIONS:
            self._call("set_option_value", option, value, {"buf": buffer})
        return _handle(buffer)

    def delete_buffer(self, buffer: BufferHandle) -> None:
        self._call("buf_delete", buffer, {"force": True})

    def set_buffer_lines(self, buffer: BufferHandle, lines: Sequence[str]) -> None:
        self._call("set_option_value", "modifiable", True, {"buf": buffer})
        try:
            self._call("buf_set_lines", buffer, 0, -1, False, list(lines))
        finally:
            self._call("set_option_value", "modifiable", False, {"buf": buffer})

    def notify(self, message: str, *, error: bool = False) -> None:
        level = _LOG_LEVEL_ERROR if error else _LOG_LEVEL_INFO
        self._call("notify", message, level, {})

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------
    def schedule(self, callback: Callable[[], None]) -> None:
        self._queue.append(callback)
        if self._draining or self._drain_pending:
            return
        self._drain_pending = True
        self._nvim.async_call(self._drain)

    def schedule_later(self, delay: float, callback: Callable[[], None]) -> None:
        self._nvim.loop.call_later(max(0.0, delay), self.schedule, callback)

    def _drain(self) -> None:
        self._drain_pending = False
        if self._draining:
            return
        self._draining = True
        try:
            while self._queue:
                callback = self._queue.popleft()
                try:
                    callback()
                except Exception:
                    LOGGER.exception("Scheduled callback failed")
        finally:
            self._draining = False

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _call(self, method: str, *args: Any) -> Any:
        try:
            return getattr(self._nvim.api, method)(*args)
        except NvimError as exc:
            raise HostError(str(exc), operation=method) from exc

    def _command(self, command: str) -> None:
        try:
            self._nvim.command(command)
        except NvimError as exc:
            raise HostError(str(exc), operation=command) from exc
