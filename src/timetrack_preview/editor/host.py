"""Host editor primitives consumed by the preview engine."""

from __future__ import annotations

from typing import Callable, Mapping, Protocol, Sequence

__all__ = [
    "BufferHandle",
    "WindowHandle",
    "EditorHost",
    "HostError",
    "PREVIEW_BUFFER_NAME",
]

BufferHandle = int
WindowHandle = int

PREVIEW_BUFFER_NAME = "[Time Tracking Preview]"


class HostError(RuntimeError):
    """Raised when the host editor rejects an API call.

    Typical causes are handles the user already closed or window operations
    attempted while the host is tearing down another window.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        details: Mapping[str, object] | None = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.details = dict(details) if isinstance(details, Mapping) else None


class EditorHost(Protocol):
    """Minimal interface the classifier, manager and scheduler are written against.

    Every method may raise :class:`HostError`. Apart from :meth:`schedule` and
    :meth:`schedule_later`, methods must only be called from the host's main
    sequence.
    """

    def visible_windows(self) -> Sequence[WindowHandle]:
        ...

    def current_window(self) -> WindowHandle:
        ...

    def window_valid(self, window: WindowHandle) -> bool:
        ...

    def window_buffer(self, window: WindowHandle) -> BufferHandle:
        ...

    def buffer_valid(self, buffer: BufferHandle) -> bool:
        ...

    def buffer_name(self, buffer: BufferHandle) -> str:
        ...

    def buffer_lines(self, buffer: BufferHandle) -> list[str]:
        ...

    def total_columns(self) -> int:
        ...

    def open_split(self, buffer: BufferHandle, *, width: int) -> WindowHandle:
        """Show ``buffer`` in a new right-hand split and return focus to the caller's window."""
        ...

    def close_window(self, window: WindowHandle) -> None:
        ...

    def create_scratch_buffer(self, name: str) -> BufferHandle:
        """Create an unlisted, non-modifiable scratch buffer named ``name``."""
        ...

    def find_buffer(self, name: str) -> BufferHandle | None:
        ...

    def delete_buffer(self, buffer: BufferHandle) -> None:
        ...

    def set_buffer_lines(self, buffer: BufferHandle, lines: Sequence[str]) -> None:
        """Replace every line of a non-modifiable buffer."""
        ...

    def notify(self, message: str, *, error: bool = False) -> None:
        ...

    def schedule(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` on the main sequence; callable from any thread."""
        ...

    def schedule_later(self, delay: float, callback: Callable[[], None]) -> None:
        """Run ``callback`` on the main sequence after ``delay`` seconds."""
        ...
