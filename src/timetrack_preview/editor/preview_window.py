"""Ownership of the single preview window/buffer pair."""

from __future__ import annotations

import logging
import math
from typing import Sequence

from .host import PREVIEW_BUFFER_NAME, BufferHandle, EditorHost, HostError, WindowHandle
from .preview_model import PreviewState, hash_lines
from ..services.telemetry import emit

__all__ = ["PreviewWindowManager", "preview_width"]

LOGGER = logging.getLogger(__name__)

DEFAULT_WIDTH_FRACTION = 1 / 3
DEFAULT_MIN_WIDTH = 20


def preview_width(columns: int, fraction: float, minimum: int = DEFAULT_MIN_WIDTH) -> int:
    """Return the preview width for a screen of ``columns`` columns."""

    if not 0 < fraction <= 1:
        fraction = DEFAULT_WIDTH_FRACTION
    # Nudge before flooring so 90 * (1/3) yields 30, not 29.
    return max(int(minimum), math.floor(max(0, columns) * fraction + 1e-9))


class PreviewWindowManager:
    """Creates, renders into and tears down the preview split."""

    def __init__(
        self,
        host: EditorHost,
        state: PreviewState | None = None,
        *,
        width_fraction: float = DEFAULT_WIDTH_FRACTION,
        min_width: int = DEFAULT_MIN_WIDTH,
    ) -> None:
        self._host = host
        self._state = state or PreviewState()
        self._width_fraction = width_fraction
        self._min_width = min_width

    @property
    def state(self) -> PreviewState:
        return self._state

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def is_open(self) -> bool:
        """Return True when the recorded preview window still exists."""

        window = self._state.window
        if window is None:
            return False
        try:
            return bool(self._host.window_valid(window))
        except HostError:
            return False

    def is_preview_window(self, window: WindowHandle | None) -> bool:
        return window is not None and window == self._state.window

    def is_preview_buffer(self, buffer: BufferHandle | None) -> bool:
        return buffer is not None and buffer == self._state.buffer

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def ensure_open(self) -> WindowHandle:
        """Return the preview window, creating the split on first use."""

        if self._state.window is not None:
            if self.is_open():
                return self._state.window
            LOGGER.debug("Preview window %s vanished; recreating", self._state.window)
            self.reset()

        buffer = self._acquire_buffer()
        width = preview_width(self._host.total_columns(), self._width_fraction, self._min_width)
        window = self._host.open_split(buffer, width=width)
        self._state.window = window
        self._state.buffer = buffer
        self._state.content_hash = None
        LOGGER.info("Opened preview window %s (buffer %s, width %s)", window, buffer, width)
        emit("preview.opened", {"window": window, "buffer": buffer, "width": width})
        return window

    def update_content(self, lines: Sequence[str]) -> bool:
        """Replace the preview text; identical consecutive renders are skipped."""

        buffer = self._state.buffer
        if buffer is None or self._state.window is None:
            raise HostError("Preview is not open", operation="update_content")
        rendered = [str(line) for line in lines]
        digest = hash_lines(rendered)
        if digest == self._state.content_hash:
            return False
        self._state.rendering = True
        try:
            self._host.set_buffer_lines(buffer, rendered)
        finally:
            self._state.rendering = False
        self._state.content_hash = digest
        emit("preview.rendered", {"buffer": buffer, "line_count": len(rendered)})
        return True

    def close(self) -> bool:
        """Destroy the preview window and buffer if present; safe to repeat."""

        window = self._state.window
        buffer = self._state.buffer
        if window is None and buffer is None:
            return False
        if window is not None:
            try:
                if self._host.window_valid(window):
                    self._host.close_window(window)
            except HostError:
                LOGGER.debug("Preview window %s already gone", window, exc_info=True)
        if buffer is not None:
            try:
                if self._host.buffer_valid(buffer):
                    self._host.delete_buffer(buffer)
            except HostError:
                LOGGER.debug("Preview buffer %s already gone", buffer, exc_info=True)
        self.reset()
        LOGGER.info("Closed preview window %s", window)
        emit("preview.closed", {"window": window, "buffer": buffer})
        return True

    def reset(self) -> None:
        """Forget the preview handles without touching the host."""

        self._state.clear()
        self._state.next_generation()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _acquire_buffer(self) -> BufferHandle:
        existing = self._host.find_buffer(PREVIEW_BUFFER_NAME)
        if existing is not None and self._host.buffer_valid(existing):
            return existing
        return self._host.create_scratch_buffer(PREVIEW_BUFFER_NAME)
