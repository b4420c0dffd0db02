"""Predicates deciding which buffers and windows hold time tracking files."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable

from .host import PREVIEW_BUFFER_NAME, BufferHandle, EditorHost, HostError, WindowHandle
from .preview_model import PreviewState

__all__ = ["FileClassifier", "is_tracking_path", "canonicalize"]

LOGGER = logging.getLogger(__name__)


def canonicalize(path: Path | str | None) -> Path | None:
    """Resolve ``path`` to an absolute, symlink-free location or ``None``.

    The path has to exist; anything that cannot be resolved is treated as
    unknown rather than raising.
    """

    if path is None:
        return None
    raw = os.fspath(path)
    if not raw or not raw.strip():
        return None
    try:
        return Path(raw).expanduser().resolve(strict=True)
    except (OSError, RuntimeError, ValueError):
        return None


def _normalize_extension(ext: str) -> str:
    return (ext or "").strip().lstrip(".")


def is_tracking_path(path: Path | str | None, data_dir: Path | str | None, ext: str) -> bool:
    """Return True when ``path`` lives under ``data_dir`` and carries extension ``ext``."""

    expected = _normalize_extension(ext)
    if not expected:
        return False
    resolved = canonicalize(path)
    if resolved is None:
        return False
    root = canonicalize(data_dir)
    if root is None:
        return False
    if resolved != root and root not in resolved.parents:
        return False
    return resolved.suffix == f".{expected}"


class FileClassifier:
    """Host-aware wrapper around :func:`is_tracking_path`.

    The preview window and buffer recorded in :class:`PreviewState` are never
    classified as tracking files, whatever their names resolve to.
    """

    def __init__(
        self,
        host: EditorHost,
        state: PreviewState,
        *,
        data_dir: Path | str | None,
        extension: str = "md",
    ) -> None:
        self._host = host
        self._state = state
        self._data_dir = data_dir
        self._extension = extension

    @property
    def data_dir(self) -> Path | str | None:
        return self._data_dir

    @property
    def extension(self) -> str:
        return self._extension

    def is_tracking_path(self, path: Path | str | None) -> bool:
        return is_tracking_path(path, self._data_dir, self._extension)

    def is_tracking_buffer(self, buffer: BufferHandle | None) -> bool:
        if buffer is None or buffer == self._state.buffer:
            return False
        try:
            name = self._host.buffer_name(buffer)
        except HostError:
            LOGGER.debug("Unable to read name of buffer %s", buffer, exc_info=True)
            return False
        if not name or name.endswith(PREVIEW_BUFFER_NAME):
            return False
        return self.is_tracking_path(name)

    def is_tracking_window(self, window: WindowHandle | None) -> bool:
        if window is None or window == self._state.window:
            return False
        try:
            buffer = self._host.window_buffer(window)
        except HostError:
            LOGGER.debug("Unable to resolve buffer of window %s", window, exc_info=True)
            return False
        return self.is_tracking_buffer(buffer)

    def any_tracking_visible(self, windows: Iterable[WindowHandle] | None = None) -> bool:
        if windows is None:
            try:
                windows = self._host.visible_windows()
            except HostError:
                LOGGER.debug("Unable to enumerate visible windows", exc_info=True)
                return False
        return any(self.is_tracking_window(window) for window in windows)
