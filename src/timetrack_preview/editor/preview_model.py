"""Dataclasses describing the preview window state."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Sequence

from .host import BufferHandle, WindowHandle


def hash_lines(lines: Sequence[str]) -> str:
    """Return a stable digest for rendered preview content."""

    return hashlib.sha1("\n".join(lines).encode("utf-8")).hexdigest()


@dataclass(slots=True)
class PreviewState:
    """Process-wide record of the single preview window/buffer pair."""

    window: WindowHandle | None = None
    buffer: BufferHandle | None = None
    content_hash: str | None = None
    generation: int = 0
    rendering: bool = False

    @property
    def is_open(self) -> bool:
        return self.window is not None

    def next_generation(self) -> int:
        """Advance the generation counter, invalidating older format requests."""

        self.generation += 1
        return self.generation

    def is_current(self, generation: int) -> bool:
        return generation == self.generation

    def clear(self) -> None:
        """Forget both handles and the last render; the generation keeps counting."""

        self.window = None
        self.buffer = None
        self.content_hash = None
        self.rendering = False
