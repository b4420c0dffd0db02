"""Adapter around the external time tracking formatter process."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import time
from concurrent.futures import Future
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Sequence

from .telemetry import emit

__all__ = ["ContentFormatter", "FormatResult", "FormatterConfig", "build_command", "render_failure"]

LOGGER = logging.getLogger(__name__)
_ERROR_HEADER = "Time tracking formatter failed"
_MESSAGE_PREVIEW_CHARS = 200

FormatCallback = Callable[["FormatResult"], None]


@dataclass(slots=True, frozen=True)
class FormatResult:
    """Outcome of one formatter invocation."""

    ok: bool
    text: str = ""
    message: str = ""
    detail: str | None = None
    exit_code: int | None = None
    duration_ms: float = 0.0

    @classmethod
    def success(cls, text: str, *, exit_code: int = 0, duration_ms: float = 0.0) -> "FormatResult":
        return cls(ok=True, text=text, exit_code=exit_code, duration_ms=duration_ms)

    @classmethod
    def failure(
        cls,
        message: str,
        *,
        detail: str | None = None,
        exit_code: int | None = None,
        duration_ms: float = 0.0,
    ) -> "FormatResult":
        return cls(
            ok=False,
            message=message,
            detail=detail,
            exit_code=exit_code,
            duration_ms=duration_ms,
        )

    def lines(self) -> list[str]:
        """Return the lines to render in the preview buffer."""

        if self.ok:
            return self.text.splitlines()
        return render_failure(self)


def render_failure(result: FormatResult) -> list[str]:
    """Build the inline error panel shown in place of a summary."""

    lines = [f"!! {_ERROR_HEADER}", ""]
    lines.extend((result.message or "unknown error").splitlines())
    if result.detail and result.detail.strip() != (result.message or "").strip():
        lines.append("")
        lines.extend(result.detail.splitlines())
    if result.exit_code not in (None, 0):
        lines.extend(["", f"exit code: {result.exit_code}"])
    lines.extend(["", "The preview refreshes on the next edit or :TimeTrackingUpdate."])
    return lines


@dataclass(slots=True)
class FormatterConfig:
    """Tunable parameters for formatter invocations."""

    command: Sequence[str]
    data_dir: Path | str | None = None
    timeout: float | None = 10.0
    prefix: str = ""
    suffix: str = ""


def build_command(command: Sequence[str], placeholders: Mapping[str, str]) -> list[str]:
    """Substitute ``{name}`` placeholders inside each argv element."""

    argv: list[str] = []
    for part in command:
        text = str(part)
        for key, value in placeholders.items():
            text = text.replace("{" + key + "}", value)
        argv.append(text)
    return argv


class ContentFormatter:
    """Runs the formatter as an asyncio subprocess and classifies the result."""

    def __init__(
        self,
        config: FormatterConfig,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        if not config.command:
            raise ValueError("formatter command is required")
        self._config = config
        self._loop = loop
        self._invocations = 0

    @property
    def config(self) -> FormatterConfig:
        return self._config

    @property
    def invocations(self) -> int:
        return self._invocations

    def argv(self) -> list[str]:
        data_dir = _expand(self._config.data_dir)
        return build_command(
            self._config.command,
            {
                "data_dir": data_dir or "",
                "prefix": self._config.prefix,
                "suffix": self._config.suffix,
            },
        )

    def submit(self, text: str, callback: FormatCallback) -> Future:
        """Start a formatter run without blocking and hand its result to ``callback``.

        ``callback`` runs on the formatter's event loop thread; callers post the
        result back onto their own main sequence.
        """

        if self._loop is None:
            raise RuntimeError("ContentFormatter.submit requires an event loop")
        future = asyncio.run_coroutine_threadsafe(self.run(text), self._loop)

        def _deliver(done: Future) -> None:
            if done.cancelled():
                result = FormatResult.failure("formatter run was cancelled")
            else:
                error = done.exception()
                if error is not None:
                    LOGGER.error("Formatter run crashed", exc_info=error)
                    result = FormatResult.failure("formatter run crashed", detail=str(error))
                else:
                    result = done.result()
            callback(result)

        future.add_done_callback(_deliver)
        return future

    async def run(self, text: str) -> FormatResult:
        """Run the formatter once on ``text``."""

        self._invocations += 1
        argv = self.argv()
        started = time.perf_counter()
        emit("format.start", {"command": argv[0], "input_chars": len(text)})
        result = await self._execute(argv, text, started)
        emit(
            "format.end",
            {
                "command": argv[0],
                "status": "ok" if result.ok else "error",
                "exit_code": result.exit_code,
                "latency_ms": round(result.duration_ms, 3),
                "message": result.message[:_MESSAGE_PREVIEW_CHARS] or None,
            },
        )
        return result

    async def _execute(self, argv: list[str], text: str, started: float) -> FormatResult:
        cwd = _existing_dir(self._config.data_dir)
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
            )
        except OSError as exc:
            LOGGER.warning("Unable to start formatter %s: %s", argv[0], exc)
            return FormatResult.failure(
                f"could not start formatter '{argv[0]}'",
                detail=exc.strerror or str(exc),
                duration_ms=_elapsed_ms(started),
            )

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(text.encode("utf-8")),
                timeout=self._config.timeout,
            )
        except asyncio.TimeoutError:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            with contextlib.suppress(Exception):
                await process.wait()
            LOGGER.warning("Formatter %s timed out after %ss", argv[0], self._config.timeout)
            return FormatResult.failure(
                f"formatter timed out after {self._config.timeout:g}s",
                duration_ms=_elapsed_ms(started),
            )

        exit_code = process.returncode
        out_text = stdout.decode("utf-8", errors="replace")
        err_text = stderr.decode("utf-8", errors="replace")
        duration_ms = _elapsed_ms(started)
        if exit_code != 0:
            message = err_text.strip() or out_text.strip() or f"formatter exited with code {exit_code}"
            detail = out_text.strip() if err_text.strip() else ""
            LOGGER.info("Formatter exited with code %s: %s", exit_code, message[:_MESSAGE_PREVIEW_CHARS])
            return FormatResult.failure(
                message,
                detail=detail or None,
                exit_code=exit_code,
                duration_ms=duration_ms,
            )
        if err_text.strip():
            LOGGER.debug("Formatter stderr: %s", err_text.strip()[:_MESSAGE_PREVIEW_CHARS])
        return FormatResult.success(self._wrap(out_text), exit_code=exit_code, duration_ms=duration_ms)

    def _wrap(self, text: str) -> str:
        parts = [part for part in (self._config.prefix, text.rstrip("\n"), self._config.suffix) if part]
        return "\n".join(parts)


def _expand(path: Path | str | None) -> str | None:
    if path is None or not str(path).strip():
        return None
    return str(Path(path).expanduser())


def _existing_dir(path: Path | str | None) -> str | None:
    expanded = _expand(path)
    if expanded and os.path.isdir(expanded):
        return expanded
    return None


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000.0
