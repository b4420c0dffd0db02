"""Tests for the external formatter adapter."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

from timetrack_preview.services.formatter import (
    ContentFormatter,
    FormatResult,
    FormatterConfig,
    build_command,
    render_failure,
)


def _python(code: str) -> list[str]:
    return [sys.executable, "-c", code]


def _run(formatter: ContentFormatter, text: str) -> FormatResult:
    return asyncio.run(formatter.run(text))


def test_success_returns_stdout() -> None:
    formatter = ContentFormatter(
        FormatterConfig(_python("import sys; sys.stdout.write(sys.stdin.read().upper())"))
    )

    result = _run(formatter, "08:00 standup\n09:00 review")

    assert result.ok
    assert result.exit_code == 0
    assert result.lines() == ["08:00 STANDUP", "09:00 REVIEW"]
    assert formatter.invocations == 1


def test_prefix_and_suffix_wrap_successful_output() -> None:
    formatter = ContentFormatter(
        FormatterConfig(
            _python("print('total 2h')"),
            prefix="== Today ==",
            suffix="-- end --",
        )
    )

    result = _run(formatter, "")

    assert result.lines() == ["== Today ==", "total 2h", "-- end --"]


def test_nonzero_exit_uses_stderr_message() -> None:
    formatter = ContentFormatter(
        FormatterConfig(_python("import sys; print('partial'); sys.stderr.write('parse error\\n'); sys.exit(1)"))
    )

    result = _run(formatter, "garbage")

    assert not result.ok
    assert result.message == "parse error"
    assert result.detail == "partial"
    assert result.exit_code == 1
    lines = result.lines()
    assert lines[0] == "!! Time tracking formatter failed"
    assert "parse error" in lines
    assert "partial" in lines
    assert "exit code: 1" in lines


def test_nonzero_exit_falls_back_to_stdout() -> None:
    formatter = ContentFormatter(FormatterConfig(_python("import sys; print('bad line 3'); sys.exit(2)")))

    result = _run(formatter, "")

    assert result.message == "bad line 3"
    assert result.detail is None
    assert result.exit_code == 2


def test_silent_nonzero_exit_reports_code() -> None:
    formatter = ContentFormatter(FormatterConfig(_python("import sys; sys.exit(3)")))

    result = _run(formatter, "")

    assert result.message == "formatter exited with code 3"


def test_missing_executable_is_reported(tmp_path: Path) -> None:
    missing = str(tmp_path / "no-such-formatter")
    formatter = ContentFormatter(FormatterConfig([missing, "--stdin"]))

    result = _run(formatter, "x")

    assert not result.ok
    assert result.message == f"could not start formatter '{missing}'"
    assert result.exit_code is None


def test_timeout_kills_the_process() -> None:
    formatter = ContentFormatter(
        FormatterConfig(_python("import time; time.sleep(30)"), timeout=0.3)
    )

    result = _run(formatter, "")

    assert not result.ok
    assert result.message == "formatter timed out after 0.3s"
    assert result.duration_ms < 20_000


def test_runs_inside_existing_data_directory(tmp_path: Path) -> None:
    formatter = ContentFormatter(
        FormatterConfig(_python("import os; print(os.getcwd())"), data_dir=tmp_path)
    )

    result = _run(formatter, "")

    assert Path(result.text).resolve() == tmp_path.resolve()


def test_argv_substitutes_placeholders(tmp_path: Path) -> None:
    formatter = ContentFormatter(
        FormatterConfig(
            ["time-tracking-cli", "--data-directory", "{data_dir}", "--prefix={prefix}"],
            data_dir=tmp_path,
            prefix=">>",
        )
    )

    assert formatter.argv() == ["time-tracking-cli", "--data-directory", str(tmp_path), "--prefix=>>"]


def test_build_command_leaves_unknown_placeholders() -> None:
    assert build_command(["fmt", "{other}"], {"data_dir": "/d"}) == ["fmt", "{other}"]


def test_empty_command_is_rejected() -> None:
    with pytest.raises(ValueError):
        ContentFormatter(FormatterConfig([]))


def test_submit_requires_event_loop() -> None:
    formatter = ContentFormatter(FormatterConfig(_python("pass")))

    with pytest.raises(RuntimeError):
        formatter.submit("", lambda result: None)


def test_submit_delivers_result_to_callback() -> None:
    async def scenario() -> list[FormatResult]:
        loop = asyncio.get_running_loop()
        formatter = ContentFormatter(
            FormatterConfig(_python("import sys; sys.stdout.write(sys.stdin.read()[::-1])")),
            loop=loop,
        )
        finished = asyncio.Event()
        results: list[FormatResult] = []

        def _callback(result: FormatResult) -> None:
            results.append(result)
            finished.set()

        formatter.submit("abc", _callback)
        await asyncio.wait_for(finished.wait(), timeout=30)
        return results

    results = asyncio.run(scenario())

    assert [result.text for result in results] == ["cba"]


def test_runs_emit_telemetry(telemetry_sink) -> None:
    formatter = ContentFormatter(FormatterConfig(_python("import sys; sys.exit(4)")))

    _run(formatter, "")

    start, end = telemetry_sink.tail()
    assert start["event"] == "format.start"
    assert end["event"] == "format.end"
    assert end["status"] == "error"
    assert end["exit_code"] == 4
    assert end["latency_ms"] >= 0


def test_render_failure_omits_duplicate_detail_and_zero_codes() -> None:
    lines = render_failure(FormatResult.failure("boom", detail="boom"))

    assert lines == [
        "!! Time tracking formatter failed",
        "",
        "boom",
        "",
        "The preview refreshes on the next edit or :TimeTrackingUpdate.",
    ]
