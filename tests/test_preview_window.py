"""Tests for the preview window manager."""

from __future__ import annotations

import pytest

from timetrack_preview.editor.host import PREVIEW_BUFFER_NAME, HostError
from timetrack_preview.editor.preview_model import PreviewState, hash_lines
from timetrack_preview.editor.preview_window import PreviewWindowManager, preview_width

from tests.helpers import FakeHost


@pytest.mark.parametrize(
    ("columns", "fraction", "expected"),
    [
        (90, 1 / 3, 30),
        (100, 1 / 3, 33),
        (45, 1 / 3, 20),
        (200, 0.5, 100),
        (120, 0, 40),
        (120, 1.5, 40),
    ],
)
def test_preview_width(columns: int, fraction: float, expected: int) -> None:
    assert preview_width(columns, fraction) == expected


def _manager(host: FakeHost) -> PreviewWindowManager:
    return PreviewWindowManager(host, PreviewState())


def test_ensure_open_creates_scratch_split() -> None:
    host = FakeHost(columns=120)
    editor = host.add_window(host.add_buffer("/data/day.md"), current=True)
    manager = _manager(host)

    window = manager.ensure_open()

    assert manager.is_open()
    assert host.splits == [(window, 40)]
    buffer = manager.state.buffer
    assert buffer is not None
    assert host.buffers[buffer].scratch
    assert host.buffers[buffer].name == PREVIEW_BUFFER_NAME
    assert host.current == editor


def test_ensure_open_is_idempotent() -> None:
    host = FakeHost()
    host.add_window(host.add_buffer("/data/day.md"))
    manager = _manager(host)

    first = manager.ensure_open()
    second = manager.ensure_open()

    assert first == second
    assert len(host.splits) == 1


def test_ensure_open_reuses_leftover_preview_buffer() -> None:
    host = FakeHost()
    host.add_window(host.add_buffer("/data/day.md"))
    leftover = host.add_buffer(f"/home/user/{PREVIEW_BUFFER_NAME}")
    manager = _manager(host)

    manager.ensure_open()

    assert manager.state.buffer == leftover


def test_ensure_open_recovers_after_window_vanished() -> None:
    host = FakeHost()
    host.add_window(host.add_buffer("/data/day.md"))
    manager = _manager(host)
    first = manager.ensure_open()
    host.remove_window(first)

    second = manager.ensure_open()

    assert second != first
    assert manager.is_open()


def test_ensure_open_propagates_host_errors() -> None:
    host = FakeHost()
    host.add_window(host.add_buffer("/data/day.md"))
    host.fail_split = "E242: Can't split a window while closing another"
    manager = _manager(host)

    with pytest.raises(HostError):
        manager.ensure_open()
    assert not manager.is_open()


def test_update_content_skips_identical_renders(telemetry_sink) -> None:
    host = FakeHost()
    host.add_window(host.add_buffer("/data/day.md"))
    manager = _manager(host)
    manager.ensure_open()

    assert manager.update_content(["total: 1h"])
    assert not manager.update_content(["total: 1h"])
    assert manager.update_content(["total: 2h"])

    assert [lines for _, lines in host.writes] == [["total: 1h"], ["total: 2h"]]
    assert manager.state.content_hash == hash_lines(["total: 2h"])
    assert telemetry_sink.names().count("preview.rendered") == 2
    assert not manager.state.rendering


def test_update_content_requires_open_preview() -> None:
    manager = _manager(FakeHost())

    with pytest.raises(HostError):
        manager.update_content(["x"])


def test_update_content_clears_rendering_flag_on_failure() -> None:
    host = FakeHost()
    host.add_window(host.add_buffer("/data/day.md"))
    manager = _manager(host)
    manager.ensure_open()
    host.fail_writes = True

    with pytest.raises(HostError):
        manager.update_content(["x"])
    assert not manager.state.rendering
    assert manager.state.content_hash is None


def test_close_destroys_window_and_buffer(telemetry_sink) -> None:
    host = FakeHost()
    host.add_window(host.add_buffer("/data/day.md"))
    manager = _manager(host)
    window = manager.ensure_open()
    buffer = manager.state.buffer
    generation = manager.state.generation

    assert manager.close()

    assert host.closed_windows == [window]
    assert host.deleted_buffers == [buffer]
    assert manager.state.window is None and manager.state.buffer is None
    assert manager.state.generation == generation + 1
    assert telemetry_sink.names() == ["preview.opened", "preview.closed"]


def test_close_is_idempotent_and_tolerates_vanished_handles() -> None:
    host = FakeHost()
    host.add_window(host.add_buffer("/data/day.md"))
    manager = _manager(host)
    window = manager.ensure_open()
    host.remove_window(window)

    assert manager.close()
    assert not manager.close()
    assert host.closed_windows == []


def test_reset_forgets_handles_without_host_calls() -> None:
    host = FakeHost()
    host.add_window(host.add_buffer("/data/day.md"))
    manager = _manager(host)
    window = manager.ensure_open()

    manager.reset()

    assert not manager.is_open()
    assert host.window_valid(window)
    assert host.closed_windows == []
