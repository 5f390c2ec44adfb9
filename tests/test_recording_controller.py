"""Tests for the segmented recording state machine."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
import time
from unittest.mock import Mock

import pytest

from recording.controller import (
    CloseResult,
    RecordingController,
    RecordingError,
    RecordingSettings,
    RecordingState,
    load_recording_settings,
)
from recording.timer import SegmentTimer
from storage.segments import StorageManager, StorageSettings


class FakeTimer:
    """Captures armed callbacks so tests can fire them explicitly."""

    def __init__(self) -> None:
        self.delay_s: float | None = None
        self.callback = None

    @property
    def armed(self) -> bool:
        return self.callback is not None

    def arm(self, delay_s: float, callback) -> None:
        self.delay_s = delay_s
        self.callback = callback

    def cancel(self) -> None:
        self.callback = None

    def fire(self) -> None:
        callback, self.callback = self.callback, None
        callback()


class FakeWriter:
    """Writes a small file on close, like an encoder flushing its output."""

    def __init__(self) -> None:
        self.opened: list[Path] = []
        self.closed: list[Path] = []
        self.fail_open = False
        self.fail_close = False

    def open(self, path: Path) -> Path:
        if self.fail_open:
            raise OSError("encoder busy")
        self.opened.append(path)
        return path

    def close(self, handle: Path) -> CloseResult:
        self.closed.append(handle)
        if self.fail_close:
            return CloseResult(success=False, error="muxer failed")
        handle.write_bytes(b"\0" * 64)
        return CloseResult(success=True)


class SteppingClock:
    def __init__(self) -> None:
        self.current = datetime(2026, 3, 15, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: int) -> None:
        self.current = self.current.replace(second=self.current.second + seconds)


def _controller(tmp_path, writer=None, timer=None, clock=None, **settings):
    clock = clock or SteppingClock()
    storage = StorageManager(
        StorageSettings(recordings_dir=tmp_path, var_dir=tmp_path / "var", log_dir=tmp_path / "log"),
        now=clock,
    )
    controller = RecordingController(
        writer or FakeWriter(),
        storage,
        settings=RecordingSettings(**settings),
        timer=timer or FakeTimer(),
        now=clock,
    )
    return controller, storage


def test_start_opens_segment_and_arms_rotation(tmp_path) -> None:
    writer = FakeWriter()
    timer = FakeTimer()
    controller, _ = _controller(tmp_path, writer=writer, timer=timer)
    listener = Mock()
    controller.add_state_listener(listener)

    segment = controller.start()

    assert controller.state is RecordingState.RECORDING
    assert writer.opened == [segment.path]
    assert segment.path.name == "12-00-00.mp4"
    assert timer.delay_s == 60.0
    listener.assert_called_once_with(RecordingState.RECORDING)


def test_start_while_recording_returns_current_segment(tmp_path) -> None:
    writer = FakeWriter()
    controller, _ = _controller(tmp_path, writer=writer)

    first = controller.start()
    second = controller.start()

    assert first == second
    assert len(writer.opened) == 1


def test_rotation_finalizes_and_opens_next_segment(tmp_path) -> None:
    writer = FakeWriter()
    timer = FakeTimer()
    clock = SteppingClock()
    controller, storage = _controller(tmp_path, writer=writer, timer=timer, clock=clock)

    first = controller.start()
    clock.advance(59)
    timer.fire()

    second = controller.current_segment
    assert controller.state is RecordingState.RECORDING
    assert writer.closed == [first.path]
    assert second is not None and second.sequence == 2
    assert second.path.name == "12-00-59.mp4"
    assert [path.name for path in storage.list_segments()["2026-03-15"]] == ["12-00-00.mp4"]
    assert timer.armed


def test_rotation_with_restart_delay_resumes_later(tmp_path) -> None:
    writer = FakeWriter()
    timer = FakeTimer()
    clock = SteppingClock()
    controller, _ = _controller(
        tmp_path, writer=writer, timer=timer, clock=clock, restart_delay_ms=100
    )

    controller.start()
    clock.advance(1)
    timer.fire()

    assert controller.state is RecordingState.RECORDING
    assert controller.current_segment is None
    assert timer.delay_s == pytest.approx(0.1)

    timer.fire()
    assert controller.current_segment is not None
    assert len(writer.opened) == 2


def test_stop_finalizes_and_goes_idle(tmp_path) -> None:
    writer = FakeWriter()
    timer = FakeTimer()
    controller, storage = _controller(tmp_path, writer=writer, timer=timer)
    listener = Mock()

    segment = controller.start()
    controller.add_state_listener(listener)
    controller.stop()

    assert controller.state is RecordingState.IDLE
    assert controller.current_segment is None
    assert writer.closed == [segment.path]
    assert not timer.armed
    assert storage.list_segments()["2026-03-15"] == [segment.path]
    listener.assert_called_once_with(RecordingState.IDLE)


def test_stop_when_idle_is_noop(tmp_path) -> None:
    writer = FakeWriter()
    controller, _ = _controller(tmp_path, writer=writer)
    listener = Mock()
    controller.add_state_listener(listener)

    controller.stop()

    assert writer.closed == []
    listener.assert_not_called()


def test_stale_rotation_after_stop_is_ignored(tmp_path) -> None:
    writer = FakeWriter()
    timer = FakeTimer()
    controller, _ = _controller(tmp_path, writer=writer, timer=timer)

    controller.start()
    stale_callback = timer.callback
    controller.stop()
    stale_callback()

    assert controller.state is RecordingState.IDLE
    assert len(writer.opened) == 1


def test_failed_close_discards_segment(tmp_path) -> None:
    writer = FakeWriter()
    writer.fail_close = True
    controller, storage = _controller(tmp_path, writer=writer)

    controller.start()
    controller.stop()

    status = controller.get_runtime_status()
    assert status["segments_discarded"] == 1
    assert status["segments_completed"] == 0
    assert status["last_error"] == "muxer failed"
    assert storage.list_segments() == {}


def test_open_failure_raises_and_stays_idle(tmp_path) -> None:
    writer = FakeWriter()
    writer.fail_open = True
    controller, _ = _controller(tmp_path, writer=writer)

    with pytest.raises(RecordingError):
        controller.start()

    assert controller.state is RecordingState.IDLE


def test_rotation_reopen_failure_goes_idle(tmp_path) -> None:
    writer = FakeWriter()
    timer = FakeTimer()
    clock = SteppingClock()
    controller, _ = _controller(tmp_path, writer=writer, timer=timer, clock=clock)
    listener = Mock()

    controller.start()
    controller.add_state_listener(listener)
    writer.fail_open = True
    clock.advance(1)
    timer.fire()

    assert controller.state is RecordingState.IDLE
    listener.assert_called_once_with(RecordingState.IDLE)


def test_toggle_switches_state(tmp_path) -> None:
    controller, _ = _controller(tmp_path)

    assert controller.toggle() is RecordingState.RECORDING
    assert controller.toggle() is RecordingState.IDLE


def test_load_recording_settings_clamps_values() -> None:
    settings = load_recording_settings({"segment_duration_s": 0, "restart_delay_ms": -10})

    assert settings.segment_duration_s == 1.0
    assert settings.restart_delay_ms == 0
    assert settings.enabled is True


def test_segment_timer_cancel_prevents_callback() -> None:
    timer = SegmentTimer()
    callback = Mock()

    timer.arm(10.0, callback)
    assert timer.armed
    timer.cancel()

    assert not timer.armed
    callback.assert_not_called()


class TimedWriter(FakeWriter):
    """Stamps each open and close with a monotonic time."""

    def __init__(self) -> None:
        super().__init__()
        self.events: list[tuple[str, float]] = []

    def open(self, path: Path) -> Path:
        self.events.append(("open", time.monotonic()))
        return super().open(path)

    def close(self, handle: Path) -> CloseResult:
        self.events.append(("close", time.monotonic()))
        return super().close(handle)


def test_rotation_reopens_before_slow_retention_sweep(tmp_path) -> None:
    writer = TimedWriter()
    timer = FakeTimer()
    clock = SteppingClock()
    controller, storage = _controller(tmp_path, writer=writer, timer=timer, clock=clock)
    sweep_started = []

    def slow_sweep(now=None):
        sweep_started.append(time.monotonic())
        time.sleep(0.5)
        return []

    storage.sweep_retention = slow_sweep

    controller.start()
    clock.advance(1)
    timer.fire()

    close_at = writer.events[1][1]
    reopen_at = writer.events[2][1]
    assert [name for name, _ in writer.events] == ["open", "close", "open"]
    assert (reopen_at - close_at) * 1000 < 100
    assert sweep_started and sweep_started[0] >= reopen_at
    assert [path.name for path in storage.list_segments()["2026-03-15"]] == ["12-00-00.mp4"]


def test_removed_state_listener_is_not_notified(tmp_path) -> None:
    controller, _ = _controller(tmp_path)
    listener = Mock()
    controller.add_state_listener(listener)
    controller.remove_state_listener(listener)

    controller.start()
    controller.stop()

    listener.assert_not_called()
