"""Segmented recording state machine.

The controller keeps a single writer open at a time and rotates it every
``segment_duration_s``. Each rotation closes the current file and opens the
next one straight away; the closed file is handed to storage only after the
new writer is running, so a slow retention sweep never widens the gap.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
import threading
from typing import Any, Callable, Mapping, Protocol

from core.logging import logger
from recording.timer import SegmentTimer
from storage.segments import SegmentFile, StorageManager


class RecordingState(str, Enum):
    """Recorder states."""

    IDLE = "idle"
    RECORDING = "recording"


class RecordingError(RuntimeError):
    """Raised when a segment cannot be opened."""


@dataclass(frozen=True)
class CloseResult:
    """Outcome of finalizing one writer."""

    success: bool
    error: str | None = None


@dataclass(frozen=True)
class SegmentHandle:
    """The segment currently being written."""

    path: Path
    started_at: datetime
    sequence: int


class SegmentWriter(Protocol):
    """Encoder pipeline that writes camera output to a file."""

    def open(self, path: Path) -> Any:
        ...

    def close(self, handle: Any) -> CloseResult:
        ...


@dataclass(frozen=True)
class RecordingSettings:
    """Runtime settings for segmented recording."""

    enabled: bool = True
    segment_duration_s: float = 60.0
    restart_delay_ms: int = 0
    audio_enabled: bool = False
    bitrate: int = 10_000_000


def load_recording_settings(config: Mapping[str, Any] | None = None) -> RecordingSettings:
    """Build settings from the ``recording`` config section."""

    if config is None:
        from config import ConfigController

        config = ConfigController.get_instance().get_section("recording")

    defaults = RecordingSettings()
    return RecordingSettings(
        enabled=bool(config.get("enabled", defaults.enabled)),
        segment_duration_s=max(1.0, float(config.get("segment_duration_s", defaults.segment_duration_s))),
        restart_delay_ms=max(0, int(config.get("restart_delay_ms", defaults.restart_delay_ms))),
        audio_enabled=bool(config.get("audio_enabled", defaults.audio_enabled)),
        bitrate=int(config.get("bitrate", defaults.bitrate)),
    )


StateListener = Callable[[RecordingState], None]


class RecordingController:
    """Own the record/stop state machine and segment rotation."""

    def __init__(
        self,
        writer: SegmentWriter,
        storage: StorageManager,
        settings: RecordingSettings | None = None,
        timer: SegmentTimer | None = None,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._writer = writer
        self._storage = storage
        self.settings = settings or load_recording_settings()
        self._timer = timer or SegmentTimer()
        self._now = now

        self._lock = threading.RLock()
        self._state = RecordingState.IDLE
        self._segment: SegmentHandle | None = None
        self._writer_handle: Any = None
        self._generation = 0
        self._sequence = 0
        self._segments_completed = 0
        self._segments_discarded = 0
        self._last_error = ""
        self._listeners: set[StateListener] = set()

    @property
    def state(self) -> RecordingState:
        with self._lock:
            return self._state

    @property
    def current_segment(self) -> SegmentHandle | None:
        with self._lock:
            return self._segment

    def is_recording(self) -> bool:
        return self.state is RecordingState.RECORDING

    def add_state_listener(self, listener: StateListener) -> None:
        self._listeners.add(listener)

    def remove_state_listener(self, listener: StateListener) -> None:
        self._listeners.discard(listener)

    def start(self) -> SegmentHandle:
        """Start recording; returns the active segment if already recording."""

        with self._lock:
            if self._state is RecordingState.RECORDING and self._segment is not None:
                return self._segment
            segment = self._open_segment_locked()
        self._notify(RecordingState.RECORDING)
        return segment

    def stop(self) -> None:
        """Finalize the current segment and return to IDLE."""

        with self._lock:
            if self._state is RecordingState.IDLE:
                return
            self._timer.cancel()
            self._generation += 1
            closed_path = self._close_current_locked()
            self._state = RecordingState.IDLE
        self._hand_to_storage(closed_path)
        logger.info("[RECORDING] Stopped")
        self._notify(RecordingState.IDLE)

    def toggle(self) -> RecordingState:
        """Start when idle, stop when recording; returns the new state."""

        if self.is_recording():
            self.stop()
        else:
            self.start()
        return self.state

    def get_runtime_status(self) -> dict[str, int | str]:
        """Return recorder state and counters for status reporting."""

        with self._lock:
            segment = self._segment
            return {
                "state": self._state.value,
                "current_segment": str(segment.path) if segment is not None else "",
                "segments_started": self._sequence,
                "segments_completed": self._segments_completed,
                "segments_discarded": self._segments_discarded,
                "last_error": self._last_error,
            }

    def _open_segment_locked(self) -> SegmentHandle:
        path = self._storage.allocate_path()
        try:
            handle = self._writer.open(path)
        except Exception as exc:
            self._last_error = str(exc)
            logger.exception("[RECORDING] Failed to open writer for %s", path)
            raise RecordingError(f"Unable to start recording to {path}: {exc}") from exc

        self._sequence += 1
        self._generation += 1
        segment = SegmentHandle(path=path, started_at=self._now(), sequence=self._sequence)
        self._segment = segment
        self._writer_handle = handle
        self._state = RecordingState.RECORDING

        generation = self._generation
        self._timer.arm(self.settings.segment_duration_s, lambda: self._on_rotation(generation))
        logger.info("[RECORDING] Segment %s started: %s", segment.sequence, path)
        return segment

    def _close_current_locked(self) -> Path | None:
        """Close the writer; return the path only if the segment is usable."""

        segment = self._segment
        handle = self._writer_handle
        self._segment = None
        self._writer_handle = None
        if segment is None:
            return None

        try:
            result = self._writer.close(handle)
        except Exception as exc:
            logger.exception("[RECORDING] Writer close raised for %s", segment.path)
            result = CloseResult(success=False, error=str(exc))

        if not result.success:
            self._segments_discarded += 1
            self._last_error = result.error or "unknown writer error"
            logger.error(
                "[RECORDING] Discarding segment %s: %s",
                segment.path,
                self._last_error,
            )
            return None

        self._segments_completed += 1
        return segment.path

    def _hand_to_storage(self, path: Path | None) -> SegmentFile | None:
        # Never called with the lock held: the retention sweep may take seconds.
        if path is None:
            return None
        try:
            return self._storage.finalize(path)
        except Exception:
            logger.exception("[RECORDING] Storage finalize failed for %s", path)
            return None

    def _on_rotation(self, generation: int) -> None:
        went_idle = False
        with self._lock:
            if self._state is not RecordingState.RECORDING or generation != self._generation:
                return
            closed_path = self._close_current_locked()

            delay_ms = self.settings.restart_delay_ms
            if delay_ms > 0:
                self._timer.arm(delay_ms / 1000.0, lambda: self._resume(generation))
            else:
                went_idle = not self._reopen_locked()

        self._hand_to_storage(closed_path)
        if went_idle:
            self._notify(RecordingState.IDLE)

    def _resume(self, generation: int) -> None:
        went_idle = False
        with self._lock:
            if self._state is not RecordingState.RECORDING or generation != self._generation:
                return
            if self._segment is not None:
                return
            went_idle = not self._reopen_locked()

        if went_idle:
            self._notify(RecordingState.IDLE)

    def _reopen_locked(self) -> bool:
        try:
            self._open_segment_locked()
        except RecordingError:
            self._state = RecordingState.IDLE
            logger.error("[RECORDING] Rotation could not reopen a segment; recording stopped")
            return False
        return True

    def _notify(self, state: RecordingState) -> None:
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("[RECORDING] State listener failed")
