"""Segmented recording package."""

from recording.controller import (
    CloseResult,
    RecordingController,
    RecordingError,
    RecordingSettings,
    RecordingState,
    SegmentHandle,
    SegmentWriter,
    load_recording_settings,
)
from recording.timer import SegmentTimer

__all__ = [
    "CloseResult",
    "RecordingController",
    "RecordingError",
    "RecordingSettings",
    "RecordingState",
    "SegmentHandle",
    "SegmentTimer",
    "SegmentWriter",
    "load_recording_settings",
]
