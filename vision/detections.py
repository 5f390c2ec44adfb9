"""Frame and detection schemas for the pedestrian pipeline.

Bounding boxes are expressed in pixel space of the source frame as
``(x, y, width, height)``. Each detection carries zero or more
``(label, confidence)`` pairs; an unclassified object has no labels.
"""

from __future__ import annotations

from dataclasses import dataclass
import threading
from typing import Any, Callable, Mapping, Sequence


@dataclass(frozen=True)
class DetectionLabel:
    """One classification candidate for a detected object."""

    text: str
    confidence: float


@dataclass(frozen=True)
class Detection:
    """Single object detection result."""

    bbox: tuple[float, float, float, float]
    labels: tuple[DetectionLabel, ...] = ()

    @property
    def area(self) -> float:
        _, _, width, height = self.bbox
        return max(0.0, float(width)) * max(0.0, float(height))

    @property
    def center_x(self) -> float:
        x, _, width, _ = self.bbox
        return float(x) + float(width) / 2.0

    def has_label(self, candidates: Sequence[str]) -> bool:
        """Return whether any label matches ``candidates`` ignoring case."""

        wanted = {item.casefold() for item in candidates}
        return any(label.text.casefold() in wanted for label in self.labels)


class Frame:
    """Camera frame handed to the pipeline by the frame source.

    ``release`` returns the underlying buffer to the camera and runs exactly
    once no matter how many times it is called. The frame is a context
    manager so processing code can guarantee the release on every exit path.
    """

    def __init__(
        self,
        buffer: Any,
        width: int,
        height: int,
        rotation_degrees: int = 0,
        capture_time_ms: int = 0,
        release: Callable[[], None] | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> None:
        self.buffer = buffer
        self.width = int(width)
        self.height = int(height)
        self.rotation_degrees = int(rotation_degrees)
        self.capture_time_ms = int(capture_time_ms)
        self.metadata: Mapping[str, Any] = metadata or {}
        self._release_callback = release
        self._release_lock = threading.Lock()
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        with self._release_lock:
            if self._released:
                return
            self._released = True
        if self._release_callback is not None:
            self._release_callback()

    def __enter__(self) -> "Frame":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    def __repr__(self) -> str:
        return (
            f"Frame({self.width}x{self.height}, rotation={self.rotation_degrees}, "
            f"t={self.capture_time_ms}ms, released={self._released})"
        )

