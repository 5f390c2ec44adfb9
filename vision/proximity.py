"""Zone and distance classification for detected pedestrians."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from vision.detections import Detection


class Zone(str, Enum):
    """Horizontal screen region of a detection."""

    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


# (relative size lower bound, distance in meters), checked top to bottom.
DISTANCE_STEPS: tuple[tuple[float, float], ...] = (
    (0.4, 1.0),
    (0.3, 2.0),
    (0.2, 3.0),
    (0.15, 4.0),
)
FAR_DISTANCE_M = 5.0


@dataclass(frozen=True)
class ProximityThresholds:
    """Coarse tunable thresholds; not derived from camera calibration."""

    left_zone_end: float = 0.33
    right_zone_start: float = 0.67
    warning_size_threshold: float = 0.15


def classify_zone(
    center_x: float,
    frame_width: float,
    thresholds: ProximityThresholds = ProximityThresholds(),
) -> Zone:
    """Return the zone for a horizontal center coordinate in pixels."""

    if frame_width <= 0:
        return Zone.CENTER
    position = center_x / frame_width
    if position < thresholds.left_zone_end:
        return Zone.LEFT
    if position > thresholds.right_zone_start:
        return Zone.RIGHT
    return Zone.CENTER


def relative_size(detection: Detection, frame_width: int, frame_height: int) -> float:
    """Return the box area as a fraction of the frame area."""

    frame_area = frame_width * frame_height
    if frame_area <= 0:
        return 0.0
    return detection.area / frame_area


def estimate_distance(size: float) -> float:
    """Map a relative size to a distance bucket; larger boxes are closer."""

    for lower_bound, distance_m in DISTANCE_STEPS:
        if size > lower_bound:
            return distance_m
    return FAR_DISTANCE_M
