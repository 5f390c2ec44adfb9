"""Vision package exports."""

from vision.alerts import AlertEvent, AlertSink, LoopAlertDispatcher
from vision.detections import Detection, DetectionLabel, Frame
from vision.pedestrian_pipeline import (
    DetectionBackend,
    DetectionPipeline,
    DetectionSettings,
    load_detection_settings,
)
from vision.proximity import ProximityThresholds, Zone, classify_zone, estimate_distance

__all__ = [
    "AlertEvent",
    "AlertSink",
    "Detection",
    "DetectionBackend",
    "DetectionLabel",
    "DetectionPipeline",
    "DetectionSettings",
    "Frame",
    "LoopAlertDispatcher",
    "ProximityThresholds",
    "Zone",
    "classify_zone",
    "estimate_distance",
    "load_detection_settings",
]
