"""Hardware adapters for the camera, encoder and on-sensor detector."""

from hardware.camera_controller import (
    CameraController,
    CameraSettings,
    CameraUnavailableError,
    load_camera_settings,
)

__all__ = [
    "CameraController",
    "CameraSettings",
    "CameraUnavailableError",
    "load_camera_settings",
]
