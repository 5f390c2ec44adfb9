"""Camera controller that owns the sensor and feeds frames to the pipeline."""

from __future__ import annotations

from dataclasses import dataclass
import importlib
import importlib.util
import threading
from typing import Any, Callable, Mapping

from core.clock import monotonic_ms
from core.logging import logger
from vision.detections import Frame


class CameraUnavailableError(RuntimeError):
    """Raised when the camera cannot be opened; fatal to startup."""


@dataclass(frozen=True)
class CameraSettings:
    """Sensor configuration for recording and analysis streams."""

    main_size: tuple[int, int] = (1920, 1080)
    lores_size: tuple[int, int] = (640, 360)
    frame_rate: int = 30
    rotation_degrees: int = 0
    buffer_count: int = 6


def load_camera_settings(config: Mapping[str, Any] | None = None) -> CameraSettings:
    """Build settings from the ``camera`` config section."""

    if config is None:
        from config import ConfigController

        config = ConfigController.get_instance().get_section("camera")

    defaults = CameraSettings()
    return CameraSettings(
        main_size=_size(config.get("main_size"), defaults.main_size),
        lores_size=_size(config.get("lores_size"), defaults.lores_size),
        frame_rate=max(1, int(config.get("frame_rate", defaults.frame_rate))),
        rotation_degrees=int(config.get("rotation_degrees", defaults.rotation_degrees)) % 360,
        buffer_count=max(2, int(config.get("buffer_count", defaults.buffer_count))),
    )


def _size(value: Any, default: tuple[int, int]) -> tuple[int, int]:
    if isinstance(value, (list, tuple)) and len(value) == 2:
        return int(value[0]), int(value[1])
    return default


def _require_camera_deps() -> Any:
    if importlib.util.find_spec("picamera2") is None:
        raise CameraUnavailableError("picamera2 is required for CameraController")
    picamera2 = importlib.import_module("picamera2")
    return picamera2.Picamera2


def _create_imx500(model_path: str) -> Any:
    imx500_module = importlib.import_module("picamera2.devices.imx500")
    return imx500_module.IMX500(model_path)


class CameraController:
    """Singleton owner of the Picamera2 instance shared by both loops.

    Recording attaches an encoder to the main stream while the frame loop
    hands completed requests to a consumer. When an IMX500 model is given
    the network firmware is loaded before the camera is opened and its
    tensors arrive in each request's metadata.
    """

    _instance: "CameraController | None" = None

    def __init__(
        self,
        settings: CameraSettings | None = None,
        imx500_model: str | None = None,
    ) -> None:
        if CameraController._instance is not None:
            raise RuntimeError("You cannot create another CameraController class")

        Picamera2 = _require_camera_deps()
        self.settings = settings or load_camera_settings()
        self.imx500: Any = None

        camera_num = 0
        if imx500_model:
            try:
                self.imx500 = _create_imx500(imx500_model)
                camera_num = self.imx500.camera_num
            except Exception as exc:
                self.imx500 = None
                logger.warning("[CAMERA] IMX500 unavailable; detection disabled: %s", exc)

        try:
            self.picam2 = Picamera2(camera_num)
            self.camera_configuration = self.picam2.create_video_configuration(
                main={"size": self.settings.main_size, "format": "RGB888"},
                lores={"size": self.settings.lores_size, "format": "YUV420"},
                controls={"FrameRate": self.settings.frame_rate},
                buffer_count=self.settings.buffer_count,
            )
            self.picam2.configure(self.camera_configuration)
            self.picam2.start()
        except Exception as exc:
            raise CameraUnavailableError(f"Camera startup failed: {exc}") from exc

        self._frame_loop_thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._consumer: Callable[[Frame], None] | None = None
        self.frames_delivered = 0

        logger.info(
            "[CAMERA] Started main=%sx%s lores=%sx%s fps=%s imx500=%s",
            *self.settings.main_size,
            *self.settings.lores_size,
            self.settings.frame_rate,
            bool(self.imx500),
        )
        CameraController._instance = self

    def start_frame_loop(self, consumer: Callable[[Frame], None]) -> None:
        if self._frame_loop_thread is None or not self._frame_loop_thread.is_alive():
            self._consumer = consumer
            self._stop_event.clear()
            self._frame_loop_thread = threading.Thread(
                target=self._frame_loop,
                name="camera-frame-loop",
                daemon=True,
            )
            self._frame_loop_thread.start()

    def stop_frame_loop(self) -> None:
        if self._frame_loop_thread is not None:
            self._stop_event.set()
            self._frame_loop_thread.join(timeout=2.0)
            if self._frame_loop_thread.is_alive():
                logger.warning("[CAMERA] Frame loop did not stop within timeout")
                return
            self._frame_loop_thread = None
            logger.info("[CAMERA] Frame loop stopped after %s frames", self.frames_delivered)

    def is_frame_loop_alive(self) -> bool:
        return self._frame_loop_thread is not None and self._frame_loop_thread.is_alive()

    def close(self) -> None:
        self.stop_frame_loop()
        for method_name in ("stop", "close"):
            method = getattr(self.picam2, method_name, None)
            if callable(method):
                try:
                    method()
                except Exception:
                    logger.exception("[CAMERA] Failed to %s camera", method_name)
        CameraController._instance = None

    def _frame_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                request = self.picam2.capture_request()
            except Exception as exc:
                logger.exception("[CAMERA] Error capturing frame (retrying): %s", exc)
                self._stop_event.wait(0.1)
                continue

            frame = self._to_frame(request)
            consumer = self._consumer
            if consumer is None:
                frame.release()
                continue
            try:
                consumer(frame)
            except Exception as exc:
                frame.release()
                logger.exception("[CAMERA] Frame consumer failed: %s", exc)
            self.frames_delivered += 1

    def _to_frame(self, request: Any) -> Frame:
        try:
            metadata = request.get_metadata() or {}
        except Exception:
            metadata = {}
        width, height = self.settings.main_size
        return Frame(
            buffer=request,
            width=width,
            height=height,
            rotation_degrees=self.settings.rotation_degrees,
            capture_time_ms=monotonic_ms(),
            release=request.release,
            metadata=metadata,
        )
