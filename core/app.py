"""Application runtime: wires camera, detection, recording and storage."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import signal
from typing import Any, Callable

from core.logging import logger
from hardware.camera_controller import CameraController, CameraUnavailableError
from interaction.alert_feedback import AlertFeedback, AlertFeedbackConfig
from recording.controller import (
    RecordingController,
    RecordingError,
    RecordingState,
    load_recording_settings,
)
from storage.segments import StorageManager
from vision.alerts import LoopAlertDispatcher
from vision.pedestrian_pipeline import DetectionPipeline, load_detection_settings


@dataclass(frozen=True)
class AppConfig:
    """Which loops to run for this session.

    Attributes:
        record: Run segmented recording.
        detect: Run the pedestrian alert pipeline.
        status_period_s: Interval between status log lines.
    """

    record: bool = True
    detect: bool = True
    status_period_s: float = 60.0


class DashcamApp:
    """Owns the runtime components for one session."""

    def __init__(
        self,
        app_config: AppConfig,
        storage: StorageManager | None = None,
        haptic: Callable[[int], None] | None = None,
    ) -> None:
        from config import ConfigController

        self.app_config = app_config
        self._config = ConfigController.get_instance()
        self.storage = storage or StorageManager()
        self._haptic = haptic
        self.camera: CameraController | None = None
        self.pipeline: DetectionPipeline | None = None
        self.recorder: RecordingController | None = None
        self._stop_event: asyncio.Event | None = None

    def request_stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()

    async def run(self) -> int:
        """Run until interrupted. Returns a process exit code."""

        loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()
        self._install_signal_handlers(loop)

        detection_settings = load_detection_settings()
        recording_settings = load_recording_settings()
        detect = self.app_config.detect and detection_settings.enabled
        record = self.app_config.record and recording_settings.enabled

        imx500_model = None
        if detect:
            imx500_model = self._config.get_section("imx500").get("model")

        try:
            self.camera = CameraController(imx500_model=imx500_model)
        except CameraUnavailableError as exc:
            logger.error("[APP] Camera unavailable: %s", exc)
            return 1

        try:
            if detect:
                self._start_detection(loop, detection_settings)
            if record:
                self._start_recording(recording_settings)
            if self.pipeline is None and self.recorder is None:
                logger.error("[APP] Nothing to run; detection and recording are both off")
                return 1
            await self._wait_for_stop()
        finally:
            self._shutdown()
        return 0

    def _start_detection(self, loop: asyncio.AbstractEventLoop, settings: Any) -> None:
        camera = self.camera
        if camera is None or camera.imx500 is None:
            logger.warning("[APP] No detection backend available; alerts disabled")
            return

        from hardware.imx500_backend import Imx500DetectionBackend

        feedback = self.build_alert_feedback()
        backend = Imx500DetectionBackend(camera.imx500, camera.picam2)
        self.pipeline = DetectionPipeline(
            backend,
            LoopAlertDispatcher(feedback, loop),
            settings=settings,
        )
        camera.start_frame_loop(self.pipeline.submit)
        logger.info("[APP] Pedestrian alerts running (interval=%sms)", settings.interval_ms)

    def build_alert_feedback(self) -> AlertFeedback:
        """Create the alert sink, attaching the haptic device when one was given."""

        feedback_config = AlertFeedbackConfig.from_config(self._config.get_section("alerts"))
        if self._haptic is None and feedback_config.haptic_pulse_ms > 0:
            logger.info("[APP] No haptic device attached; alerts are visual only")
        return AlertFeedback(feedback_config, haptic=self._haptic)

    def _start_recording(self, settings: Any) -> None:
        from hardware.video_writer import PicameraSegmentWriter

        writer = PicameraSegmentWriter(self.camera.picam2, settings)
        self.recorder = RecordingController(writer, self.storage, settings=settings)
        self.recorder.add_state_listener(self._on_recording_state)
        try:
            self.recorder.start()
        except RecordingError as exc:
            logger.error("[APP] Recording unavailable: %s", exc)

    def _on_recording_state(self, state: RecordingState) -> None:
        label = "RECORDING" if state is RecordingState.RECORDING else "stopped"
        logger.info("[APP] Recording indicator: %s", label)

    async def _wait_for_stop(self) -> None:
        assert self._stop_event is not None
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=max(1.0, self.app_config.status_period_s),
                )
            except asyncio.TimeoutError:
                self._log_status()

    def _log_status(self) -> None:
        if self.recorder is not None:
            status = self.recorder.get_runtime_status()
            logger.info(
                "[APP] Recording state=%s completed=%s discarded=%s",
                status["state"],
                status["segments_completed"],
                status["segments_discarded"],
            )
        logger.info("[APP] Storage used: %sMB", self.storage.usage_megabytes())

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for signum in (signal.SIGTERM,):
            try:
                loop.add_signal_handler(signum, self.request_stop)
            except (NotImplementedError, RuntimeError):
                logger.debug("[APP] Signal handlers unavailable on this platform")

    def _shutdown(self) -> None:
        if self.camera is not None:
            self.camera.stop_frame_loop()
        if self.pipeline is not None:
            self.pipeline.close()
        if self.recorder is not None:
            self.recorder.stop()
        if self.camera is not None:
            self.camera.close()
        logger.info("[APP] Shutdown complete")
