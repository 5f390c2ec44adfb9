"""Throttled pedestrian detection pipeline.

Frames arrive at camera rate; at most one is handed to the detection backend
at a time and never more often than ``interval_ms``. Every other frame is
released immediately instead of being queued.
"""

from __future__ import annotations

import concurrent.futures
from dataclasses import dataclass
import threading
import time
from typing import Any, Callable, Mapping, Protocol, Sequence

from core.clock import millis, monotonic_ms
from core.logging import logger
from vision.alerts import AlertEvent, AlertSink
from vision.detections import Detection, Frame
from vision.proximity import (
    ProximityThresholds,
    classify_zone,
    estimate_distance,
    relative_size,
)


class DetectionBackend(Protocol):
    """Object detector run on one frame at a time."""

    def detect(self, frame: Frame) -> Sequence[Detection]:
        ...

    def close(self) -> None:
        ...


@dataclass(frozen=True)
class DetectionSettings:
    """Runtime settings for the pedestrian pipeline."""

    enabled: bool = True
    interval_ms: int = 500
    left_zone_end: float = 0.33
    right_zone_start: float = 0.67
    warning_size_threshold: float = 0.15
    pedestrian_labels: tuple[str, ...] = ("person", "人")
    status_log_period_s: float = 30.0

    @property
    def thresholds(self) -> ProximityThresholds:
        return ProximityThresholds(
            left_zone_end=self.left_zone_end,
            right_zone_start=self.right_zone_start,
            warning_size_threshold=self.warning_size_threshold,
        )


def load_detection_settings(config: Mapping[str, Any] | None = None) -> DetectionSettings:
    """Build settings from the ``detection`` config section."""

    if config is None:
        from config import ConfigController

        config = ConfigController.get_instance().get_section("detection")

    defaults = DetectionSettings()
    labels_value = config.get("pedestrian_labels")
    if isinstance(labels_value, (list, tuple)) and labels_value:
        labels = tuple(str(item) for item in labels_value)
    else:
        labels = defaults.pedestrian_labels

    return DetectionSettings(
        enabled=bool(config.get("enabled", defaults.enabled)),
        interval_ms=max(0, int(config.get("interval_ms", defaults.interval_ms))),
        left_zone_end=float(config.get("left_zone_end", defaults.left_zone_end)),
        right_zone_start=float(config.get("right_zone_start", defaults.right_zone_start)),
        warning_size_threshold=float(
            config.get("warning_size_threshold", defaults.warning_size_threshold)
        ),
        pedestrian_labels=labels,
        status_log_period_s=float(
            config.get("status_log_period_s", defaults.status_log_period_s)
        ),
    )


class DetectionPipeline:
    """Turn camera frames into directional pedestrian alerts."""

    def __init__(
        self,
        backend: DetectionBackend,
        sink: AlertSink,
        settings: DetectionSettings | None = None,
        executor: concurrent.futures.Executor | None = None,
        clock_ms: Callable[[], int] = monotonic_ms,
    ) -> None:
        self._backend = backend
        self._sink = sink
        self.settings = settings or load_detection_settings()
        self._clock_ms = clock_ms
        self._owns_executor = executor is None
        self._executor = executor or concurrent.futures.ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix="pedestrian-detection",
        )

        self._lock = threading.Lock()
        self._processing = False
        self._closed = False
        self._last_cycle_ms: int | None = None
        self._in_flight: concurrent.futures.Future[None] | None = None
        self._in_flight_frame: Frame | None = None

        self._frames_submitted = 0
        self._frames_skipped = 0
        self._cycles_completed = 0
        self._cycles_failed = 0
        self._alerts_emitted = 0
        self._last_status_log_monotonic = time.monotonic()

    @property
    def is_processing(self) -> bool:
        with self._lock:
            return self._processing

    def submit(self, frame: Frame) -> None:
        """Offer a frame; it is either dispatched or released right away."""

        now_ms = self._clock_ms()
        with self._lock:
            self._frames_submitted += 1
            accept = not (
                self._closed
                or self._processing
                or self._within_interval_locked(now_ms)
            )
            if accept:
                self._processing = True
            else:
                self._frames_skipped += 1

        if not accept:
            frame.release()
            return

        if frame.buffer is None:
            with self._lock:
                self._processing = False
                self._frames_skipped += 1
            frame.release()
            return

        try:
            future = self._executor.submit(self._run_cycle, frame)
        except RuntimeError as exc:
            with self._lock:
                self._processing = False
            frame.release()
            logger.warning("[PIPELINE] Unable to dispatch frame: %s", exc)
            return

        with self._lock:
            if not future.done():
                self._in_flight = future
                self._in_flight_frame = frame

    def evaluate(
        self,
        detections: Sequence[Detection],
        frame_width: int,
        frame_height: int,
        emitted_at_ms: int | None = None,
    ) -> list[AlertEvent]:
        """Return the alerts warranted by one frame's detections."""

        if emitted_at_ms is None:
            emitted_at_ms = millis()
        thresholds = self.settings.thresholds
        events: list[AlertEvent] = []
        for detection in detections:
            if detection.labels and not detection.has_label(self.settings.pedestrian_labels):
                continue

            zone = classify_zone(detection.center_x, frame_width, thresholds)
            size = relative_size(detection, frame_width, frame_height)
            if size <= thresholds.warning_size_threshold:
                continue

            distance_m = estimate_distance(size)
            logger.debug(
                "[PIPELINE] Pedestrian zone=%s size=%.3f distance=%.1fm",
                zone.value,
                size,
                distance_m,
            )
            events.append(
                AlertEvent(
                    zone=zone,
                    distance_m=distance_m,
                    emitted_at_ms=emitted_at_ms,
                    relative_size=size,
                )
            )
        return events

    def close(self, timeout_s: float = 2.0) -> None:
        """Stop accepting frames, wait for the in-flight cycle, close the backend."""

        with self._lock:
            if self._closed:
                return
            self._closed = True
            in_flight = self._in_flight
            in_flight_frame = self._in_flight_frame

        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)
        if in_flight is not None:
            done, _ = concurrent.futures.wait([in_flight], timeout=timeout_s)
            if in_flight.cancelled() and in_flight_frame is not None:
                in_flight_frame.release()
            elif not done:
                logger.warning(
                    "[PIPELINE] Detection cycle did not finish within %.1fs; abandoning it",
                    timeout_s,
                )

        try:
            self._backend.close()
        except Exception:
            logger.exception("[PIPELINE] Failed to close detection backend")
        logger.info(
            "[PIPELINE] Closed after %s cycles (%s skipped frames)",
            self._cycles_completed,
            self._frames_skipped,
        )

    def get_runtime_status(self) -> dict[str, int]:
        """Return pipeline counters for status logs and diagnostics."""

        with self._lock:
            return {
                "frames_submitted": self._frames_submitted,
                "frames_skipped": self._frames_skipped,
                "cycles_completed": self._cycles_completed,
                "cycles_failed": self._cycles_failed,
                "alerts_emitted": self._alerts_emitted,
                "processing": int(self._processing),
                "closed": int(self._closed),
            }

    def _within_interval_locked(self, now_ms: int) -> bool:
        if self._last_cycle_ms is None:
            return False
        return now_ms - self._last_cycle_ms < self.settings.interval_ms

    def _run_cycle(self, frame: Frame) -> None:
        failed = False
        alerts = 0
        try:
            with frame:
                try:
                    detections = self._backend.detect(frame)
                except Exception:
                    failed = True
                    logger.exception(
                        "[PIPELINE] Detection failed for frame at %sms",
                        frame.capture_time_ms,
                    )
                else:
                    events = self.evaluate(detections, frame.width, frame.height)
                    alerts = self._emit(events)
        finally:
            self._finish_cycle(failed=failed, alerts=alerts)

    def _emit(self, events: Sequence[AlertEvent]) -> int:
        emitted = 0
        for event in events:
            try:
                self._sink.on_alert(event)
                emitted += 1
            except Exception:
                logger.exception("[PIPELINE] Alert sink failed for %s alert", event.zone.value)
        return emitted

    def _finish_cycle(self, failed: bool, alerts: int) -> None:
        with self._lock:
            self._processing = False
            self._last_cycle_ms = self._clock_ms()
            self._in_flight = None
            self._in_flight_frame = None
            self._cycles_completed += 1
            if failed:
                self._cycles_failed += 1
            self._alerts_emitted += alerts
        self._maybe_log_status(time.monotonic())

    def _maybe_log_status(self, now_monotonic: float) -> None:
        period_s = max(1.0, self.settings.status_log_period_s)
        with self._lock:
            if (now_monotonic - self._last_status_log_monotonic) < period_s:
                return
            self._last_status_log_monotonic = now_monotonic

        status = self.get_runtime_status()
        logger.info(
            "[PIPELINE] Status: submitted=%s skipped=%s completed=%s failed=%s alerts=%s",
            status["frames_submitted"],
            status["frames_skipped"],
            status["cycles_completed"],
            status["cycles_failed"],
            status["alerts_emitted"],
        )
