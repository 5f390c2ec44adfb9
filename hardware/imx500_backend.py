"""Detection backend reading the IMX500 sensor's on-chip inference results."""

from __future__ import annotations

from dataclasses import dataclass
import math
import threading
from typing import Any, Mapping, Sequence

import numpy as np

from core.logging import logger
from vision.detections import Detection, DetectionLabel, Frame


@dataclass(frozen=True)
class Imx500Settings:
    """Runtime settings for IMX500 detection."""

    model: str = "/usr/share/imx500-models/imx500_network_ssd_mobilenetv2_fpnlite_320x320_pp.rpk"
    min_confidence: float = 0.5
    bbox_normalization: bool | None = None
    bbox_order: str | None = None


def load_imx500_settings(config: Mapping[str, Any] | None = None) -> Imx500Settings:
    """Build settings from the ``imx500`` config section."""

    if config is None:
        from config import ConfigController

        config = ConfigController.get_instance().get_section("imx500")

    defaults = Imx500Settings()
    normalization = config.get("bbox_normalization")
    order = config.get("bbox_order")
    return Imx500Settings(
        model=str(config.get("model", defaults.model)),
        min_confidence=float(config.get("min_confidence", defaults.min_confidence)),
        bbox_normalization=bool(normalization) if normalization is not None else None,
        bbox_order=str(order) if order is not None else None,
    )


class Imx500DetectionBackend:
    """Decode the object-detection tensors attached to each camera request.

    Boxes are mapped back to main-stream pixel coordinates, which are the
    dimensions the camera controller reports on each frame.
    """

    def __init__(self, imx500: Any, picam2: Any, settings: Imx500Settings | None = None) -> None:
        self._imx500 = imx500
        self._picam2 = picam2
        self.settings = settings or load_imx500_settings()
        self._lock = threading.Lock()
        self._closed = False
        self._frames_decoded = 0
        self._frames_without_outputs = 0

        intrinsics = getattr(imx500, "network_intrinsics", None)
        if intrinsics is not None and hasattr(intrinsics, "update_with_defaults"):
            intrinsics.update_with_defaults()
        self._labels: list[str] = list(getattr(intrinsics, "labels", None) or [])
        self._bbox_normalization = (
            self.settings.bbox_normalization
            if self.settings.bbox_normalization is not None
            else bool(getattr(intrinsics, "bbox_normalization", False))
        )
        self._bbox_order = self.settings.bbox_order or getattr(intrinsics, "bbox_order", "yx")
        logger.info(
            "[IMX500] Backend ready (labels=%s min_confidence=%.2f)",
            len(self._labels),
            self.settings.min_confidence,
        )

    def detect(self, frame: Frame) -> Sequence[Detection]:
        with self._lock:
            if self._closed:
                raise RuntimeError("IMX500 backend is closed")

        metadata = frame.metadata
        if not isinstance(metadata, Mapping):
            logger.warning("[IMX500] Skipping frame with metadata of type %s", type(metadata).__name__)
            return []

        outputs = self._imx500.get_outputs(metadata, add_batch=True)
        if outputs is None:
            with self._lock:
                self._frames_without_outputs += 1
            return []

        detections = self._convert_outputs(outputs, metadata)
        with self._lock:
            self._frames_decoded += 1
        return detections

    def close(self) -> None:
        with self._lock:
            self._closed = True
        logger.info(
            "[IMX500] Backend closed (decoded=%s without_outputs=%s)",
            self._frames_decoded,
            self._frames_without_outputs,
        )

    def _convert_outputs(self, outputs: Sequence[Any], metadata: Mapping[str, Any]) -> list[Detection]:
        boxes = np.asarray(outputs[0][0], dtype=float)
        scores = np.asarray(outputs[1][0], dtype=float)
        classes = np.asarray(outputs[2][0])
        if boxes.ndim != 2 or boxes.shape[0] == 0:
            return []

        if self._bbox_normalization:
            _, input_h = self._imx500.get_input_size()
            boxes = boxes / float(input_h)
        if self._bbox_order == "xy":
            boxes = boxes[:, [1, 0, 3, 2]]

        detections: list[Detection] = []
        for box, score, category in zip(boxes, scores, classes):
            confidence = self._to_finite_float(score)
            if confidence is None or confidence < self.settings.min_confidence:
                continue
            x, y, w, h = self._imx500.convert_inference_coords(tuple(box), metadata, self._picam2)
            bbox = (float(x), float(y), float(w), float(h))
            if any(self._to_finite_float(value) is None for value in bbox):
                continue
            label = DetectionLabel(text=self._label_for(category), confidence=confidence)
            detections.append(Detection(bbox=bbox, labels=(label,)))
        return detections

    def _label_for(self, category: Any) -> str:
        try:
            index = int(category)
        except (TypeError, ValueError):
            return "unknown"
        if 0 <= index < len(self._labels):
            return self._labels[index]
        return "unknown"

    def _to_finite_float(self, value: Any) -> float | None:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return None
        if math.isnan(number) or math.isinf(number):
            return None
        return number
