"""Picamera2 H.264 encoder muxed to MP4 segment files through FFmpeg."""

from __future__ import annotations

from dataclasses import dataclass
import importlib
from pathlib import Path
from typing import Any

from core.logging import logger
from recording.controller import CloseResult, RecordingSettings


@dataclass
class WriterHandle:
    """Encoder and output bound to one segment file."""

    path: Path
    encoder: Any
    output: Any


class PicameraSegmentWriter:
    """Segment writer that attaches an encoder to the shared camera's main stream."""

    def __init__(self, picam2: Any, settings: RecordingSettings) -> None:
        self._picam2 = picam2
        self._settings = settings
        self._encoders = importlib.import_module("picamera2.encoders")
        self._outputs = importlib.import_module("picamera2.outputs")

    def open(self, path: Path) -> WriterHandle:
        path.parent.mkdir(parents=True, exist_ok=True)
        encoder = self._encoders.H264Encoder(bitrate=self._settings.bitrate)
        output = self._outputs.FfmpegOutput(str(path), audio=self._settings.audio_enabled)
        self._picam2.start_encoder(encoder, output)
        logger.debug("[WRITER] Encoder attached: %s", path)
        return WriterHandle(path=path, encoder=encoder, output=output)

    def close(self, handle: WriterHandle) -> CloseResult:
        try:
            self._picam2.stop_encoder(handle.encoder)
        except Exception as exc:
            return CloseResult(success=False, error=f"stop_encoder failed: {exc}")

        try:
            size = handle.path.stat().st_size
        except OSError as exc:
            return CloseResult(success=False, error=f"segment not written: {exc}")
        if size == 0:
            return CloseResult(success=False, error="segment is empty")
        return CloseResult(success=True)
