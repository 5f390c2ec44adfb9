"""Alert events emitted by the pedestrian pipeline and their delivery."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Protocol

from core.logging import logger
from vision.proximity import Zone


@dataclass(frozen=True)
class AlertEvent:
    """A nearby pedestrian warning."""

    zone: Zone
    distance_m: float
    emitted_at_ms: int
    relative_size: float = 0.0


class AlertSink(Protocol):
    """Consumer of alert events; decides how they are presented."""

    def on_alert(self, event: AlertEvent) -> None:
        ...


class LoopAlertDispatcher:
    """Forward alert events onto the asyncio loop that owns feedback.

    Delivery is fire-and-forget: ``on_alert`` returns as soon as the call is
    scheduled, and events keep their emission order on the target loop.
    """

    def __init__(self, sink: AlertSink, loop: asyncio.AbstractEventLoop) -> None:
        self._sink = sink
        self._loop = loop
        self._dropped = 0

    @property
    def dropped(self) -> int:
        return self._dropped

    def on_alert(self, event: AlertEvent) -> None:
        if self._loop.is_closed():
            self._dropped += 1
            logger.debug("[ALERT] Loop closed; dropping %s alert", event.zone.value)
            return
        try:
            self._loop.call_soon_threadsafe(self._deliver, event)
        except RuntimeError:
            self._dropped += 1
            logger.debug("[ALERT] Loop stopped; dropping %s alert", event.zone.value)

    def _deliver(self, event: AlertEvent) -> None:
        try:
            self._sink.on_alert(event)
        except Exception:
            logger.exception("[ALERT] Sink failed for %s alert", event.zone.value)
