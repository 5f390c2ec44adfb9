"""Operator feedback for pedestrian alerts: warning text and haptic pulse."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from core.logging import log_alert, logger
from vision.alerts import AlertEvent
from vision.proximity import Zone

Scheduler = Callable[[float, Callable[[], None]], Any]

_ZONE_MESSAGES = {
    Zone.LEFT: "Pedestrian approaching on the left!",
    Zone.RIGHT: "Pedestrian approaching on the right!",
    Zone.CENTER: "Pedestrian ahead!",
}


@dataclass(frozen=True)
class AlertFeedbackConfig:
    """Presentation settings for alert feedback."""

    warning_clear_s: float = 2.0
    haptic_pulse_ms: int = 300
    announce_center: bool = False

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "AlertFeedbackConfig":
        return cls(
            warning_clear_s=max(0.0, float(config.get("warning_clear_s", 2.0))),
            haptic_pulse_ms=max(0, int(config.get("haptic_pulse_ms", 300))),
            announce_center=bool(config.get("announce_center", False)),
        )


class AlertFeedback:
    """Alert sink that drives zone indicators, warning text and haptics.

    Must be called on the event loop thread; use ``LoopAlertDispatcher`` to
    reach it from the detection worker.
    """

    def __init__(
        self,
        config: AlertFeedbackConfig | None = None,
        haptic: Callable[[int], None] | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self.config = config or AlertFeedbackConfig()
        self._haptic = haptic
        self._scheduler = scheduler
        self._active_zones: dict[Zone, int] = {}
        self._warning_text: str | None = None
        self._warning_token = 0

    @property
    def active_zones(self) -> set[Zone]:
        return set(self._active_zones)

    @property
    def warning_text(self) -> str | None:
        return self._warning_text

    def on_alert(self, event: AlertEvent) -> None:
        if event.zone is Zone.CENTER and not self.config.announce_center:
            return

        token = self._active_zones.get(event.zone, 0) + 1
        self._active_zones[event.zone] = token
        self._schedule(lambda: self._clear_zone(event.zone, token))

        message = f"{_ZONE_MESSAGES[event.zone]} (distance: {event.distance_m:.1f}m)"
        self._warning_token += 1
        warning_token = self._warning_token
        self._warning_text = message
        self._schedule(lambda: self._clear_warning(warning_token))

        log_alert(f"[ALERT] {message}")
        self._pulse()

    def _pulse(self) -> None:
        if self._haptic is None or self.config.haptic_pulse_ms <= 0:
            return
        try:
            self._haptic(self.config.haptic_pulse_ms)
        except Exception:
            logger.exception("[ALERT] Haptic pulse failed")

    def _schedule(self, callback: Callable[[], None]) -> None:
        if self._scheduler is not None:
            self._scheduler(self.config.warning_clear_s, callback)
            return
        asyncio.get_running_loop().call_later(self.config.warning_clear_s, callback)

    def _clear_zone(self, zone: Zone, token: int) -> None:
        # A newer alert for the same zone restarts its timer.
        if self._active_zones.get(zone) == token:
            del self._active_zones[zone]

    def _clear_warning(self, token: int) -> None:
        if self._warning_token == token:
            self._warning_text = None
