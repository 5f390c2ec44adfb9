"""Tests for alert delivery and operator feedback."""

from __future__ import annotations

import asyncio
import threading
from unittest.mock import Mock

from interaction.alert_feedback import AlertFeedback, AlertFeedbackConfig
from vision.alerts import AlertEvent, LoopAlertDispatcher
from vision.proximity import Zone


class ManualScheduler:
    def __init__(self) -> None:
        self.scheduled: list[tuple[float, object]] = []

    def __call__(self, delay_s: float, callback) -> None:
        self.scheduled.append((delay_s, callback))

    def fire(self, index: int) -> None:
        self.scheduled[index][1]()


def _event(zone: Zone, distance_m: float = 2.0) -> AlertEvent:
    return AlertEvent(zone=zone, distance_m=distance_m, emitted_at_ms=1000)


def test_left_alert_sets_warning_and_pulses() -> None:
    haptic = Mock()
    scheduler = ManualScheduler()
    feedback = AlertFeedback(haptic=haptic, scheduler=scheduler)

    feedback.on_alert(_event(Zone.LEFT))

    assert feedback.active_zones == {Zone.LEFT}
    assert feedback.warning_text == "Pedestrian approaching on the left! (distance: 2.0m)"
    haptic.assert_called_once_with(300)
    assert all(delay == 2.0 for delay, _ in scheduler.scheduled)


def test_alert_clears_after_timeout() -> None:
    scheduler = ManualScheduler()
    feedback = AlertFeedback(scheduler=scheduler)

    feedback.on_alert(_event(Zone.RIGHT, 4.0))
    for index in range(len(scheduler.scheduled)):
        scheduler.fire(index)

    assert feedback.active_zones == set()
    assert feedback.warning_text is None


def test_newer_alert_restarts_zone_timer() -> None:
    scheduler = ManualScheduler()
    feedback = AlertFeedback(scheduler=scheduler)

    feedback.on_alert(_event(Zone.LEFT))
    feedback.on_alert(_event(Zone.LEFT, 1.0))
    scheduler.fire(0)
    scheduler.fire(1)

    assert feedback.active_zones == {Zone.LEFT}
    assert feedback.warning_text == "Pedestrian approaching on the left! (distance: 1.0m)"


def test_center_alert_is_silent_by_default() -> None:
    haptic = Mock()
    scheduler = ManualScheduler()
    feedback = AlertFeedback(haptic=haptic, scheduler=scheduler)

    feedback.on_alert(_event(Zone.CENTER))

    assert feedback.active_zones == set()
    assert feedback.warning_text is None
    haptic.assert_not_called()
    assert scheduler.scheduled == []


def test_center_alert_announced_when_enabled() -> None:
    feedback = AlertFeedback(
        AlertFeedbackConfig(announce_center=True),
        scheduler=ManualScheduler(),
    )

    feedback.on_alert(_event(Zone.CENTER, 1.0))

    assert feedback.warning_text == "Pedestrian ahead! (distance: 1.0m)"


def test_haptic_failure_is_contained() -> None:
    haptic = Mock(side_effect=OSError("vibrator missing"))
    feedback = AlertFeedback(haptic=haptic, scheduler=ManualScheduler())

    feedback.on_alert(_event(Zone.RIGHT))

    assert feedback.active_zones == {Zone.RIGHT}


def test_feedback_config_from_mapping() -> None:
    config = AlertFeedbackConfig.from_config({"warning_clear_s": 1.5, "haptic_pulse_ms": -5})

    assert config.warning_clear_s == 1.5
    assert config.haptic_pulse_ms == 0
    assert config.announce_center is False


def test_dispatcher_delivers_on_loop_in_order() -> None:
    received: list[Zone] = []

    class Sink:
        def on_alert(self, event: AlertEvent) -> None:
            received.append(event.zone)

    async def scenario() -> None:
        loop = asyncio.get_running_loop()
        dispatcher = LoopAlertDispatcher(Sink(), loop)
        worker = threading.Thread(
            target=lambda: [
                dispatcher.on_alert(_event(zone)) for zone in (Zone.LEFT, Zone.RIGHT, Zone.CENTER)
            ]
        )
        worker.start()
        worker.join()
        for _ in range(5):
            await asyncio.sleep(0)

    asyncio.run(scenario())

    assert received == [Zone.LEFT, Zone.RIGHT, Zone.CENTER]


def test_dispatcher_drops_when_loop_closed() -> None:
    loop = asyncio.new_event_loop()
    loop.close()
    sink = Mock()
    dispatcher = LoopAlertDispatcher(sink, loop)

    dispatcher.on_alert(_event(Zone.LEFT))

    assert dispatcher.dropped == 1
    sink.on_alert.assert_not_called()


def test_feedback_uses_running_loop_timer() -> None:
    async def scenario() -> AlertFeedback:
        feedback = AlertFeedback(AlertFeedbackConfig(warning_clear_s=0.01))
        feedback.on_alert(_event(Zone.LEFT))
        assert feedback.active_zones == {Zone.LEFT}
        await asyncio.sleep(0.05)
        return feedback

    feedback = asyncio.run(scenario())

    assert feedback.active_zones == set()
    assert feedback.warning_text is None
