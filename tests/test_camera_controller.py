"""Tests for the camera controller with a fake Picamera2."""

from __future__ import annotations

import threading
import time
from unittest.mock import MagicMock, Mock

import pytest

from hardware import camera_controller
from hardware.camera_controller import (
    CameraController,
    CameraSettings,
    CameraUnavailableError,
    load_camera_settings,
)


class FakeRequest:
    def __init__(self) -> None:
        self.released = threading.Event()

    def get_metadata(self) -> dict:
        return {"SensorTimestamp": 1}

    def release(self) -> None:
        self.released.set()


class FakePicamera2:
    instances: list["FakePicamera2"] = []

    def __init__(self, camera_num: int = 0) -> None:
        self.camera_num = camera_num
        self.started = False
        self.closed = False
        self.requests: list[FakeRequest] = []
        FakePicamera2.instances.append(self)

    def create_video_configuration(self, **kwargs) -> dict:
        return kwargs

    def configure(self, config: dict) -> None:
        self.config = config

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.started = False

    def close(self) -> None:
        self.closed = True

    def capture_request(self) -> FakeRequest:
        time.sleep(0.005)
        request = FakeRequest()
        self.requests.append(request)
        return request


@pytest.fixture(autouse=True)
def fake_camera(monkeypatch):
    CameraController._instance = None
    FakePicamera2.instances = []
    monkeypatch.setattr(camera_controller, "_require_camera_deps", lambda: FakePicamera2)
    yield
    CameraController._instance = None


def test_camera_configures_streams_and_is_singleton() -> None:
    controller = CameraController(settings=CameraSettings(frame_rate=25))

    camera = FakePicamera2.instances[0]
    assert camera.started
    assert camera.config["controls"] == {"FrameRate": 25}
    assert camera.config["main"]["size"] == (1920, 1080)
    with pytest.raises(RuntimeError):
        CameraController(settings=CameraSettings())

    controller.close()
    assert camera.closed
    assert CameraController._instance is None


def test_imx500_selects_camera_number(monkeypatch) -> None:
    imx500 = MagicMock()
    imx500.camera_num = 1
    monkeypatch.setattr(camera_controller, "_create_imx500", lambda model: imx500)

    controller = CameraController(settings=CameraSettings(), imx500_model="model.rpk")

    assert controller.imx500 is imx500
    assert FakePicamera2.instances[0].camera_num == 1
    controller.close()


def test_imx500_failure_disables_detection_only(monkeypatch) -> None:
    def _fail(model):
        raise OSError("firmware missing")

    monkeypatch.setattr(camera_controller, "_create_imx500", _fail)

    controller = CameraController(settings=CameraSettings(), imx500_model="model.rpk")

    assert controller.imx500 is None
    assert FakePicamera2.instances[0].started
    controller.close()


def test_startup_failure_raises_camera_unavailable(monkeypatch) -> None:
    class BrokenPicamera2(FakePicamera2):
        def start(self) -> None:
            raise RuntimeError("camera in use")

    monkeypatch.setattr(camera_controller, "_require_camera_deps", lambda: BrokenPicamera2)

    with pytest.raises(CameraUnavailableError):
        CameraController(settings=CameraSettings())
    assert CameraController._instance is None


def test_frame_loop_delivers_frames_with_main_stream_size() -> None:
    controller = CameraController(settings=CameraSettings(main_size=(1280, 720)))
    received = []
    got_frame = threading.Event()

    def consumer(frame) -> None:
        received.append(frame)
        frame.release()
        got_frame.set()

    controller.start_frame_loop(consumer)
    assert got_frame.wait(timeout=2.0)
    controller.stop_frame_loop()

    frame = received[0]
    assert (frame.width, frame.height) == (1280, 720)
    assert frame.metadata == {"SensorTimestamp": 1}
    assert frame.buffer.released.is_set()
    assert not controller.is_frame_loop_alive()
    controller.close()


def test_frame_loop_releases_frame_when_consumer_raises() -> None:
    controller = CameraController(settings=CameraSettings())
    consumer = Mock(side_effect=RuntimeError("pipeline bug"))

    controller.start_frame_loop(consumer)
    deadline = time.monotonic() + 2.0
    while consumer.call_count == 0 and time.monotonic() < deadline:
        time.sleep(0.01)
    controller.stop_frame_loop()

    first_request = FakePicamera2.instances[0].requests[0]
    assert first_request.released.is_set()
    controller.close()


def test_load_camera_settings_from_mapping() -> None:
    settings = load_camera_settings(
        {"main_size": [1280, 720], "frame_rate": 0, "rotation_degrees": 450}
    )

    assert settings.main_size == (1280, 720)
    assert settings.lores_size == (640, 360)
    assert settings.frame_rate == 1
    assert settings.rotation_degrees == 90
