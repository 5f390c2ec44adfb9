"""One-shot rearmable timer used for segment rotation."""

from __future__ import annotations

import threading
from typing import Callable


class SegmentTimer:
    """Owns at most one pending ``threading.Timer``.

    Arming replaces any pending callback; cancelling is safe at any time,
    including from inside the callback that is currently firing.
    """

    def __init__(self, name: str = "segment-rotation") -> None:
        self._name = name
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None

    @property
    def armed(self) -> bool:
        with self._lock:
            return self._timer is not None and self._timer.is_alive()

    def arm(self, delay_s: float, callback: Callable[[], None]) -> None:
        timer = threading.Timer(max(0.0, float(delay_s)), callback)
        timer.name = self._name
        timer.daemon = True
        with self._lock:
            previous = self._timer
            self._timer = timer
        if previous is not None:
            previous.cancel()
        timer.start()

    def cancel(self) -> None:
        with self._lock:
            timer = self._timer
            self._timer = None
        if timer is not None:
            timer.cancel()
