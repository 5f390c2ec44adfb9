"""Millisecond clock helpers."""

from __future__ import annotations

import time


def millis() -> int:
    """Return current wall-clock time in milliseconds."""

    return int(time.time() * 1000)


def monotonic_ms() -> int:
    """Return a monotonic timestamp in milliseconds for interval checks."""

    return int(time.monotonic() * 1000)
