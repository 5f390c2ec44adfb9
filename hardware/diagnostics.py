"""Diagnostics routines for camera and encoder dependencies."""

from __future__ import annotations

from dataclasses import dataclass
import importlib.util
import shutil

from diagnostics.models import DiagnosticResult, DiagnosticStatus


@dataclass(frozen=True)
class HardwareProbeConfig:
    """Configuration for hardware dependency checks."""

    require_all: bool = False


def probe(
    config: HardwareProbeConfig | None = None,
    available_modules: set[str] | None = None,
    available_commands: set[str] | None = None,
) -> DiagnosticResult:
    """Run a hardware probe to validate camera and encoder dependencies.

    Args:
        config: Optional configuration for probe behavior.
        available_modules: Optional override set for offline testing.
        available_commands: Optional override set of executables on PATH.

    Returns:
        Diagnostic result indicating hardware dependency readiness.
    """

    name = "hardware"
    settings = config or HardwareProbeConfig()
    modules = ["picamera2", "numpy"]
    commands = ["ffmpeg"]

    missing: list[str] = []
    for module_name in modules:
        if available_modules is not None:
            is_available = module_name in available_modules
        else:
            is_available = importlib.util.find_spec(module_name) is not None
        if not is_available:
            missing.append(module_name)

    for command in commands:
        if available_commands is not None:
            is_available = command in available_commands
        else:
            is_available = shutil.which(command) is not None
        if not is_available:
            missing.append(command)

    if missing:
        status = DiagnosticStatus.FAIL if settings.require_all else DiagnosticStatus.WARN
        details = f"Missing camera deps: {', '.join(missing)}"
        return DiagnosticResult(name=name, status=status, details=details)

    return DiagnosticResult(
        name=name,
        status=DiagnosticStatus.PASS,
        details="Camera and encoder dependencies available",
    )
