"""Diagnostics routines for the core subsystem."""

from __future__ import annotations

from diagnostics.models import DiagnosticResult, DiagnosticStatus


def probe() -> DiagnosticResult:
    """Run a core probe to validate logging readiness.

    Returns:
        Diagnostic result indicating core readiness.
    """

    name = "core"
    from core import logging as core_logging

    logger = core_logging.logger
    if logger is None or not logger.handlers:
        return DiagnosticResult(
            name=name,
            status=DiagnosticStatus.FAIL,
            details="Core logger failed to initialize",
        )
    handler_names = ", ".join(type(handler).__name__ for handler in logger.handlers)
    return DiagnosticResult(
        name=name,
        status=DiagnosticStatus.PASS,
        details=f"Logger '{logger.name}' ready ({handler_names})",
    )
