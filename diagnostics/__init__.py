"""Diagnostics helpers for the dashcam runtime."""

from diagnostics.models import DiagnosticResult, DiagnosticStatus
from diagnostics.runner import format_results, run_diagnostics

__all__ = [
    "DiagnosticResult",
    "DiagnosticStatus",
    "format_results",
    "run_diagnostics",
]
