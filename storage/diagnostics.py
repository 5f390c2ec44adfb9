"""Diagnostics routines for the storage subsystem."""

from __future__ import annotations

from pathlib import Path
import shutil

from diagnostics.models import DiagnosticResult, DiagnosticStatus

# One minute of 1080p H.264 at the default bitrate is roughly 75MB.
_LOW_SPACE_BYTES = 512 * 1024 * 1024


def probe(base_dir: Path | None = None) -> DiagnosticResult:
    """Run a storage probe to validate the recordings directory.

    Args:
        base_dir: Optional base directory for offline testing.

    Returns:
        Diagnostic result indicating storage readiness.
    """

    name = "storage"
    try:
        if base_dir is None:
            from storage.segments import load_storage_settings

            settings = load_storage_settings()
            recordings_dir = settings.recordings_dir / settings.folder_name
            log_dir = settings.log_dir
        else:
            recordings_dir = base_dir / "recordings" / "DashCam"
            log_dir = base_dir / "log"

        recordings_dir.mkdir(parents=True, exist_ok=True)
        log_dir.mkdir(parents=True, exist_ok=True)

        sentinel = recordings_dir / "diagnostics_probe.txt"
        sentinel.write_text("ok", encoding="utf-8")
        sentinel.unlink(missing_ok=True)

        free_bytes = shutil.disk_usage(recordings_dir).free
        free_mb = free_bytes // 1024 // 1024
        if free_bytes < _LOW_SPACE_BYTES:
            return DiagnosticResult(
                name=name,
                status=DiagnosticStatus.WARN,
                details=f"Only {free_mb}MB free at {recordings_dir}",
            )

        details = f"Recordings directory writable at {recordings_dir} ({free_mb}MB free)"
        return DiagnosticResult(name=name, status=DiagnosticStatus.PASS, details=details)
    except OSError as exc:
        details = f"Filesystem access failed: {exc}"
        return DiagnosticResult(name=name, status=DiagnosticStatus.FAIL, details=details)
