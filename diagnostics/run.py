"""Command-line entry point for running diagnostics."""

from __future__ import annotations

import argparse
from pathlib import Path
import tempfile

from config.diagnostics import probe as config_probe
from core.diagnostics import probe as core_probe
from diagnostics.models import DiagnosticStatus
from diagnostics.runner import format_results, run_diagnostics
from hardware.diagnostics import HardwareProbeConfig, probe as hardware_probe
from storage.diagnostics import probe as storage_probe


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""

    parser = argparse.ArgumentParser(description="Run dashcam diagnostics probes.")
    parser.add_argument(
        "--offline",
        action="store_true",
        help="Run probes against a temporary offline directory.",
    )
    parser.add_argument(
        "--base-dir",
        type=Path,
        default=None,
        help="Optional base directory for offline diagnostics.",
    )
    parser.add_argument(
        "--require-camera",
        action="store_true",
        help="Fail instead of warn when camera dependencies are missing.",
    )
    return parser.parse_args(argv)


def _write_offline_config(base_dir: Path) -> None:
    config_dir = base_dir / "config"
    config_dir.mkdir(parents=True, exist_ok=True)
    (config_dir / "default.yaml").write_text(
        "detection: {}\nrecording: {}\nstorage: {}\n",
        encoding="utf-8",
    )


def main(argv: list[str] | None = None) -> int:
    """Run diagnostics and return an exit code."""

    args = parse_args(argv)
    hardware_config = HardwareProbeConfig(require_all=args.require_camera)

    if args.offline and args.base_dir is None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            tmp_base = Path(tmp_dir)
            _write_offline_config(tmp_base)
            results = run_diagnostics(
                [
                    lambda: config_probe(base_dir=tmp_base),
                    core_probe,
                    lambda: hardware_probe(
                        config=hardware_config,
                        available_modules={"picamera2", "numpy"},
                        available_commands={"ffmpeg"},
                    ),
                    lambda: storage_probe(base_dir=tmp_base),
                ]
            )
    else:
        base_dir = args.base_dir
        results = run_diagnostics(
            [
                lambda: config_probe(base_dir=base_dir),
                core_probe,
                lambda: hardware_probe(config=hardware_config),
                lambda: storage_probe(base_dir=base_dir),
            ]
        )

    print(format_results(results))
    has_failures = any(result.status is DiagnosticStatus.FAIL for result in results)
    return 1 if has_failures else 0


if __name__ == "__main__":
    raise SystemExit(main())
