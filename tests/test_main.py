"""Tests for the command-line entry point."""

from __future__ import annotations

from pathlib import Path

from config.controller import ConfigController
import main


def _write_config(tmp_path: Path) -> Path:
    config_dir = tmp_path / "config"
    config_dir.mkdir(parents=True, exist_ok=True)
    recordings_dir = tmp_path / "recordings"
    (config_dir / "default.yaml").write_text(
        "\n".join(
            [
                "logging_level: WARNING",
                "storage:",
                f"  recordings_dir: {recordings_dir}",
                f"  var_dir: {tmp_path / 'var'}",
                f"  log_dir: {tmp_path / 'log'}",
            ]
        ),
        encoding="utf-8",
    )
    return recordings_dir / "DashCam"


def test_parse_args_flags() -> None:
    args = main.parse_args(["--no-record", "--no-detect"])

    assert args.no_record
    assert args.no_detect
    assert not args.diagnostics


def test_list_segments_prints_days(tmp_path: Path, monkeypatch, capsys) -> None:
    root = _write_config(tmp_path)
    day = root / "2026-03-15"
    day.mkdir(parents=True)
    (day / "12-00-00.mp4").write_bytes(b"\0")
    monkeypatch.chdir(tmp_path)
    ConfigController._instance = None

    assert main.main(["--list-segments"]) == 0

    output = capsys.readouterr().out
    assert "2026-03-15 (1 segments)" in output
    assert "12-00-00.mp4" in output
    ConfigController._instance = None


def test_usage_reports_megabytes(tmp_path: Path, monkeypatch, capsys) -> None:
    root = _write_config(tmp_path)
    day = root / "2026-03-15"
    day.mkdir(parents=True)
    (day / "12-00-00.mp4").write_bytes(b"\0" * 3 * 1024 * 1024)
    monkeypatch.chdir(tmp_path)
    ConfigController._instance = None

    assert main.main(["--usage"]) == 0

    assert capsys.readouterr().out.startswith("3MB used in")
    ConfigController._instance = None


def test_offline_diagnostics_exit_cleanly(capsys) -> None:
    from diagnostics.run import main as diagnostics_main

    assert diagnostics_main(["--offline"]) == 0
    assert "[PASS] config" in capsys.readouterr().out
