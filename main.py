"""Command-line entry point for the dashcam runtime."""

from __future__ import annotations

import argparse
import asyncio
import sys

from config import ConfigController
from core.logging import enable_file_logging, logger, set_level
from storage.segments import StorageManager


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Raw command-line arguments.

    Returns:
        Parsed arguments namespace.
    """

    parser = argparse.ArgumentParser(
        description="Record dashcam segments and raise pedestrian proximity alerts."
    )
    parser.add_argument(
        "--diagnostics",
        action="store_true",
        help="Run diagnostics probes and exit.",
    )
    parser.add_argument("--no-record", action="store_true", help="Disable segment recording.")
    parser.add_argument("--no-detect", action="store_true", help="Disable pedestrian alerts.")
    parser.add_argument(
        "--list-segments",
        action="store_true",
        help="Print recorded segments grouped by day and exit.",
    )
    parser.add_argument(
        "--usage",
        action="store_true",
        help="Print storage used by recordings and exit.",
    )
    return parser.parse_args(argv)


def run_diagnostics_report() -> int:
    from diagnostics.run import main as diagnostics_main

    return diagnostics_main([])


def print_segments(storage: StorageManager) -> None:
    segments = storage.list_segments()
    if not segments:
        print("No recordings found.")
        return
    for day, files in segments.items():
        print(f"{day} ({len(files)} segments)")
        for path in files:
            print(f"  {path.name}")


def main(argv: list[str] | None = None) -> int:
    """Application entry point.

    Args:
        argv: Optional list of command-line arguments.

    Returns:
        Process exit code.
    """

    if argv is None:
        argv = sys.argv[1:]

    args = parse_args(argv)
    if args.diagnostics:
        return run_diagnostics_report()

    config = ConfigController.get_instance().get_config()
    set_level(config.get("logging_level", "INFO"))
    storage = StorageManager()

    if args.list_segments:
        print_segments(storage)
        return 0
    if args.usage:
        print(f"{storage.usage_megabytes()}MB used in {storage.root_dir}")
        return 0

    if config.get("file_logging_enabled", True):
        log_file_path = storage.get_log_file_path()
        enable_file_logging(log_file_path)
        logger.info("Writing logs to %s", log_file_path)

    from core.app import AppConfig, DashcamApp

    app = DashcamApp(
        AppConfig(record=not args.no_record, detect=not args.no_detect),
        storage=storage,
    )
    try:
        return asyncio.run(app.run())
    except KeyboardInterrupt:
        logger.info("Program terminated by user")
        return 0
    except Exception as exc:
        logger.exception("An unexpected error occurred: %s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
