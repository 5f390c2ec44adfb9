"""Date-foldered storage for recorded video segments.

Layout: ``<recordings_dir>/<folder_name>/<YYYY-MM-DD>/<HH-MM-SS>.mp4``. The
date folder name is both the retention key and the sort key, so no separate
index is kept on disk.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
import shutil
import threading
from typing import Any, Callable, Mapping

from core.logging import logger

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H-%M-%S"
VIDEO_EXTENSION = ".mp4"


@dataclass(frozen=True)
class StorageSettings:
    """Filesystem settings for segment storage."""

    recordings_dir: Path = Path("./var/recordings")
    folder_name: str = "DashCam"
    retention_days: int = 7
    unique_segment_names: bool = False
    var_dir: Path = Path("./var/")
    log_dir: Path = Path("./log/")


def load_storage_settings(config: Mapping[str, Any] | None = None) -> StorageSettings:
    """Build settings from the ``storage`` config section."""

    if config is None:
        from config import ConfigController

        config = ConfigController.get_instance().get_section("storage")

    defaults = StorageSettings()
    return StorageSettings(
        recordings_dir=Path(str(config.get("recordings_dir", defaults.recordings_dir))).expanduser(),
        folder_name=str(config.get("folder_name", defaults.folder_name)),
        retention_days=max(1, int(config.get("retention_days", defaults.retention_days))),
        unique_segment_names=bool(
            config.get("unique_segment_names", defaults.unique_segment_names)
        ),
        var_dir=Path(str(config.get("var_dir", defaults.var_dir))).expanduser(),
        log_dir=Path(str(config.get("log_dir", defaults.log_dir))).expanduser(),
    )


@dataclass(frozen=True)
class SegmentFile:
    """A finalized segment eligible for retention accounting."""

    path: Path
    date_folder: str
    started_at: datetime
    size_bytes: int


class StorageManager:
    """Allocate segment paths, record finished segments and enforce retention."""

    def __init__(
        self,
        settings: StorageSettings | None = None,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.settings = settings or load_storage_settings()
        self._now = now
        self._lock = threading.Lock()
        self._finalized: dict[Path, SegmentFile] = {}
        self._allocated: set[Path] = set()
        self._run_id: int | None = None

    @property
    def root_dir(self) -> Path:
        return self.settings.recordings_dir / self.settings.folder_name

    def get_date_folder(self, when: datetime | None = None) -> Path:
        """Return the folder for ``when`` (default today), creating it if absent."""

        current = when or self._now()
        folder = self.root_dir / current.strftime(DATE_FORMAT)
        if not folder.exists():
            folder.mkdir(parents=True, exist_ok=True)
            logger.info("[STORAGE] Created folder: %s", folder)
        return folder

    def allocate_path(self, when: datetime | None = None) -> Path:
        """Return the target path for a segment starting now."""

        current = when or self._now()
        folder = self.get_date_folder(current)
        stem = current.strftime(TIME_FORMAT)
        path = folder / f"{stem}{VIDEO_EXTENSION}"

        with self._lock:
            if self.settings.unique_segment_names:
                suffix = 1
                while path in self._allocated or path.exists():
                    path = folder / f"{stem}_{suffix}{VIDEO_EXTENSION}"
                    suffix += 1
            elif path in self._allocated or path.exists():
                logger.warning("[STORAGE] Segment path reused within one second: %s", path)
            self._allocated.add(path)

        logger.info("[STORAGE] Creating new segment: %s", path)
        return path

    def finalize(self, path: Path | str, now: datetime | None = None) -> SegmentFile | None:
        """Record a finished segment and run the retention sweep.

        Finalizing the same path twice returns the first record unchanged.
        """

        path = Path(path)
        with self._lock:
            existing = self._finalized.get(path)
            self._allocated.discard(path)
        if existing is not None:
            logger.debug("[STORAGE] Segment already finalized: %s", path)
            return existing

        record: SegmentFile | None = None
        try:
            size_bytes = path.stat().st_size
        except OSError as exc:
            logger.warning("[STORAGE] Finished segment is not readable: %s (%s)", path, exc)
        else:
            record = SegmentFile(
                path=path,
                date_folder=path.parent.name,
                started_at=self._segment_start(path),
                size_bytes=size_bytes,
            )
            with self._lock:
                self._finalized[path] = record
            logger.info(
                "[STORAGE] Segment completed: %s, size: %sMB",
                path.name,
                size_bytes // 1024 // 1024,
            )

        self.sweep_retention(now)
        return record

    def sweep_retention(self, now: datetime | None = None) -> list[str]:
        """Delete date folders older than the retention window.

        Returns the names of the folders that were removed. Folders whose
        names do not parse as dates are never touched.
        """

        current = now or self._now()
        if current.tzinfo is not None:
            current = current.astimezone().replace(tzinfo=None)
        # Today's folder holds the segment being recorded; never sweep it.
        retention_days = max(1, self.settings.retention_days)
        cutoff = current - timedelta(days=retention_days)

        deleted: list[str] = []
        try:
            if not self.root_dir.is_dir():
                return deleted
            folders = [entry for entry in self.root_dir.iterdir() if entry.is_dir()]
        except OSError:
            logger.exception("[STORAGE] Error cleaning old files")
            return deleted

        for folder in folders:
            try:
                folder_date = datetime.strptime(folder.name, DATE_FORMAT)
            except ValueError:
                logger.warning("[STORAGE] Skipping folder with unparsable date: %s", folder.name)
                continue

            if folder_date >= cutoff:
                continue
            try:
                shutil.rmtree(folder)
            except OSError:
                logger.exception("[STORAGE] Failed to delete old folder: %s", folder.name)
                continue
            self._forget_folder(folder)
            deleted.append(folder.name)
            logger.info("[STORAGE] Deleted old folder: %s", folder.name)
        return deleted

    def list_segments(self) -> dict[str, list[Path]]:
        """Return segment files grouped by date folder, newest first."""

        result: dict[str, list[Path]] = {}
        try:
            if not self.root_dir.is_dir():
                return result
            folders = sorted(
                (entry for entry in self.root_dir.iterdir() if entry.is_dir()),
                key=lambda entry: entry.name,
                reverse=True,
            )
            for folder in folders:
                videos = sorted(
                    (
                        entry
                        for entry in folder.iterdir()
                        if entry.is_file() and entry.suffix == VIDEO_EXTENSION
                    ),
                    key=lambda entry: entry.name,
                    reverse=True,
                )
                if videos:
                    result[folder.name] = videos
        except OSError:
            logger.exception("[STORAGE] Error listing segments")
        return result

    def total_usage_bytes(self) -> int:
        """Return the summed size of every file under the storage root."""

        total = 0
        if not self.root_dir.is_dir():
            return total
        for entry in self.root_dir.rglob("*"):
            try:
                if entry.is_file():
                    total += entry.stat().st_size
            except OSError:
                # Deleted by a concurrent sweep.
                continue
        return total

    def usage_megabytes(self) -> int:
        return self.total_usage_bytes() // 1024 // 1024

    def delete(self, path: Path | str) -> bool:
        """Delete one segment file; return whether it was removed."""

        path = Path(path)
        try:
            path.resolve().relative_to(self.root_dir.resolve())
        except ValueError:
            logger.warning("[STORAGE] Refusing to delete file outside storage root: %s", path)
            return False

        try:
            path.unlink()
        except OSError as exc:
            logger.error("[STORAGE] Error deleting video %s: %s", path.name, exc)
            return False

        with self._lock:
            self._finalized.pop(path, None)
        logger.info("[STORAGE] Deleted video: %s", path.name)
        return True

    def get_run_id(self) -> int:
        """Return this process's run number, persisting the next one on first use."""

        if self._run_id is None:
            self._run_id = self._next_run_number(self.settings.var_dir)
        return self._run_id

    def get_log_file_path(self) -> Path:
        """Return the log file path for the current run."""

        return self.settings.log_dir / f"run_{self.get_run_id()}.log"

    def _next_run_number(self, var_dir: Path) -> int:
        var_dir.mkdir(parents=True, exist_ok=True)
        run_id_file = var_dir / "current_run"

        next_run_number = 0
        if run_id_file.is_file():
            current_run_number = run_id_file.read_text(encoding="utf-8").strip()
            if current_run_number.isdigit():
                next_run_number = int(current_run_number) + 1
        run_id_file.write_text(str(next_run_number), encoding="utf-8")
        return next_run_number

    def _segment_start(self, path: Path) -> datetime:
        stem = path.stem.split("_", 1)[0]
        try:
            return datetime.strptime(f"{path.parent.name} {stem}", f"{DATE_FORMAT} {TIME_FORMAT}")
        except ValueError:
            return datetime.fromtimestamp(path.stat().st_mtime)

    def _forget_folder(self, folder: Path) -> None:
        with self._lock:
            for stale in [item for item in self._finalized if item.parent == folder]:
                del self._finalized[stale]
            self._allocated = {item for item in self._allocated if item.parent != folder}
