"""Retention sweeper for downloaded and scratch files.

Runs once at startup and then every ``CLEANUP_INTERVAL_MINUTES``. Each pass:

1. deletes entries of the downloads root older than 1 hour,
2. deletes entries of the processing root older than 30 minutes,
3. prunes directories left empty under the temp root (children first),
4. evicts terminal jobs older than ``JOB_RETENTION_HOURS`` from the store.

A pass never raises: a missing root is a no-op and per-entry failures are
logged and skipped.
"""
import asyncio
import logging
import os
import shutil
import stat
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import aiofiles.os

from server.config import AppConfig, config as default_config
from server.downloaders.job_store import JobStore
from server.downloaders.progress_tracker import format_bytes

logger = logging.getLogger(__name__)


@dataclass
class SweepStats:
    """Outcome of one sweep pass."""
    downloads_deleted: int = 0
    processing_deleted: int = 0
    bytes_freed: int = 0
    empty_dirs_removed: int = 0
    jobs_evicted: int = 0
    errors: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "downloadsDeleted": self.downloads_deleted,
            "processingDeleted": self.processing_deleted,
            "bytesFreed": self.bytes_freed,
            "emptyDirsRemoved": self.empty_dirs_removed,
            "jobsEvicted": self.jobs_evicted,
            "errors": self.errors,
        }


@dataclass
class WatchedDirectory:
    name: str
    path: str
    max_age_seconds: float


def _tree_size(path: str) -> int:
    total = 0
    for root, _dirs, files in os.walk(path):
        for name in files:
            try:
                total += os.lstat(os.path.join(root, name)).st_size
            except OSError:
                continue
    return total


def _remove_tree(path: str) -> int:
    size = _tree_size(path)
    shutil.rmtree(path)
    return size


class RetentionSweeper:
    """Age-based eviction of files and finished jobs.

    Example:
        sweeper = RetentionSweeper(store=job_store)
        sweeper.start()          # initial pass + periodic task
        stats = await sweeper.get_stats()
        await sweeper.stop()
    """

    def __init__(
        self,
        settings: Optional[AppConfig] = None,
        store: Optional[JobStore] = None,
    ):
        settings = settings or default_config
        self.temp_root = settings.TEMP_DIR
        self.interval_seconds = settings.CLEANUP_INTERVAL_MINUTES * 60
        self.job_retention = timedelta(hours=settings.JOB_RETENTION_HOURS)
        self.store = store
        self.watched = [
            WatchedDirectory("downloads", settings.downloads_dir, settings.DOWNLOADS_MAX_AGE_MINUTES * 60),
            WatchedDirectory("processing", settings.processing_dir, settings.PROCESSING_MAX_AGE_MINUTES * 60),
        ]
        self._task: Optional[asyncio.Task] = None
        self.last_run: Optional[datetime] = None
        self.last_stats: Optional[SweepStats] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the periodic sweep task (first pass runs immediately)."""
        if self.is_running:
            logger.warning("Cleanup service is already running")
            return
        self._task = asyncio.get_running_loop().create_task(self._run_forever())
        logger.info(f"Cleanup service started (every {self.interval_seconds // 60} minutes)")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Cleanup service stopped")

    async def _run_forever(self) -> None:
        while True:
            await self.sweep()
            await asyncio.sleep(self.interval_seconds)

    async def sweep(self, now: Optional[float] = None) -> SweepStats:
        """Run one cleanup pass.

        Args:
            now: Reference time as a POSIX timestamp (defaults to time.time())

        Returns:
            SweepStats for the pass
        """
        now = time.time() if now is None else now
        stats = SweepStats()
        logger.info("Starting cleanup process...")

        try:
            for watched in self.watched:
                deleted = await self._sweep_directory(watched, now, stats)
                if watched.name == "downloads":
                    stats.downloads_deleted = deleted
                else:
                    stats.processing_deleted = deleted

            keep = {os.path.abspath(w.path) for w in self.watched}
            stats.empty_dirs_removed = await self._prune_empty_dirs(self.temp_root, keep)

            if self.store is not None:
                reference = datetime.fromtimestamp(now, tz=timezone.utc)
                stats.jobs_evicted = self.store.evict_terminal(self.job_retention, now=reference)
        except Exception as e:
            logger.error(f"Cleanup failed: {e}")
            stats.errors += 1

        self.last_run = datetime.now(timezone.utc)
        self.last_stats = stats
        logger.info(
            f"Cleanup completed: {stats.downloads_deleted} downloads, "
            f"{stats.processing_deleted} processing entries, "
            f"{format_bytes(stats.bytes_freed)} freed, {stats.jobs_evicted} jobs evicted"
        )
        return stats

    async def _sweep_directory(self, watched: WatchedDirectory, now: float, stats: SweepStats) -> int:
        try:
            names = await aiofiles.os.listdir(watched.path)
        except FileNotFoundError:
            return 0
        except OSError as e:
            logger.warning(f"Failed to read directory {watched.path}: {e}")
            stats.errors += 1
            return 0

        deleted = 0
        for name in names:
            path = os.path.join(watched.path, name)
            try:
                info = await aiofiles.os.stat(path)
                if now - info.st_mtime <= watched.max_age_seconds:
                    continue
                if stat.S_ISDIR(info.st_mode):
                    stats.bytes_freed += await asyncio.to_thread(_remove_tree, path)
                    logger.debug(f"Deleted directory: {path}")
                else:
                    await aiofiles.os.remove(path)
                    stats.bytes_freed += info.st_size
                    logger.debug(f"Deleted file: {path}")
                deleted += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning(f"Failed to process file {path}: {e}")
                stats.errors += 1
        return deleted

    async def _prune_empty_dirs(self, path: str, keep: set) -> int:
        """Remove empty directories below path, children before parents."""
        try:
            names = await aiofiles.os.listdir(path)
        except FileNotFoundError:
            return 0
        except OSError as e:
            logger.warning(f"Failed to cleanup empty directories in {path}: {e}")
            return 0

        removed = 0
        for name in names:
            child = os.path.join(path, name)
            if not await aiofiles.os.path.isdir(child) or os.path.islink(child):
                continue
            removed += await self._prune_empty_dirs(child, keep)
            if os.path.abspath(child) in keep:
                continue
            try:
                if not await aiofiles.os.listdir(child):
                    await aiofiles.os.rmdir(child)
                    removed += 1
                    logger.debug(f"Removed empty directory: {child}")
            except OSError as e:
                logger.debug(f"Could not remove directory {child}: {e}")
        return removed

    async def _directory_stats(self, path: str) -> Dict[str, Any]:
        result = {"path": path, "size": 0, "files": 0, "lastModified": None}
        try:
            names = await aiofiles.os.listdir(path)
        except FileNotFoundError:
            return result
        except OSError as e:
            logger.warning(f"Failed to stat directory {path}: {e}")
            return result

        latest = None
        for name in names:
            try:
                info = await aiofiles.os.stat(os.path.join(path, name))
            except OSError:
                continue
            if not stat.S_ISREG(info.st_mode):
                continue
            result["size"] += info.st_size
            result["files"] += 1
            if latest is None or info.st_mtime > latest:
                latest = info.st_mtime
        if latest is not None:
            result["lastModified"] = datetime.fromtimestamp(latest, tz=timezone.utc).isoformat()
        return result

    async def get_stats(self) -> Dict[str, Any]:
        """Byte and file counts per watched directory, plus totals."""
        directories = {}
        for watched in self.watched:
            directories[watched.name] = await self._directory_stats(watched.path)
        return {
            "directories": directories,
            "totalSize": sum(d["size"] for d in directories.values()),
            "totalFiles": sum(d["files"] for d in directories.values()),
            "lastRun": self.last_run.isoformat() if self.last_run else None,
            "lastSweep": self.last_stats.to_dict() if self.last_stats else None,
            "isRunning": self.is_running,
        }

    async def force_cleanup(self, path: str) -> bool:
        """Delete a file or directory immediately."""
        try:
            if await aiofiles.os.path.isdir(path):
                await asyncio.to_thread(shutil.rmtree, path)
            else:
                await aiofiles.os.remove(path)
        except FileNotFoundError:
            return True
        except OSError as e:
            logger.error(f"Failed to force cleanup {path}: {e}")
            return False
        logger.info(f"Force cleaned: {path}")
        return True


__all__ = ["RetentionSweeper", "SweepStats"]
