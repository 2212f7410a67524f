"""Per-job scratch directory management.

Each job works in ``<processing_root>/<job_id>/``. The directory is removed
when the job settles, whatever the outcome; a failed removal is logged and
left to the retention sweeper.
"""
import logging
import os
import shutil
from pathlib import Path
from typing import List, Optional, Set

logger = logging.getLogger(__name__)

# Global set to track active TempManager instances
active_temp_managers: Set['TempManager'] = set()


def ensure_directories(*paths: str) -> None:
    """Create the given directories if they do not exist yet."""
    for path in paths:
        Path(path).mkdir(parents=True, exist_ok=True)
        logger.debug(f"Ensured directory exists: {path}")


class TempManager:
    """Manages the scratch directory of one job.

    Provides automatic cleanup via context manager protocol.
    """

    def __init__(self, processing_root: str, job_id: str):
        """Create the job's scratch directory.

        Args:
            processing_root: Root under which scratch directories live
            job_id: Job identifier, used as the directory name
        """
        self.job_id = job_id
        self.temp_dir = os.path.join(processing_root, os.path.basename(job_id))
        Path(self.temp_dir).mkdir(parents=True, exist_ok=True)

        active_temp_managers.add(self)
        logger.debug(f"[{job_id}] Created scratch directory: {self.temp_dir}")

    def list_files(self) -> List[str]:
        """List regular files in the scratch directory, sorted by name."""
        if not os.path.isdir(self.temp_dir):
            return []
        return sorted(
            os.path.join(self.temp_dir, name)
            for name in os.listdir(self.temp_dir)
            if os.path.isfile(os.path.join(self.temp_dir, name))
        )

    def find_file(self, prefix: str) -> Optional[str]:
        """Return the first file whose name starts with prefix.

        Partial download fragments (``.part``, ``.ytdl``) are ignored.
        """
        for path in self.list_files():
            name = os.path.basename(path)
            if name.startswith(prefix) and not name.endswith((".part", ".ytdl")):
                return path
        return None

    def cleanup(self) -> bool:
        """Remove the scratch directory and all its contents.

        Returns:
            True if the directory is gone, False if removal failed
        """
        active_temp_managers.discard(self)

        if not os.path.exists(self.temp_dir):
            return True

        try:
            shutil.rmtree(self.temp_dir)
        except OSError as e:
            logger.warning(f"[{self.job_id}] Failed to cleanup processing directory {self.temp_dir}: {e}")
            return False

        logger.debug(f"[{self.job_id}] Cleaned up scratch directory: {self.temp_dir}")
        return True

    def __enter__(self):
        """Enter context manager."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Exit context manager - always cleanup."""
        self.cleanup()
        return False  # Don't suppress exceptions
