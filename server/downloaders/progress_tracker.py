"""Progress parsing and per-job progress tracking.

yt-dlp and ffmpeg report progress as text. This module turns their output
lines into a single job-level percentage:

- Fetch stage (yt-dlp) fills the 0-50% band from ``NN.N%`` markers.
- Transform stage (ffmpeg) fills the 50-95% band from ``Duration:`` and
  ``time=`` timestamps.
- 100% is reserved for the final "Download complete!" update.

``ProgressTracker`` is the single consumer of a job's progress stream. It
clamps values to [0, 100], keeps them from moving backwards, throttles
insignificant changes and forwards the rest to one callback (normally a
Job Store write).

Example:
    tracker = ProgressTracker(
        on_update=lambda percent, message: print(percent, message)
    )
    tracker.update(fetch_progress(42.0), "Downloading video... 42.0%")
"""
import logging
import re
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)

# Configuration constants
DEFAULT_MIN_UPDATE_INTERVAL = 1.0  # seconds
DEFAULT_MIN_PERCENT_CHANGE = 1.0   # percent

FETCH_BAND_END = 50.0
TRANSFORM_BAND_END = 95.0

_PERCENT_REGEX = re.compile(r"(\d+\.?\d*)%")
_DESTINATION_REGEX = re.compile(r"\[download\] Destination: (.+)")
_ALREADY_DOWNLOADED_REGEX = re.compile(r"\[download\] (.+) has already been downloaded")
_MERGER_REGEX = re.compile(r'\[Merger\] Merging formats into "(.+)"')
_DURATION_REGEX = re.compile(r"Duration: (\d{2}):(\d{2}):(\d{2})")
_TIME_REGEX = re.compile(r"time=(\d{2}):(\d{2}):(\d{2})")


def parse_download_percent(line: str) -> Optional[float]:
    """Return the percentage reported in a yt-dlp output line, if any."""
    match = _PERCENT_REGEX.search(line)
    if match:
        return float(match.group(1))
    return None


def parse_destination(line: str) -> Optional[str]:
    """Return the output filename announced by yt-dlp, if any.

    Recognises the initial destination, the already-downloaded notice and
    the merger target (which supersedes the per-stream destinations).
    """
    for regex in (_MERGER_REGEX, _DESTINATION_REGEX, _ALREADY_DOWNLOADED_REGEX):
        match = regex.search(line)
        if match:
            return match.group(1).strip()
    return None


def _to_seconds(match) -> int:
    hours, minutes, seconds = (int(group) for group in match.groups())
    return hours * 3600 + minutes * 60 + seconds


def parse_ffmpeg_duration(line: str) -> Optional[int]:
    """Return the input duration in seconds from an ffmpeg header line."""
    match = _DURATION_REGEX.search(line)
    return _to_seconds(match) if match else None


def parse_ffmpeg_time(line: str) -> Optional[int]:
    """Return the encoded position in seconds from an ffmpeg status line."""
    match = _TIME_REGEX.search(line)
    return _to_seconds(match) if match else None


def fetch_progress(percent: float) -> float:
    """Map a yt-dlp percentage into the fetch band (0-50)."""
    return min(FETCH_BAND_END, percent * 0.5)


def transform_progress(current_seconds: float, total_seconds: float) -> float:
    """Map ffmpeg elapsed/total time into the transform band (50-95)."""
    if total_seconds <= 0:
        return FETCH_BAND_END
    return min(
        TRANSFORM_BAND_END,
        FETCH_BAND_END + (current_seconds / total_seconds) * (TRANSFORM_BAND_END - FETCH_BAND_END),
    )


def format_bytes(bytes_value: int) -> str:
    """Convert bytes to human-readable format.

    Args:
        bytes_value: Size in bytes

    Returns:
        Human-readable string like "12.5 MB", "850.0 KB", "100 B"
    """
    if bytes_value <= 0:
        return "0 B"

    units = ["B", "KB", "MB", "GB", "TB"]
    size = float(bytes_value)
    unit_index = 0

    while size >= 1024 and unit_index < len(units) - 1:
        size /= 1024
        unit_index += 1

    if unit_index == 0:
        return f"{int(size)} {units[unit_index]}"
    return f"{size:.1f} {units[unit_index]}"


class ProgressTracker:
    """Track one job's progress with throttled, monotonic updates.

    Updates are forwarded when enough time has passed, when the percentage
    moved enough, when the message changed, or when 100% is reached.

    Attributes:
        min_update_interval: Minimum seconds between updates
        min_percent_change: Minimum percentage change for update
        percent: Last accepted percentage
        message: Last accepted message
    """

    def __init__(
        self,
        on_update: Optional[Callable[[float, str], None]] = None,
        min_update_interval: float = DEFAULT_MIN_UPDATE_INTERVAL,
        min_percent_change: float = DEFAULT_MIN_PERCENT_CHANGE,
        job_id: Optional[str] = None,
    ):
        self.min_update_interval = min_update_interval
        self.min_percent_change = min_percent_change
        self._on_update = on_update
        self.job_id = job_id

        self.percent: float = 0.0
        self.message: str = ""
        self._last_update_time: Optional[float] = None

    def should_update(self, percent: float, message: str) -> bool:
        """Check if an update should be forwarded based on throttling rules."""
        if self._last_update_time is None:
            return True
        if percent >= 100 or message != self.message:
            return True
        if percent - self.percent >= self.min_percent_change:
            return True
        return time.monotonic() - self._last_update_time >= self.min_update_interval

    def update(self, percent: float, message: str = "") -> bool:
        """Record progress and forward it if throttling allows.

        Args:
            percent: Progress percentage; clamped to [0, 100] and never
                allowed to drop below the last accepted value
            message: Free-text progress message

        Returns:
            True if the update was forwarded, False if throttled
        """
        percent = max(self.percent, min(100.0, max(0.0, float(percent))))
        message = message or self.message

        if not self.should_update(percent, message):
            return False

        self.percent = percent
        self.message = message
        self._last_update_time = time.monotonic()

        prefix = f"[{self.job_id}] " if self.job_id else ""
        logger.debug(f"{prefix}Progress {percent:.1f}%: {message}")

        if self._on_update:
            self._on_update(round(percent, 1), message)
        return True


__all__ = [
    "ProgressTracker",
    "parse_download_percent",
    "parse_destination",
    "parse_ffmpeg_duration",
    "parse_ffmpeg_time",
    "fetch_progress",
    "transform_progress",
    "format_bytes",
]
