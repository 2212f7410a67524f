"""Video metadata extraction via ``yt-dlp --dump-json``.

The extractor runs yt-dlp without downloading anything, bounded by a
wall-clock timeout and an output-size limit, and normalizes its JSON into
a ``VideoMetadata`` record. Failures are surfaced as tagged exceptions:
timeouts, private/unavailable videos, or a generic extraction error that
wraps the tool's message.
"""
import json
import logging
from typing import Any, Dict, Iterable, List, Optional

from server.config import config as default_config

from .exceptions import (
    DownloadError,
    ExtractionTimeoutError,
    MetadataExtractionError,
)
from .process_runner import classify_failure, run_process
from .types import VideoMetadata
from .url_detector import detect

logger = logging.getLogger(__name__)

QUALITY_ORDER = {"360p": 1, "720p": 2, "1080p": 3, "4K": 4}


def height_to_tier(height: int) -> str:
    """Map a format height in pixels to its quality tier."""
    if height <= 360:
        return "360p"
    if height <= 720:
        return "720p"
    if height <= 1080:
        return "1080p"
    return "4K"


def extract_available_qualities(formats: Iterable[Dict[str, Any]]) -> List[str]:
    """Return the distinct quality tiers of the formats, ascending."""
    tiers = {height_to_tier(f["height"]) for f in formats if f.get("height")}
    return sorted(tiers, key=QUALITY_ORDER.__getitem__)


def estimate_file_sizes(formats: Iterable[Dict[str, Any]]) -> Dict[str, int]:
    """Return the largest declared filesize per quality tier."""
    sizes: Dict[str, int] = {}
    for fmt in formats:
        if not fmt.get("filesize") or not fmt.get("height"):
            continue
        tier = height_to_tier(fmt["height"])
        if fmt["filesize"] > sizes.get(tier, 0):
            sizes[tier] = fmt["filesize"]
    return sizes


def has_audio_track(formats: Iterable[Dict[str, Any]]) -> bool:
    return any(f.get("acodec") and f.get("acodec") != "none" for f in formats)


def parse_metadata(info: Dict[str, Any], url: str) -> VideoMetadata:
    """Normalize a yt-dlp info dict into VideoMetadata.

    Args:
        info: Parsed ``--dump-json`` output
        url: The URL the metadata was requested for

    Returns:
        VideoMetadata with defaults applied for missing fields
    """
    formats = info.get("formats") or []
    return VideoMetadata(
        id=info.get("id"),
        title=info.get("title") or "Unknown Title",
        description=info.get("description") or "",
        duration=info.get("duration") or 0,
        uploader=info.get("uploader") or info.get("channel") or "Unknown",
        upload_date=info.get("upload_date"),
        view_count=info.get("view_count") or 0,
        thumbnail=info.get("thumbnail"),
        platform=detect(url),
        original_url=url,
        available_qualities=extract_available_qualities(formats),
        file_size=estimate_file_sizes(formats),
        has_audio=has_audio_track(formats),
    )


class MetadataExtractor:
    """Fetches structured video metadata from yt-dlp.

    Example:
        extractor = MetadataExtractor()
        metadata = await extractor.extract("https://youtu.be/dQw4w9WgXcQ")
        print(metadata.title, metadata.available_qualities)
    """

    def __init__(
        self,
        ytdlp_binary: Optional[str] = None,
        timeout: Optional[float] = None,
        max_buffer: Optional[int] = None,
    ):
        self.ytdlp_binary = ytdlp_binary or default_config.YTDLP_BINARY
        self.timeout = timeout or default_config.METADATA_TIMEOUT
        self.max_buffer = max_buffer or default_config.METADATA_MAX_BUFFER

    def build_command(self, url: str) -> List[str]:
        return [self.ytdlp_binary, "--dump-json", "--no-download", url]

    async def extract(self, url: str) -> VideoMetadata:
        """Extract metadata for a URL.

        Args:
            url: Video URL (already validated)

        Returns:
            Normalized VideoMetadata

        Raises:
            ExtractionTimeoutError: If yt-dlp exceeds the timeout
            PrivateOrUnavailableError: If the video is private or gone
            MetadataExtractionError: For any other failure
        """
        logger.info(f"Extracting metadata for URL: {url}")

        try:
            output = await run_process(
                self.build_command(url),
                timeout=self.timeout,
                max_buffer=self.max_buffer,
            )
        except ExtractionTimeoutError:
            logger.error(f"Metadata extraction timed out after {self.timeout}s: {url}")
            raise ExtractionTimeoutError(
                "Video extraction timed out. The video might be too large "
                "or the platform is slow to respond.",
                url=url,
            )
        except DownloadError as e:
            logger.error(f"Failed to extract metadata: {e.message}")
            raise MetadataExtractionError(
                f"Failed to extract video information: {e.message}", url=url
            ) from e

        if output.returncode != 0:
            logger.error(f"Failed to extract metadata: {output.stderr.strip()}")
            classified = classify_failure(output.stderr, url=url)
            if classified is not None:
                raise classified
            detail = output.stderr.strip() or f"yt-dlp exited with code {output.returncode}"
            raise MetadataExtractionError(
                f"Failed to extract video information: {detail}", url=url
            )

        if output.stderr and "WARNING" not in output.stderr:
            logger.warning(f"yt-dlp warnings: {output.stderr.strip()}")

        try:
            info = json.loads(output.stdout)
        except json.JSONDecodeError as e:
            raise MetadataExtractionError(
                f"Failed to extract video information: invalid JSON ({e})", url=url
            ) from e

        metadata = parse_metadata(info, url)
        logger.info(f"Successfully extracted metadata for: {metadata.title}")
        return metadata


__all__ = [
    "MetadataExtractor",
    "parse_metadata",
    "height_to_tier",
    "extract_available_qualities",
    "estimate_file_sizes",
    "has_audio_track",
]
