"""Shared types and data classes for the downloaders package.

This module contains data classes that are shared across multiple modules
to avoid circular import issues.
"""
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional, Pattern, Tuple

VALID_QUALITIES = ("360p", "720p", "1080p", "original", "best")
VALID_FORMATS = ("mp4", "webm", "avi")

# Progress callback: (percent, message)
ProgressCallback = Callable[[float, str], None]


@dataclass(frozen=True)
class PlatformCapabilities:
    """What a platform supports for downloads."""
    max_quality: str
    watermark_removal: bool
    audio_download: bool = True
    extras: Dict[str, bool] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "maxQuality": self.max_quality,
            "watermarkRemoval": self.watermark_removal,
            "audioDownload": self.audio_download,
        }
        data.update(self.extras)
        return data


@dataclass(frozen=True)
class PlatformDescriptor:
    """Static rule set identifying which site a URL belongs to.

    A URL belongs to the platform only when it contains one of the
    domain substrings and matches at least one of the patterns.

    Attributes:
        key: Short identifier (e.g. "tiktok")
        name: Display name returned by detection (e.g. "TikTok")
        domains: Domain substrings, compared case-insensitively
        patterns: Ordered regular expressions
        capabilities: Download capabilities for the platform
        id_extractor: Optional callable returning the video id of a URL
    """
    key: str
    name: str
    domains: Tuple[str, ...]
    patterns: Tuple[str, ...]
    capabilities: PlatformCapabilities
    id_extractor: Optional[Callable[[str], Optional[str]]] = None

    @property
    def compiled_patterns(self) -> List[Pattern]:
        return [re.compile(p, re.IGNORECASE) for p in self.patterns]

    def matches(self, url: str) -> bool:
        """Return True if the URL satisfies both the domain and pattern rules."""
        lowered = url.lower()
        if not any(domain in lowered for domain in self.domains):
            return False
        return any(regex.search(url) for regex in self.compiled_patterns)

    def extract_video_id(self, url: str) -> Optional[str]:
        if self.id_extractor is None:
            return None
        return self.id_extractor(url)


@dataclass
class VideoMetadata:
    """Normalized metadata returned by the extractor.

    Attributes:
        id: Platform video identifier
        title: Video title ("Unknown Title" when absent)
        description: Video description
        duration: Duration in seconds
        uploader: Uploader or channel name
        upload_date: Upload date as reported by the extractor (YYYYMMDD)
        view_count: View count
        thumbnail: Thumbnail URL
        platform: Detected platform display name
        original_url: The URL the metadata was requested for
        available_qualities: Quality tiers, ascending
        file_size: Largest observed filesize per tier
        has_audio: Whether any format carries an audio track
    """
    id: Optional[str]
    title: str
    description: str = ""
    duration: Optional[float] = None
    uploader: str = "Unknown"
    upload_date: Optional[str] = None
    view_count: Optional[int] = None
    thumbnail: Optional[str] = None
    platform: str = "unknown"
    original_url: str = ""
    available_qualities: List[str] = field(default_factory=list)
    file_size: Dict[str, int] = field(default_factory=dict)
    has_audio: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with the camelCase keys used by the HTTP API."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "duration": self.duration,
            "uploader": self.uploader,
            "uploadDate": self.upload_date,
            "viewCount": self.view_count,
            "thumbnail": self.thumbnail,
            "platform": self.platform,
            "originalUrl": self.original_url,
            "availableQualities": list(self.available_qualities),
            "fileSize": dict(self.file_size),
            "hasAudio": self.has_audio,
        }


@dataclass(frozen=True)
class ProcessingOptions:
    """Requested output of a download job."""
    quality: str = "best"
    remove_watermark: bool = True
    format: str = "mp4"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ProcessingResult:
    """Result of a successful media processing run.

    Attributes:
        file_path: Path of the output file on disk
        file_size: Size of the output file in bytes
        download_url: Relative retrieval path (/downloads/<file>)
    """
    file_path: str
    file_size: int
    download_url: str
