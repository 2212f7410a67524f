"""YouTube URL rules.

Accepts watch, embed, legacy ``/v/`` and ``youtu.be`` share links.
YouTube is the only platform offering 4K and it never needs watermark
removal.
"""
import re
from typing import Optional

from server.downloaders.types import PlatformCapabilities, PlatformDescriptor

YOUTUBE_DOMAINS = ("youtube.com", "youtu.be", "m.youtube.com")

YOUTUBE_PATTERNS = (
    r"(?:https?://)?(?:www\.)?youtube\.com/watch\?v=[\w-]+",
    r"(?:https?://)?(?:www\.)?youtube\.com/embed/[\w-]+",
    r"(?:https?://)?youtu\.be/[\w-]+",
    r"(?:https?://)?(?:www\.)?youtube\.com/v/[\w-]+",
)

_YOUTUBE_ID_REGEX = re.compile(r"(?:v=|/embed/|youtu\.be/|/v/)([A-Za-z0-9_-]+)")


def extract_youtube_id(url: str) -> Optional[str]:
    """Extract the YouTube video ID.

    Args:
        url: The YouTube URL

    Returns:
        Video ID string or None if not found
    """
    if not url:
        return None

    match = _YOUTUBE_ID_REGEX.search(url)
    if match:
        return match.group(1)
    return None


YOUTUBE = PlatformDescriptor(
    key="youtube",
    name="YouTube",
    domains=YOUTUBE_DOMAINS,
    patterns=YOUTUBE_PATTERNS,
    capabilities=PlatformCapabilities(
        max_quality="4K",
        watermark_removal=False,
        audio_download=True,
        extras={"playlists": False},
    ),
    id_extractor=extract_youtube_id,
)
