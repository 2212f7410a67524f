"""TikTok URL rules.

Full video links carry the author handle and a numeric id
(``tiktok.com/@user/video/123``); share links use the ``vm.tiktok.com``
short domain. A bare ``tiktok.com`` URL without ``/video/<id>`` is not
a downloadable video.
"""
import re
from typing import Optional

from server.downloaders.types import PlatformCapabilities, PlatformDescriptor

TIKTOK_DOMAINS = ("tiktok.com", "vm.tiktok.com")

# TikTok URL patterns for validation
TIKTOK_PATTERNS = (
    r"(?:https?://)?(?:www\.)?tiktok\.com/@[\w.-]+/video/\d+",
    r"(?:https?://)?vm\.tiktok\.com/[\w]+",
)

_TIKTOK_ID_REGEX = re.compile(r"/video/(\d+)")


def extract_tiktok_id(url: str) -> Optional[str]:
    """Extract the numeric TikTok video ID from a full video URL.

    Short ``vm.tiktok.com`` links do not expose the id and return None.
    """
    if not url:
        return None

    match = _TIKTOK_ID_REGEX.search(url)
    if match:
        return match.group(1)
    return None


TIKTOK = PlatformDescriptor(
    key="tiktok",
    name="TikTok",
    domains=TIKTOK_DOMAINS,
    patterns=TIKTOK_PATTERNS,
    capabilities=PlatformCapabilities(
        max_quality="1080p",
        watermark_removal=True,
        audio_download=True,
    ),
    id_extractor=extract_tiktok_id,
)
