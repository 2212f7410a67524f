"""Instagram URL rules for posts, reels and stories."""
import re
from enum import Enum, auto
from typing import Optional

from server.downloaders.types import PlatformCapabilities, PlatformDescriptor


class InstagramContentType(Enum):
    """Enumeration of Instagram content types."""

    POST = auto()  # Regular post (/p/)
    REEL = auto()  # Reel (/reel/)
    STORY = auto()  # Story (/stories/)
    UNKNOWN = auto()


INSTAGRAM_DOMAINS = ("instagram.com",)

# Instagram URL patterns for validation
INSTAGRAM_PATTERNS = (
    r"(?:https?://)?(?:www\.)?instagram\.com/p/[\w-]+",
    r"(?:https?://)?(?:www\.)?instagram\.com/reel/[\w-]+",
    r"(?:https?://)?(?:www\.)?instagram\.com/stories/[\w.-]+/\d+",
)

_SHORTCODE_REGEX = re.compile(r"/(?:p|reel)/([A-Za-z0-9_-]+)")


def detect_instagram_content_type(url: str) -> InstagramContentType:
    """Classify an Instagram URL by the kind of content it points to.

    Args:
        url: The Instagram URL

    Returns:
        InstagramContentType for the URL
    """
    if not url:
        return InstagramContentType.UNKNOWN

    lowered = url.lower()
    if "/reel/" in lowered:
        return InstagramContentType.REEL
    if "/stories/" in lowered:
        return InstagramContentType.STORY
    if "/p/" in lowered:
        return InstagramContentType.POST
    return InstagramContentType.UNKNOWN


def extract_shortcode(url: str) -> Optional[str]:
    """Extract the post or reel shortcode from an Instagram URL."""
    if not url:
        return None

    match = _SHORTCODE_REGEX.search(url)
    if match:
        return match.group(1)
    return None


INSTAGRAM = PlatformDescriptor(
    key="instagram",
    name="Instagram",
    domains=INSTAGRAM_DOMAINS,
    patterns=INSTAGRAM_PATTERNS,
    capabilities=PlatformCapabilities(
        max_quality="1080p",
        watermark_removal=True,
        audio_download=True,
        extras={"stories": True, "reels": True},
    ),
    id_extractor=extract_shortcode,
)
