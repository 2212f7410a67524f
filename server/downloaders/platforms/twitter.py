"""Twitter/X URL rules."""
import re
from typing import Optional

from server.downloaders.types import PlatformCapabilities, PlatformDescriptor

TWITTER_DOMAINS = ("twitter.com", "x.com", "mobile.twitter.com")

# Status URLs on both the legacy and the x.com domains
TWITTER_PATTERNS = (
    r"(?:https?://)?(?:www\.)?twitter\.com/\w+/status/\d+",
    r"(?:https?://)?(?:www\.)?x\.com/\w+/status/\d+",
    r"(?:https?://)?mobile\.twitter\.com/\w+/status/\d+",
)


def extract_tweet_id(url: str) -> Optional[str]:
    """Extract tweet ID from URL.

    Args:
        url: The Twitter/X URL

    Returns:
        Tweet ID string or None if not found
    """
    if not url:
        return None

    match = re.search(r"/status/(\d+)", url)
    if match:
        return match.group(1)
    return None


def extract_username(url: str) -> Optional[str]:
    """Extract the account handle from a status URL."""
    if not url:
        return None

    match = re.search(r"(?:twitter|x)\.com/(\w+)/status/", url, re.IGNORECASE)
    if match:
        return match.group(1)
    return None


TWITTER = PlatformDescriptor(
    key="twitter",
    name="Twitter/X",
    domains=TWITTER_DOMAINS,
    patterns=TWITTER_PATTERNS,
    capabilities=PlatformCapabilities(
        max_quality="1080p",
        watermark_removal=True,
        audio_download=True,
    ),
    id_extractor=extract_tweet_id,
)
