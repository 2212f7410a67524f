"""Facebook URL rules.

Covers page videos, ``/watch/?v=`` links, ``fb.watch`` short links and
video posts.
"""
import re
from typing import Optional

from server.downloaders.types import PlatformCapabilities, PlatformDescriptor

FACEBOOK_DOMAINS = ("facebook.com", "fb.watch", "m.facebook.com")

FACEBOOK_PATTERNS = (
    r"(?:https?://)?(?:www\.)?facebook\.com/.*/videos/\d+",
    r"(?:https?://)?(?:www\.)?facebook\.com/watch/\?v=\d+",
    r"(?:https?://)?fb\.watch/[\w-]+",
    r"(?:https?://)?(?:www\.)?facebook\.com/[\w.-]+/posts/\d+",
)

_FACEBOOK_ID_REGEX = re.compile(r"/videos/(\d+)|v=(\d+)")


def extract_facebook_id(url: str) -> Optional[str]:
    """Extract the numeric video id from a Facebook video or watch URL."""
    if not url:
        return None

    match = _FACEBOOK_ID_REGEX.search(url)
    if match:
        return match.group(1) or match.group(2)
    return None


FACEBOOK = PlatformDescriptor(
    key="facebook",
    name="Facebook",
    domains=FACEBOOK_DOMAINS,
    patterns=FACEBOOK_PATTERNS,
    capabilities=PlatformCapabilities(
        max_quality="1080p",
        watermark_removal=True,
        audio_download=True,
    ),
    id_extractor=extract_facebook_id,
)
