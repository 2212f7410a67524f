"""URL validation, platform detection and normalization.

This module maps a URL string to one of the supported platforms. Detection
is pure and deterministic: a URL belongs to a platform only when it
contains one of the platform's domain substrings AND matches one of its
patterns. Everything else is reported as ``"unknown"``.
"""
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from server.downloaders.platforms import PLATFORMS
from server.downloaders.types import PlatformDescriptor

logger = logging.getLogger(__name__)

UNKNOWN_PLATFORM = "unknown"

# Query parameters stripped by clean_url
TRACKING_PARAMS = {"fbclid", "gclid", "ref", "source", "igshid"}


def _with_scheme(url: str) -> str:
    return url if url.lower().startswith("http") else f"https://{url}"


def _is_well_formed(url: str) -> bool:
    try:
        parsed = urlparse(_with_scheme(url))
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def find_platform(url: str) -> Optional[PlatformDescriptor]:
    """Return the descriptor of the first platform that accepts the URL."""
    if not url or not isinstance(url, str):
        return None

    for descriptor in PLATFORMS.values():
        if descriptor.matches(url):
            return descriptor
    return None


def detect(url: str) -> str:
    """Detect the platform display name of a URL.

    Args:
        url: URL to classify

    Returns:
        Platform name (e.g. "TikTok") or "unknown"
    """
    descriptor = find_platform(url)
    return descriptor.name if descriptor else UNKNOWN_PLATFORM


def validate(url: str) -> bool:
    """Check that a URL is well formed and belongs to a supported platform.

    A missing scheme defaults to https before parsing.
    """
    if not url or not isinstance(url, str):
        return False

    if not _is_well_formed(url):
        logger.debug(f"Malformed URL rejected: {url}")
        return False

    return find_platform(url) is not None


def get_platform_info(url: str) -> Optional[Dict[str, Any]]:
    """Return name, domains and capabilities for the URL's platform."""
    descriptor = find_platform(url)
    if descriptor is None:
        return None
    return {
        "name": descriptor.name,
        "domains": list(descriptor.domains),
        "capabilities": descriptor.capabilities.to_dict(),
    }


def get_all_platforms() -> List[Dict[str, Any]]:
    """List every supported platform with its capabilities."""
    return [
        {
            "key": descriptor.key,
            "name": descriptor.name,
            "domains": list(descriptor.domains),
            "capabilities": descriptor.capabilities.to_dict(),
        }
        for descriptor in PLATFORMS.values()
    ]


def clean_url(url: str) -> str:
    """Normalize a URL and strip tracking parameters.

    Adds an https scheme when missing and removes ``utm_*``, ``fbclid``,
    ``gclid``, ``ref``, ``source`` and ``igshid`` query parameters.
    Returns the input unchanged if it cannot be parsed.
    """
    if not url or not isinstance(url, str):
        return url

    try:
        parsed = urlparse(_with_scheme(url.strip()))
    except ValueError:
        return url

    query = [
        (key, value)
        for key, value in parse_qsl(parsed.query, keep_blank_values=True)
        if not key.startswith("utm_") and key not in TRACKING_PARAMS
    ]
    return urlunparse(parsed._replace(query=urlencode(query)))


def extract_video_id(url: str) -> Optional[str]:
    """Extract the platform-specific video id, or None."""
    descriptor = find_platform(url)
    if descriptor is None:
        return None
    return descriptor.extract_video_id(url)


__all__ = [
    "UNKNOWN_PLATFORM",
    "find_platform",
    "detect",
    "validate",
    "get_platform_info",
    "get_all_platforms",
    "clean_url",
    "extract_video_id",
]
