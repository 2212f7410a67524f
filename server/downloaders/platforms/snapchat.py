"""Snapchat URL rules for public profiles and shared stories."""
from server.downloaders.types import PlatformCapabilities, PlatformDescriptor

SNAPCHAT_DOMAINS = ("snapchat.com",)

SNAPCHAT_PATTERNS = (
    r"(?:https?://)?(?:www\.)?snapchat\.com/add/[\w.-]+",
    r"(?:https?://)?story\.snapchat\.com/p/[\w-]+",
)

# Snapchat links carry no stable video id
SNAPCHAT = PlatformDescriptor(
    key="snapchat",
    name="Snapchat",
    domains=SNAPCHAT_DOMAINS,
    patterns=SNAPCHAT_PATTERNS,
    capabilities=PlatformCapabilities(
        max_quality="720p",
        watermark_removal=True,
        audio_download=True,
    ),
)
