"""Platform descriptors for the supported video sites.

Each module defines the domain substrings, URL patterns, capabilities
and video id extraction for one platform. ``PLATFORMS`` holds them in
the order detection tries them.

Example:
    from server.downloaders.platforms import PLATFORMS

    for descriptor in PLATFORMS.values():
        if descriptor.matches(url):
            print(descriptor.name)
"""
from collections import OrderedDict

from .tiktok import TIKTOK, extract_tiktok_id
from .instagram import (
    INSTAGRAM,
    InstagramContentType,
    detect_instagram_content_type,
    extract_shortcode,
)
from .youtube import YOUTUBE, extract_youtube_id
from .twitter import TWITTER, extract_tweet_id, extract_username
from .facebook import FACEBOOK, extract_facebook_id
from .snapchat import SNAPCHAT

PLATFORMS = OrderedDict(
    (descriptor.key, descriptor)
    for descriptor in (TIKTOK, INSTAGRAM, YOUTUBE, TWITTER, FACEBOOK, SNAPCHAT)
)

__all__ = [
    "PLATFORMS",
    "TIKTOK",
    "INSTAGRAM",
    "YOUTUBE",
    "TWITTER",
    "FACEBOOK",
    "SNAPCHAT",
    "InstagramContentType",
    "detect_instagram_content_type",
    "extract_shortcode",
    "extract_tiktok_id",
    "extract_youtube_id",
    "extract_tweet_id",
    "extract_username",
    "extract_facebook_id",
]
