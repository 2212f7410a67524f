"""Tests for platform detection, URL validation and normalization."""
import pytest

from server.downloaders.platforms import (
    InstagramContentType,
    detect_instagram_content_type,
    extract_username,
)
from server.downloaders.url_detector import (
    UNKNOWN_PLATFORM,
    clean_url,
    detect,
    extract_video_id,
    get_all_platforms,
    get_platform_info,
    validate,
)


CANONICAL_URLS = [
    ("https://www.tiktok.com/@some.user/video/7234567890123456789", "TikTok"),
    ("https://vm.tiktok.com/ZMabc123", "TikTok"),
    ("https://www.instagram.com/p/CxYz123AbC/", "Instagram"),
    ("https://www.instagram.com/reel/CxYz123AbC/", "Instagram"),
    ("https://www.instagram.com/stories/someone/3123456789/", "Instagram"),
    ("https://www.youtube.com/watch?v=dQw4w9WgXcQ", "YouTube"),
    ("https://youtu.be/dQw4w9WgXcQ", "YouTube"),
    ("https://www.youtube.com/embed/dQw4w9WgXcQ", "YouTube"),
    ("https://twitter.com/someone/status/1234567890", "Twitter/X"),
    ("https://x.com/someone/status/1234567890", "Twitter/X"),
    ("https://www.facebook.com/somepage/videos/1234567890", "Facebook"),
    ("https://www.facebook.com/watch/?v=1234567890", "Facebook"),
    ("https://fb.watch/abcDEF123/", "Facebook"),
    ("https://www.snapchat.com/add/someone", "Snapchat"),
    ("https://story.snapchat.com/p/abc-123", "Snapchat"),
]


class TestDetect:
    """Tests for detect()."""

    @pytest.mark.parametrize("url,platform", CANONICAL_URLS)
    def test_canonical_urls_detected(self, url, platform):
        """Canonical video URLs map to their platform."""
        assert detect(url) == platform

    def test_domain_without_pattern_is_unknown(self):
        """A known domain whose path matches no pattern is unknown."""
        assert detect("https://www.tiktok.com/foo") == UNKNOWN_PLATFORM

    def test_unrelated_domain_is_unknown(self):
        assert detect("https://example.com/video/123") == UNKNOWN_PLATFORM

    def test_empty_and_non_string(self):
        assert detect("") == UNKNOWN_PLATFORM
        assert detect(None) == UNKNOWN_PLATFORM

    def test_domain_match_is_case_insensitive(self):
        assert detect("https://WWW.YOUTUBE.COM/watch?v=dQw4w9WgXcQ") == "YouTube"

    def test_url_without_scheme(self):
        assert detect("youtube.com/watch?v=dQw4w9WgXcQ") == "YouTube"


class TestValidate:
    """Tests for validate()."""

    @pytest.mark.parametrize("url,platform", CANONICAL_URLS)
    def test_canonical_urls_valid(self, url, platform):
        assert validate(url) is True

    def test_missing_scheme_defaults_to_https(self):
        assert validate("www.tiktok.com/@user/video/123") is True

    def test_unsupported_platform_invalid(self):
        assert validate("https://vimeo.com/123456") is False

    def test_pattern_miss_invalid(self):
        assert validate("https://www.tiktok.com/foo") is False

    @pytest.mark.parametrize("value", ["", None, 42, "   "])
    def test_non_url_values_invalid(self, value):
        assert validate(value) is False


class TestPlatformInfo:
    """Tests for platform capability lookup."""

    def test_get_platform_info(self):
        info = get_platform_info("https://www.instagram.com/reel/CxYz123AbC/")
        assert info["name"] == "Instagram"
        assert "instagram.com" in info["domains"]
        assert info["capabilities"]["maxQuality"] == "1080p"
        assert info["capabilities"]["watermarkRemoval"] is True
        assert info["capabilities"]["reels"] is True

    def test_get_platform_info_unknown(self):
        assert get_platform_info("https://example.com/") is None

    def test_get_all_platforms_lists_six(self):
        names = [p["name"] for p in get_all_platforms()]
        assert names == ["TikTok", "Instagram", "YouTube", "Twitter/X", "Facebook", "Snapchat"]

    def test_youtube_capabilities(self):
        youtube = next(p for p in get_all_platforms() if p["key"] == "youtube")
        assert youtube["capabilities"]["maxQuality"] == "4K"
        assert youtube["capabilities"]["watermarkRemoval"] is False

    def test_snapchat_capabilities(self):
        snapchat = get_platform_info("https://www.snapchat.com/add/someone")
        assert snapchat["capabilities"]["maxQuality"] == "720p"
        assert snapchat["capabilities"]["watermarkRemoval"] is True


class TestCleanUrl:
    """Tests for clean_url()."""

    def test_strips_tracking_parameters(self):
        cleaned = clean_url(
            "https://www.youtube.com/watch?v=dQw4w9WgXcQ&utm_source=x&utm_medium=y&fbclid=abc&si=keep"
        )
        assert cleaned == "https://www.youtube.com/watch?v=dQw4w9WgXcQ&si=keep"

    def test_adds_scheme(self):
        assert clean_url("youtu.be/dQw4w9WgXcQ") == "https://youtu.be/dQw4w9WgXcQ"

    def test_strips_igshid(self):
        assert clean_url("https://www.instagram.com/p/abc/?igshid=xyz") == "https://www.instagram.com/p/abc/"


class TestExtractVideoId:
    """Tests for per-platform id extraction."""

    @pytest.mark.parametrize("url,expected", [
        ("https://www.tiktok.com/@user/video/7234567890", "7234567890"),
        ("https://www.youtube.com/watch?v=dQw4w9WgXcQ", "dQw4w9WgXcQ"),
        ("https://youtu.be/dQw4w9WgXcQ", "dQw4w9WgXcQ"),
        ("https://www.instagram.com/reel/CxYz123AbC/", "CxYz123AbC"),
        ("https://twitter.com/someone/status/1234567890", "1234567890"),
        ("https://www.facebook.com/watch/?v=555", "555"),
    ])
    def test_extract_video_id(self, url, expected):
        assert extract_video_id(url) == expected

    def test_short_tiktok_link_has_no_id(self):
        assert extract_video_id("https://vm.tiktok.com/ZMabc123") is None

    def test_unknown_url_has_no_id(self):
        assert extract_video_id("https://example.com/watch?v=1") is None

    def test_twitter_username(self):
        assert extract_username("https://x.com/someone/status/1") == "someone"

    def test_instagram_content_type(self):
        assert detect_instagram_content_type("https://instagram.com/reel/a") == InstagramContentType.REEL
        assert detect_instagram_content_type("https://instagram.com/p/a") == InstagramContentType.POST
        assert detect_instagram_content_type("https://instagram.com/stories/a/1") == InstagramContentType.STORY
