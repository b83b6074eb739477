"""
Tests for input validators.
"""

import pytest

from castfeed.utils.exceptions import ValidationError, ErrorCode
from castfeed.utils.validators import URLValidator, validate_podcast_id


class TestFeedURLValidation:

    @pytest.mark.parametrize("url", [None, "", "   "])
    def test_missing_url_is_rejected(self, url):
        with pytest.raises(ValidationError) as exc_info:
            URLValidator.validate_feed_url(url)
        assert exc_info.value.error_code == ErrorCode.VALIDATION_REQUIRED_FIELD

    @pytest.mark.parametrize("url", [
        "ftp://example.com/feed.xml",
        "javascript:alert(1)",
        "not a url",
        "http://",
        "http://localhost/rss",
        "http://192.168.1.10/rss",
        "http://10.0.0.5/rss",
        "http://127.0.0.1:8080/rss",
        "http://[::1]/rss",
        "http://169.254.169.254/latest",
        "http://feeds.localhost/rss",
    ])
    def test_invalid_url_is_rejected(self, url):
        with pytest.raises(ValidationError):
            URLValidator.validate_feed_url(url)

    @pytest.mark.parametrize("url", [
        "http://110.20.30.40/rss",
        "http://feeds210.1.2.3.example/rss",
        "https://10x.example.com/feed",
    ])
    def test_public_hosts_that_look_private_are_accepted(self, url):
        assert URLValidator.validate_feed_url(url) == url

    def test_url_is_normalized(self):
        assert (
            URLValidator.validate_feed_url("  HTTP://Feeds.Example.COM/Show/RSS#latest ")
            == "http://feeds.example.com/Show/RSS"
        )

    def test_valid_url_is_unchanged(self):
        assert URLValidator.validate_feed_url("http://mbmbam.libsyn.com/rss") == "http://mbmbam.libsyn.com/rss"


class TestLinkNormalization:

    def test_http_links_are_kept(self):
        assert URLValidator.normalize_link(" https://example.com/ep/1 ") == "https://example.com/ep/1"

    @pytest.mark.parametrize("link", [None, "", "mailto:host@example.com", "/relative/path", 42])
    def test_unusable_links_become_none(self, link):
        assert URLValidator.normalize_link(link) is None


class TestPodcastId:

    def test_id_is_stripped(self):
        assert validate_podcast_id(" abc ") == "abc"

    @pytest.mark.parametrize("podcast_id", [None, "", "  "])
    def test_missing_id_is_rejected(self, podcast_id):
        with pytest.raises(ValidationError):
            validate_podcast_id(podcast_id)
