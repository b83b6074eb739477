"""
Unit Tests for Podcast Feed Fetcher
===================================

Tests for feed download error handling and normalization of podcast entries.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from castfeed.ingestion.feed_fetcher import FeedFetcher, FeedEntry
from castfeed.utils.exceptions import IngestionError, ErrorKind, ErrorCode


FEED_URL = "https://feeds.example.com/show.xml"

MINIMAL_ITEMS = """
    <item>
      <title>Link only</title>
      <link>https://example.com/link-only</link>
    </item>
    <item>
      <title>Audio only</title>
      <enclosure url="https://cdn.example.com/audio-only.mp3" type="audio/mpeg"/>
    </item>
"""


def make_response(status=200, body=b"", content_length=None, reason="OK"):
    response = MagicMock()
    response.status = status
    response.reason = reason
    response.content_length = content_length

    async def iter_chunked(size):
        for start in range(0, len(body), size):
            yield body[start:start + size]

    response.content.iter_chunked = iter_chunked
    return response


def fake_session(response=None, error=None):
    session = MagicMock()
    if error is not None:
        session.get.side_effect = error
    else:
        session.get.return_value.__aenter__.return_value = response

    @asynccontextmanager
    async def get_session():
        yield session

    return get_session, session


@pytest.fixture
def fetcher():
    return FeedFetcher(timeout=5, max_bytes=1024 * 1024, user_agent="CastFeed-Test/1.0")


class TestFeedParsing:
    """Normalization of downloaded feed bodies."""

    @pytest.mark.asyncio
    async def test_parse_podcast_feed(self, fetcher, make_feed_xml):
        with patch.object(fetcher, "_download", AsyncMock(return_value=make_feed_xml(3))) as download:
            document = await fetcher.parse_feed(FEED_URL)

        download.assert_awaited_once_with(FEED_URL)
        assert document.url == FEED_URL
        assert document.title == "Test Podcast"
        assert document.warning is None
        assert [e.guid for e in document.entries] == ["ep-guid-0", "ep-guid-1", "ep-guid-2"]

        entry = document.entries[1]
        assert entry.unique_key == "ep-guid-1"
        assert entry.title == "Episode 1"
        assert entry.link == "https://example.com/ep/1"
        assert entry.enclosure_url == "https://cdn.example.com/ep/1.mp3"
        assert entry.description == "Show notes for episode 1"
        assert entry.duration == "00:42:01"
        assert entry.published_at == datetime(2024, 1, 1, 1, 0, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_unique_key_fallbacks(self, fetcher, make_feed_xml):
        body = make_feed_xml(0, extra_items=MINIMAL_ITEMS)
        with patch.object(fetcher, "_download", AsyncMock(return_value=body)):
            document = await fetcher.parse_feed(FEED_URL)

        link_only, audio_only = document.entries
        assert link_only.guid is None
        assert link_only.unique_key == "https://example.com/link-only"
        assert audio_only.link is None
        assert audio_only.unique_key == "https://cdn.example.com/audio-only.mp3"

    @pytest.mark.asyncio
    async def test_empty_feed_with_channel_is_valid(self, fetcher, make_feed_xml):
        with patch.object(fetcher, "_download", AsyncMock(return_value=make_feed_xml(0))):
            document = await fetcher.parse_feed(FEED_URL)

        assert document.title == "Test Podcast"
        assert document.entries == []

    @pytest.mark.asyncio
    async def test_garbage_body_is_parse_error(self, fetcher):
        with patch.object(fetcher, "_download", AsyncMock(return_value=b"<html><body>Not here</body>")):
            with pytest.raises(IngestionError) as exc_info:
                await fetcher.parse_feed(FEED_URL)

        assert exc_info.value.kind == ErrorKind.PARSE
        assert exc_info.value.recoverable

    @pytest.mark.asyncio
    async def test_fetch_page_decodes_body(self, fetcher):
        body = "<title>Caf\u00e9</title>".encode("utf-8") + b"\xff"
        with patch.object(fetcher, "_download", AsyncMock(return_value=body)) as download:
            page = await fetcher.fetch_page("https://example.com/ep/1")

        download.assert_awaited_once_with("https://example.com/ep/1")
        assert page.startswith("<title>Caf\u00e9</title>")
        assert page.endswith("\ufffd")

    def test_entry_without_identity(self):
        assert FeedEntry(title="Nothing to key on").unique_key is None


class TestFeedDownload:
    """HTTP failure modes of the download step."""

    @pytest.mark.asyncio
    async def test_successful_download(self, fetcher, make_feed_xml):
        body = make_feed_xml(2)
        get_session, session = fake_session(make_response(body=body))

        with patch.object(fetcher, "get_session", get_session):
            document = await fetcher.parse_feed(FEED_URL)

        session.get.assert_called_once_with(FEED_URL)
        assert len(document.entries) == 2

    @pytest.mark.asyncio
    async def test_not_found(self, fetcher):
        get_session, _ = fake_session(make_response(status=404, reason="Not Found"))

        with patch.object(fetcher, "get_session", get_session):
            with pytest.raises(IngestionError) as exc_info:
                await fetcher.parse_feed(FEED_URL)

        assert exc_info.value.kind == ErrorKind.FETCH
        assert exc_info.value.error_code == ErrorCode.FEED_NOT_FOUND
        assert "HTTP 404" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_server_error(self, fetcher):
        get_session, _ = fake_session(make_response(status=503, reason="Service Unavailable"))

        with patch.object(fetcher, "get_session", get_session):
            with pytest.raises(IngestionError) as exc_info:
                await fetcher.parse_feed(FEED_URL)

        assert exc_info.value.error_code == ErrorCode.FEED_NETWORK_ERROR

    @pytest.mark.asyncio
    async def test_timeout(self, fetcher):
        get_session, _ = fake_session(error=asyncio.TimeoutError())

        with patch.object(fetcher, "get_session", get_session):
            with pytest.raises(IngestionError) as exc_info:
                await fetcher.parse_feed(FEED_URL)

        assert exc_info.value.kind == ErrorKind.FETCH
        assert exc_info.value.error_code == ErrorCode.FEED_FETCH_TIMEOUT

    @pytest.mark.asyncio
    async def test_connection_error(self, fetcher):
        get_session, _ = fake_session(error=aiohttp.ClientConnectionError("Connection refused"))

        with patch.object(fetcher, "get_session", get_session):
            with pytest.raises(IngestionError) as exc_info:
                await fetcher.parse_feed(FEED_URL)

        assert exc_info.value.kind == ErrorKind.FETCH
        assert isinstance(exc_info.value.cause, aiohttp.ClientConnectionError)

    @pytest.mark.asyncio
    async def test_declared_length_over_limit(self, fetcher):
        get_session, _ = fake_session(make_response(body=b"", content_length=10 * 1024 * 1024))

        with patch.object(fetcher, "get_session", get_session):
            with pytest.raises(IngestionError) as exc_info:
                await fetcher.parse_feed(FEED_URL)

        assert exc_info.value.kind == ErrorKind.FETCH

    @pytest.mark.asyncio
    async def test_streamed_body_over_limit(self, make_feed_xml):
        small = FeedFetcher(timeout=5, max_bytes=512, user_agent="CastFeed-Test/1.0")
        get_session, _ = fake_session(make_response(body=make_feed_xml(20)))

        with patch.object(small, "get_session", get_session):
            with pytest.raises(IngestionError) as exc_info:
                await small.parse_feed(FEED_URL)

        assert exc_info.value.kind == ErrorKind.FETCH
        assert "exceeds" in str(exc_info.value)
