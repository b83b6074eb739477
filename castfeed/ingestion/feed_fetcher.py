"""
Podcast Feed Fetcher
====================

Downloads a podcast RSS feed and normalizes it into a ``FeedDocument``.
Network problems surface as ``FETCH`` errors and unusable documents as
``PARSE`` errors; nothing else leaves this module.
"""

import asyncio
import calendar
import ssl
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Optional

import aiohttp
import certifi
import feedparser

from ..config.settings import get_settings
from ..utils.exceptions import IngestionError, ErrorKind, ErrorCode
from ..utils.logging import get_logger_for_component
from ..utils.validators import URLValidator
from .content_cleaner import ContentCleaner


@dataclass
class FeedEntry:
    """One item of a parsed feed, in document order."""

    guid: Optional[str] = None
    title: Optional[str] = None
    link: Optional[str] = None
    enclosure_url: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    duration: Optional[str] = None
    published_at: Optional[datetime] = None

    @property
    def unique_key(self) -> Optional[str]:
        """Identity of the entry within its feed: guid, else link, else enclosure."""
        return self.guid or self.link or self.enclosure_url


@dataclass
class FeedDocument:
    """Normalized podcast feed."""

    url: str
    title: Optional[str] = None
    link: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    entries: List[FeedEntry] = field(default_factory=list)
    warning: Optional[str] = None


class FeedFetcher:
    """Fetch and parse a single podcast feed."""

    def __init__(
        self,
        timeout: Optional[int] = None,
        max_bytes: Optional[int] = None,
        user_agent: Optional[str] = None,
    ):
        """Initialize feed fetcher.

        Args:
            timeout: Request timeout in seconds (default from config)
            max_bytes: Largest accepted response body (default from config)
            user_agent: User-Agent header (default from config)
        """
        if timeout is None or max_bytes is None or user_agent is None:
            fetch_settings = get_settings().fetch
            timeout = timeout or fetch_settings.request_timeout
            max_bytes = max_bytes or fetch_settings.max_feed_bytes
            user_agent = user_agent or fetch_settings.user_agent

        self.timeout = timeout
        self.max_bytes = max_bytes
        self.user_agent = user_agent
        self.cleaner = ContentCleaner()
        self.logger = get_logger_for_component("feed_fetcher")

        self.ssl_context = ssl.create_default_context(cafile=certifi.where())

    @asynccontextmanager
    async def get_session(self):
        """Get configured aiohttp session."""
        connector = aiohttp.TCPConnector(ssl=self.ssl_context, limit_per_host=5)
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        headers = {
            "User-Agent": self.user_agent,
            "Accept": "application/rss+xml, application/xml, text/xml, */*",
            "Accept-Encoding": "gzip, deflate",
        }

        async with aiohttp.ClientSession(
            connector=connector, timeout=timeout, headers=headers
        ) as session:
            yield session

    async def parse_feed(self, url: str) -> FeedDocument:
        """Download and parse a feed.

        Args:
            url: Validated feed URL

        Returns:
            Normalized feed document with entries in document order

        Raises:
            IngestionError: ``FETCH`` for network failures, timeouts, non-200
                responses and oversized bodies; ``PARSE`` when the body is not
                a feed
        """
        body = await self._download(url)
        document = self._parse_document(url, body)

        self.logger.info(
            f"Parsed {len(document.entries)} entries from {url}",
            extra={"feed_url": url, "entry_count": len(document.entries)},
        )
        return document

    async def fetch_page(self, url: str) -> str:
        """Download a web page as text with the same limits as a feed.

        Raises:
            IngestionError: ``FETCH`` for the same failures as ``parse_feed``
        """
        body = await self._download(url)
        return body.decode("utf-8", errors="replace")

    async def _download(self, url: str) -> bytes:
        self.logger.debug(f"Fetching feed: {url}")

        try:
            async with self.get_session() as session:
                async with session.get(url) as response:
                    if response.status != 200:
                        raise IngestionError(
                            ErrorKind.FETCH,
                            f"HTTP {response.status}: {response.reason}",
                            feed_url=url,
                            error_code=(
                                ErrorCode.FEED_NOT_FOUND
                                if response.status in (404, 410)
                                else ErrorCode.FEED_NETWORK_ERROR
                            ),
                        )

                    if response.content_length and response.content_length > self.max_bytes:
                        raise self._too_large(url)

                    chunks = []
                    received = 0
                    async for chunk in response.content.iter_chunked(64 * 1024):
                        received += len(chunk)
                        if received > self.max_bytes:
                            raise self._too_large(url)
                        chunks.append(chunk)

                    return b"".join(chunks)

        except asyncio.TimeoutError as e:
            raise IngestionError(
                ErrorKind.FETCH,
                f"Request timeout after {self.timeout}s",
                cause=e,
                feed_url=url,
                error_code=ErrorCode.FEED_FETCH_TIMEOUT,
            ) from e
        except aiohttp.ClientError as e:
            raise IngestionError(
                ErrorKind.FETCH, f"Fetch error: {e}", cause=e, feed_url=url
            ) from e

    def _too_large(self, url: str) -> IngestionError:
        return IngestionError(
            ErrorKind.FETCH,
            f"Feed body exceeds {self.max_bytes} bytes",
            feed_url=url,
        )

    def _parse_document(self, url: str, body: bytes) -> FeedDocument:
        feed_data = feedparser.parse(body)

        channel = feed_data.get("feed", {})
        entries = feed_data.get("entries", [])
        warning = None

        if feed_data.get("bozo"):
            warning = str(feed_data.get("bozo_exception") or "Invalid XML structure")

        if not entries and not channel.get("title"):
            if warning or not feed_data.get("version"):
                raise IngestionError(
                    ErrorKind.PARSE,
                    f"Feed parse error: {warning or 'document is not a feed'}",
                    feed_url=url,
                )

        if warning:
            self.logger.info(f"Feed has parse warnings but is usable: {url}: {warning}")

        return FeedDocument(
            url=url,
            title=channel.get("title"),
            link=URLValidator.normalize_link(channel.get("link")),
            description=self.cleaner.extract_text_only(
                channel.get("subtitle") or channel.get("description")
            ) or None,
            image_url=self._channel_image(channel),
            entries=[self._parse_entry(entry) for entry in entries],
            warning=warning,
        )

    def _parse_entry(self, entry: Any) -> FeedEntry:
        raw_description = self._raw_description(entry)

        return FeedEntry(
            guid=(entry.get("id") or "").strip() or None,
            title=(entry.get("title") or "").strip() or None,
            link=URLValidator.normalize_link(entry.get("link")),
            enclosure_url=self._enclosure_url(entry),
            description=self.cleaner.extract_text_only(raw_description) or None,
            image_url=self._entry_image(entry) or self.cleaner.extract_first_image(raw_description),
            duration=entry.get("itunes_duration") or None,
            published_at=self._parse_date(entry),
        )

    def _raw_description(self, entry: Any) -> Optional[str]:
        """Prefer full content, then description, then summary."""
        content = entry.get("content")
        if isinstance(content, list) and content:
            value = content[0].get("value")
            if value:
                return value
        return entry.get("description") or entry.get("summary")

    def _enclosure_url(self, entry: Any) -> Optional[str]:
        for enclosure in entry.get("enclosures", []):
            href = URLValidator.normalize_link(enclosure.get("href"))
            if href:
                return href
        for link in entry.get("links", []):
            if link.get("rel") == "enclosure":
                href = URLValidator.normalize_link(link.get("href"))
                if href:
                    return href
        return None

    def _entry_image(self, entry: Any) -> Optional[str]:
        image = entry.get("image")
        if isinstance(image, dict) and image.get("href"):
            return URLValidator.normalize_link(image["href"])
        for thumbnail in entry.get("media_thumbnail", []):
            url = URLValidator.normalize_link(thumbnail.get("url"))
            if url:
                return url
        return None

    def _channel_image(self, channel: Any) -> Optional[str]:
        image = channel.get("image")
        if isinstance(image, dict):
            return URLValidator.normalize_link(image.get("href") or image.get("url"))
        return None

    def _parse_date(self, entry: Any) -> Optional[datetime]:
        """Publication date in UTC, from the first parsed date field present."""
        for name in ("published_parsed", "updated_parsed", "created_parsed"):
            date_tuple = entry.get(name)
            if date_tuple:
                try:
                    # feedparser normalizes parsed dates to UTC
                    return datetime.fromtimestamp(calendar.timegm(date_tuple), tz=timezone.utc)
                except (ValueError, OverflowError):
                    continue
        return None
