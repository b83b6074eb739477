"""
CastFeed Ingestion Module
========================

Feed download, parsing, show-notes cleaning and page previews.
"""

from .feed_fetcher import FeedFetcher, FeedDocument, FeedEntry
from .content_cleaner import ContentCleaner, PagePreview

__all__ = [
    "FeedFetcher",
    "FeedDocument",
    "FeedEntry",
    "ContentCleaner",
    "PagePreview",
]
