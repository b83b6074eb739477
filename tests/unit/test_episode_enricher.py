"""
Tests for episode page previews.
"""

from unittest.mock import AsyncMock, Mock

import pytest

from castfeed.ingestion.content_cleaner import ContentCleaner
from castfeed.jobs.job_queue import Job, JobOptions
from castfeed.processing.episode_enricher import EpisodePageEnricher
from castfeed.utils.exceptions import IngestionError, ErrorKind, ValidationError

EPISODE_PAGE = """
<html>
  <head>
    <title>Fallback title</title>
    <meta property="og:title" content="Episode 1: The One Where &amp; Things Happen">
    <meta property="og:image" content="https://cdn.example.com/ep1.png">
  </head>
  <body><p>Show notes</p></body>
</html>
"""


def make_job(data):
    return Job(id="job-1", queue_name="og", data=data, opts=JobOptions())


class TestPagePreview:

    def test_open_graph_tags(self):
        preview = ContentCleaner().extract_page_preview(EPISODE_PAGE)

        assert preview.title == "Episode 1: The One Where & Things Happen"
        assert preview.image_url == "https://cdn.example.com/ep1.png"

    def test_twitter_and_title_fallbacks(self):
        page = """
        <html><head>
          <title>  Plain   title </title>
          <meta name="twitter:image" content="https://cdn.example.com/card.jpg">
        </head></html>
        """
        preview = ContentCleaner().extract_page_preview(page)

        assert preview.title == "Plain title"
        assert preview.image_url == "https://cdn.example.com/card.jpg"

    @pytest.mark.parametrize("page", [None, "", "<html><head></head></html>"])
    def test_page_without_preview(self, page):
        preview = ContentCleaner().extract_page_preview(page)
        assert preview.title is None
        assert preview.image_url is None

    def test_relative_image_is_ignored(self):
        page = '<meta property="og:image" content="/static/cover.png">'
        assert ContentCleaner().extract_page_preview(page).image_url is None


class TestEpisodePageEnricher:

    @pytest.fixture
    def episode_repo(self):
        repo = Mock()
        repo.update_preview.return_value = 1
        return repo

    @pytest.fixture
    def fetcher(self):
        fetcher = Mock()
        fetcher.fetch_page = AsyncMock(return_value=EPISODE_PAGE)
        return fetcher

    @pytest.mark.asyncio
    async def test_preview_is_stored_for_link(self, episode_repo, fetcher):
        enricher = EpisodePageEnricher(episode_repo, fetcher)

        result = await enricher.handle_job(make_job({"type": "episode", "url": "https://example.com/ep/1"}))

        fetcher.fetch_page.assert_awaited_once_with("https://example.com/ep/1")
        episode_repo.update_preview.assert_called_once_with(
            "https://example.com/ep/1",
            "Episode 1: The One Where & Things Happen",
            "https://cdn.example.com/ep1.png",
        )
        assert result["episodes"] == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("data", [
        {"type": "episode"},
        {"type": "article", "url": "https://example.com/a/1"},
        {"type": "episode", "url": "http://127.0.0.1/admin"},
        None,
    ])
    async def test_bad_payload_is_rejected_before_fetching(self, episode_repo, fetcher, data):
        enricher = EpisodePageEnricher(episode_repo, fetcher)

        with pytest.raises(ValidationError):
            await enricher.handle_job(make_job(data))

        fetcher.fetch_page.assert_not_awaited()
        episode_repo.update_preview.assert_not_called()

    @pytest.mark.asyncio
    async def test_fetch_failure_propagates(self, episode_repo, fetcher):
        fetcher.fetch_page.side_effect = IngestionError(ErrorKind.FETCH, "HTTP 404: Not Found")
        enricher = EpisodePageEnricher(episode_repo, fetcher)

        with pytest.raises(IngestionError):
            await enricher.handle_job(make_job({"type": "episode", "url": "https://example.com/ep/1"}))

        episode_repo.update_preview.assert_not_called()
