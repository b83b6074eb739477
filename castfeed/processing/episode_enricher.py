"""
Episode Page Enricher
=====================

Handler for the enrichment queue. Each job names an episode web page; the
page is fetched, its Open Graph preview is read and stored on every episode
that links to it.
"""

from typing import Any, Dict, Optional

import pydantic

from ..database.models import EnrichmentJob
from ..ingestion.content_cleaner import ContentCleaner
from ..ingestion.feed_fetcher import FeedFetcher
from ..jobs.job_queue import Job
from ..storage.episode_repository import EpisodeRepository
from ..utils.exceptions import ValidationError, ErrorCode
from ..utils.logging import get_logger_for_component
from ..utils.validators import URLValidator


class EpisodePageEnricher:
    """Store page previews for episode links."""

    def __init__(
        self,
        episode_repo: EpisodeRepository,
        fetcher: FeedFetcher,
        cleaner: Optional[ContentCleaner] = None,
    ):
        self.episode_repo = episode_repo
        self.fetcher = fetcher
        self.cleaner = cleaner or ContentCleaner()
        self.logger = get_logger_for_component("episode_enricher")

    async def handle_job(self, job: Job) -> Dict[str, Any]:
        """Enrichment queue handler.

        Raises:
            ValidationError: For a payload that is not an episode page job
            IngestionError: ``FETCH`` when the page cannot be downloaded
            DatabaseError: When the preview cannot be stored
        """
        try:
            payload = EnrichmentJob.from_payload(job.data)
        except pydantic.ValidationError as e:
            raise ValidationError(
                f"Malformed enrichment job: {e.error_count()} invalid fields",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url",
            ) from e

        if payload.type != "episode":
            raise ValidationError(
                f"Unsupported enrichment job type {payload.type!r}",
                field_name="type",
            )

        url = URLValidator.validate_feed_url(payload.url)
        page = await self.fetcher.fetch_page(url)
        preview = self.cleaner.extract_page_preview(page)

        # Empty previews are stored too; enriched_at marks the attempt
        updated = self.episode_repo.update_preview(payload.url, preview.title, preview.image_url)

        self.logger.debug(
            f"Stored preview for {payload.url} on {updated} episodes",
            extra={"url": payload.url, "has_image": bool(preview.image_url)},
        )
        return {"url": payload.url, "episodes": updated, "title": preview.title, "image_url": preview.image_url}
