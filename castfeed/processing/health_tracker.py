"""
Scrape Health Tracker
=====================

Success and failure bookkeeping on the podcast row. The failure counter is
advisory; nothing disables a podcast automatically.
"""

from datetime import datetime
from typing import Optional

from ..database.models import utc_now
from ..storage.episode_repository import EpisodeRepository
from ..storage.podcast_repository import PodcastRepository
from ..utils.logging import get_logger_for_component


class ScrapeHealthTracker:
    """Record the outcome of each ingestion attempt."""

    def __init__(self, podcast_repo: PodcastRepository, episode_repo: EpisodeRepository):
        self.podcast_repo = podcast_repo
        self.episode_repo = episode_repo
        self.logger = get_logger_for_component("health_tracker")

    def record_success(self, podcast_id: str, at: Optional[datetime] = None) -> int:
        """Reset the failure counter and set ``post_count`` to the stored episode count.

        Returns:
            The stored episode count
        """
        post_count = self.episode_repo.count_for_podcast(podcast_id)
        self.podcast_repo.record_scrape_success(podcast_id, post_count, at or utc_now())
        return post_count

    def record_failure(self, podcast_id: str, at: Optional[datetime] = None) -> bool:
        """Increment the failure counter; ``post_count`` is left alone.

        Returns:
            False when no podcast row exists for the identifier
        """
        updated = self.podcast_repo.record_scrape_failure(podcast_id, at or utc_now())
        if not updated:
            self.logger.warning(f"No podcast {podcast_id} to record a failure against")
        return updated
