"""
Activity Batcher
================

Publishes episodes to the podcast's activity feed in consecutive batches.
Batches go out strictly one after another; the first failing batch stops the
run. Every acknowledged batch is stamped so a retry starts at the first
unacknowledged episode.
"""

from typing import List, Optional, Sequence

from ..database.models import Activity, Episode
from ..delivery.activity_client import ActivityFeedClient
from ..storage.episode_repository import EpisodeRepository
from ..utils.exceptions import IngestionError, ErrorKind
from ..utils.logging import get_logger_for_component


def chunk(items: Sequence, size: int) -> List[Sequence]:
    """Split a sequence into consecutive slices of at most ``size``."""
    if size < 1:
        raise ValueError("Batch size must be at least 1")
    return [items[i:i + size] for i in range(0, len(items), size)]


class ActivityBatcher:
    """Send episode activities in ordered batches."""

    def __init__(
        self,
        client: ActivityFeedClient,
        episode_repo: Optional[EpisodeRepository] = None,
        batch_size: int = 100,
    ):
        """Initialize batcher.

        Args:
            client: Activity feed client
            episode_repo: Repository used to stamp acknowledged batches; when
                omitted nothing is recorded
            batch_size: Activities per call
        """
        self.client = client
        self.episode_repo = episode_repo
        self.batch_size = batch_size
        self.logger = get_logger_for_component("activity_batcher")

    async def publish(self, feed_key: str, episodes: Sequence[Episode]) -> int:
        """Publish episodes in order.

        Returns:
            Number of batches sent

        Raises:
            IngestionError: ``PUBLISH`` when a batch fails; later batches are
                not attempted
        """
        batches = chunk(list(episodes), self.batch_size)

        for index, batch in enumerate(batches, start=1):
            activities = [Activity.for_episode(episode) for episode in batch]
            try:
                await self.client.add_activities(feed_key, activities)
            except Exception as e:
                self.logger.warning(
                    f"Activity batch {index}/{len(batches)} to {feed_key} failed: {e}"
                )
                raise IngestionError.wrap(
                    ErrorKind.PUBLISH,
                    e,
                    context={"feed_key": feed_key, "batch": index, "batches": len(batches)},
                )

            if self.episode_repo is not None:
                self.episode_repo.mark_activities_sent([episode.id for episode in batch])

        if batches:
            self.logger.info(
                f"Published {len(episodes)} activities to {feed_key} in {len(batches)} batches"
            )
        return len(batches)
