"""
CastFeed Feed Scheduler
=======================

Recurring scrape scheduling. Each pass enqueues one podcast job for every
active podcast not scraped within the interval. A podcast that already has a
waiting, delayed or active job is left alone so that at most one ingestion
per podcast is in flight.
"""

import asyncio
from datetime import datetime, timedelta
from typing import List, Optional

from ..config.settings import SchedulerSettings
from ..database.models import Podcast, PodcastJob, utc_now
from ..jobs.job_queue import JobQueue, JobOptions
from ..storage.podcast_repository import PodcastRepository
from ..utils.exceptions import CastFeedError
from ..utils.logging import get_logger_for_component


class FeedScheduler:
    """Enqueue due podcasts on the podcast queue."""

    def __init__(
        self,
        podcast_repo: PodcastRepository,
        queue: JobQueue,
        settings: SchedulerSettings,
        job_options: Optional[JobOptions] = None,
    ):
        self.podcast_repo = podcast_repo
        self.queue = queue
        self.settings = settings
        self.job_options = job_options
        self.logger = get_logger_for_component("scheduler")
        self._stopped = asyncio.Event()

    def _has_pending_job(self, podcast_id: str) -> bool:
        return self.queue.has_pending(
            lambda data: isinstance(data, dict) and data.get("podcast") == podcast_id
        )

    async def enqueue_due_podcasts(self, now: Optional[datetime] = None) -> List[str]:
        """Run one scheduling pass.

        Returns:
            Identifiers of the podcasts that were enqueued
        """
        now = now or utc_now()
        cutoff = now - timedelta(minutes=self.settings.scrape_interval_minutes)
        due: List[Podcast] = self.podcast_repo.list_due_podcasts(
            cutoff, limit=self.settings.max_jobs_per_pass
        )

        enqueued = []
        for podcast in due:
            if self._has_pending_job(podcast.id):
                self.logger.debug(f"Podcast {podcast.id} already has a pending job")
                continue

            payload = PodcastJob(podcast=podcast.id, url=podcast.feed_url).model_dump()
            await self.queue.add(payload, self.job_options)
            enqueued.append(podcast.id)

        if enqueued:
            self.logger.info(
                f"Enqueued {len(enqueued)} of {len(due)} due podcasts",
                extra={"enqueued": len(enqueued), "due": len(due)},
            )
        return enqueued

    async def run_forever(self) -> None:
        """Run scheduling passes until ``stop`` is called."""
        self.logger.info(
            f"Feed scheduler started (interval {self.settings.scrape_interval_minutes}m, "
            f"poll {self.settings.poll_interval_seconds}s)"
        )
        while not self._stopped.is_set():
            try:
                await self.enqueue_due_podcasts()
            except CastFeedError as e:
                self.logger.error(f"Scheduling pass failed: {e}", extra=e.to_dict())

            try:
                await asyncio.wait_for(
                    self._stopped.wait(), self.settings.poll_interval_seconds
                )
            except asyncio.TimeoutError:
                continue

        self.logger.info("Feed scheduler stopped")

    def stop(self) -> None:
        self._stopped.set()
