"""
CastFeed Podcast Worker
=======================

Builds the ingestion object graph and runs the podcast and enrichment queue
workers next to the recurring feed scheduler. Both queues persist their jobs,
so work accepted before a restart is delivered after it. Every collaborator can be passed in; anything
omitted is built from settings.
"""

import asyncio
from typing import Optional

from ..config.settings import CastFeedSettings, get_settings
from ..database.connection import DatabaseConnection
from ..database.schema import DatabaseSchema
from ..delivery.activity_client import ActivityFeedClient
from ..ingestion.feed_fetcher import FeedFetcher
from ..jobs.job_queue import JobOptions, JobQueue
from ..processing.activity_batcher import ActivityBatcher
from ..processing.enrichment_scheduler import EnrichmentScheduler
from ..processing.episode_enricher import EpisodePageEnricher
from ..processing.health_tracker import ScrapeHealthTracker
from ..processing.pipeline import IngestionOrchestrator, IngestionResult
from ..scheduler.feed_scheduler import FeedScheduler
from ..storage.episode_repository import EpisodeRepository
from ..storage.job_repository import JobRepository
from ..storage.podcast_repository import PodcastRepository
from ..utils.exceptions import ValidationError, ErrorCode
from ..utils.logging import get_logger_for_component


class PodcastWorker:
    """Composition root for the ingestion worker."""

    def __init__(
        self,
        settings: Optional[CastFeedSettings] = None,
        db: Optional[DatabaseConnection] = None,
        fetcher: Optional[FeedFetcher] = None,
        activity_client: Optional[ActivityFeedClient] = None,
        enrichment_queue: Optional[JobQueue] = None,
    ):
        self.settings = settings or get_settings()
        self.logger = get_logger_for_component("worker")

        if db is None:
            DatabaseSchema(self.settings.database.path).create_tables()
            db = DatabaseConnection(
                self.settings.database.path, pool_size=self.settings.database.pool_size
            )
        self.db = db

        self.podcast_repo = PodcastRepository(self.db)
        self.episode_repo = EpisodeRepository(self.db)
        self.job_repo = JobRepository(self.db)

        self.fetcher = fetcher or FeedFetcher(
            timeout=self.settings.fetch.request_timeout,
            max_bytes=self.settings.fetch.max_feed_bytes,
            user_agent=self.settings.fetch.user_agent,
        )
        self.activity_client = activity_client or ActivityFeedClient(self.settings.activity)

        queue_settings = self.settings.queue
        self.enricher = EpisodePageEnricher(self.episode_repo, self.fetcher)
        self.enrichment_queue = enrichment_queue or JobQueue(
            queue_settings.enrichment_queue_name,
            handler=self.enricher.handle_job,
            store=self.job_repo,
        )

        self.orchestrator = IngestionOrchestrator(
            podcast_repo=self.podcast_repo,
            episode_repo=self.episode_repo,
            fetcher=self.fetcher,
            batcher=ActivityBatcher(
                self.activity_client,
                self.episode_repo,
                batch_size=self.settings.activity.batch_size,
            ),
            enrichment=EnrichmentScheduler(self.enrichment_queue, self.episode_repo),
            health=ScrapeHealthTracker(self.podcast_repo, self.episode_repo),
            feed_group=self.settings.activity.feed_group,
        )

        self.podcast_queue = JobQueue(
            queue_settings.podcast_queue_name,
            handler=self.orchestrator.handle_job,
            default_options=JobOptions(
                attempts=queue_settings.attempts,
                backoff_strategy=queue_settings.backoff_strategy,
                backoff_delay=queue_settings.backoff_delay,
                max_backoff_delay=queue_settings.max_backoff_delay,
                timeout=queue_settings.job_timeout,
                remove_on_complete=True,
                remove_on_fail=True,
            ),
            store=self.job_repo,
        )

        self.podcast_queue.restore()
        self.enrichment_queue.restore()

        self.scheduler = FeedScheduler(
            self.podcast_repo, self.podcast_queue, self.settings.scheduler
        )

    async def ingest_once(self, podcast_id: str, url: Optional[str] = None) -> IngestionResult:
        """Ingest a single podcast immediately, outside the queue.

        Uses the stored feed URL when ``url`` is omitted.
        """
        if url is None:
            podcast = self.podcast_repo.get_podcast(podcast_id)
            if podcast is None:
                raise ValidationError(
                    f"Unknown podcast {podcast_id}",
                    error_code=ErrorCode.VALIDATION_NOT_FOUND,
                    field_name="podcast",
                )
            url = podcast.feed_url

        return await self.orchestrator.ingest({"podcast": podcast_id, "url": url})

    async def run(self) -> None:
        """Run queue workers and the scheduler until shutdown."""
        self.logger.info(
            f"Podcast worker starting with concurrency {self.settings.queue.concurrency}, "
            f"enrichment concurrency {self.settings.queue.enrichment_concurrency}"
        )
        await asyncio.gather(
            self.podcast_queue.run(self.settings.queue.concurrency),
            self.enrichment_queue.run(self.settings.queue.enrichment_concurrency),
            self.scheduler.run_forever(),
        )

    async def shutdown(self) -> None:
        """Stop scheduling, drain in-flight jobs and release resources."""
        self.logger.info("Podcast worker shutting down")
        self.scheduler.stop()
        await self.podcast_queue.close()
        await self.enrichment_queue.close()
        await self.activity_client.close()
        self.db.close_all_connections()
