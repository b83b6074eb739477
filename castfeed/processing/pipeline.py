"""
Ingestion Orchestrator
======================

Job handler for the podcast queue. One invocation ingests one podcast:

    received -> fetching -> reconciling -> persisting -> publishing_activities
    -> scheduling_enrichment -> recording_health -> resolved | rejected

A failing stage short-circuits the rest, records a scrape failure and
re-raises its ``IngestionError`` so the queue can retry. Fan-out works off the
stored episodes whose activity or enrichment job is still outstanding, so a
retried attempt picks up whatever an earlier attempt left behind.
"""

import asyncio
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, Optional, Tuple

from ..database.models import Podcast, PodcastJob
from ..delivery.activity_client import podcast_feed_key
from ..ingestion.feed_fetcher import FeedFetcher
from ..jobs.job_queue import Job
from ..storage.episode_repository import EpisodeRepository
from ..storage.podcast_repository import PodcastRepository
from ..utils.exceptions import IngestionError, ErrorKind, ErrorCode
from ..utils.logging import get_logger_for_component, PerformanceLogger
from ..utils.validators import URLValidator, validate_podcast_id

from .activity_batcher import ActivityBatcher
from .enrichment_scheduler import EnrichmentScheduler
from .health_tracker import ScrapeHealthTracker
from .reconciler import EpisodeReconciler


class IngestionStage(str, Enum):
    """Stages of one ingestion attempt."""
    RECEIVED = "received"
    FETCHING = "fetching"
    RECONCILING = "reconciling"
    PERSISTING = "persisting"
    PUBLISHING_ACTIVITIES = "publishing_activities"
    SCHEDULING_ENRICHMENT = "scheduling_enrichment"
    RECORDING_HEALTH = "recording_health"
    RESOLVED = "resolved"
    REJECTED = "rejected"


_STAGE_ERROR_KINDS = {
    IngestionStage.RECEIVED: ErrorKind.VALIDATION,
    IngestionStage.FETCHING: ErrorKind.FETCH,
    IngestionStage.RECONCILING: ErrorKind.PARSE,
    IngestionStage.PERSISTING: ErrorKind.PERSISTENCE,
    IngestionStage.PUBLISHING_ACTIVITIES: ErrorKind.PUBLISH,
    IngestionStage.SCHEDULING_ENRICHMENT: ErrorKind.SCHEDULE,
    IngestionStage.RECORDING_HEALTH: ErrorKind.PERSISTENCE,
}


@dataclass
class IngestionResult:
    """Summary of one ingestion attempt."""
    podcast_id: Optional[str] = None
    feed_url: Optional[str] = None
    stage: IngestionStage = IngestionStage.RECEIVED
    entries: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    activities_published: int = 0
    activity_batches: int = 0
    enrichment_jobs: int = 0
    post_count: Optional[int] = None
    duration_seconds: Optional[float] = None
    error: Optional[Dict[str, Any]] = field(default=None, repr=False)

    @property
    def succeeded(self) -> bool:
        return self.stage == IngestionStage.RESOLVED


class IngestionOrchestrator:
    """Wire fetch, reconcile, persist, fan-out and health bookkeeping."""

    def __init__(
        self,
        podcast_repo: PodcastRepository,
        episode_repo: EpisodeRepository,
        fetcher: FeedFetcher,
        batcher: ActivityBatcher,
        enrichment: EnrichmentScheduler,
        health: Optional[ScrapeHealthTracker] = None,
        reconciler: Optional[EpisodeReconciler] = None,
        feed_group: str = "podcast",
    ):
        """Initialize the orchestrator.

        Args:
            podcast_repo: Podcast storage
            episode_repo: Episode storage
            fetcher: Feed fetch/parse adapter
            batcher: Activity publisher
            enrichment: Enrichment job scheduler
            health: Scrape health tracker (built from the repositories when omitted)
            reconciler: Episode reconciler
            feed_group: Activity feed group for podcast feeds
        """
        self.podcast_repo = podcast_repo
        self.episode_repo = episode_repo
        self.fetcher = fetcher
        self.batcher = batcher
        self.enrichment = enrichment
        self.health = health or ScrapeHealthTracker(podcast_repo, episode_repo)
        self.reconciler = reconciler or EpisodeReconciler()
        self.feed_group = feed_group
        self.logger = get_logger_for_component("pipeline")

    async def handle_job(self, job: Job) -> IngestionResult:
        """Queue handler: ingest the podcast named by the job payload."""
        return await self.ingest(job.data, job_id=job.id)

    async def ingest(self, payload: Any, job_id: Optional[str] = None) -> IngestionResult:
        """Run one ingestion attempt.

        Args:
            payload: ``{"podcast": <id>, "url": <feed url>}`` or a ``PodcastJob``
            job_id: Queue job identifier, for logging

        Returns:
            Result of the successful attempt

        Raises:
            IngestionError: When any stage fails, after the failure is recorded
            asyncio.CancelledError: When the attempt is cancelled, after the
                failure is recorded
        """
        podcast_job = PodcastJob.from_payload(payload)
        result = IngestionResult(podcast_id=podcast_job.podcast, feed_url=podcast_job.url)
        logger = get_logger_for_component(
            "pipeline", podcast_id=podcast_job.podcast, job_id=job_id
        )

        perf = PerformanceLogger(logger, "podcast ingestion", feed_url=podcast_job.url)
        try:
            with perf:
                await self._run(podcast_job, result)
        except IngestionError as e:
            result.duration_seconds = perf.duration
            self._fail(result, e, logger)
            raise
        except asyncio.CancelledError:
            result.duration_seconds = perf.duration
            self._fail(
                result,
                IngestionError(
                    _STAGE_ERROR_KINDS.get(result.stage, ErrorKind.FETCH),
                    f"Ingestion cancelled during {result.stage.value}",
                    podcast_id=result.podcast_id,
                    feed_url=result.feed_url,
                    error_code=ErrorCode.QUEUE_JOB_TIMEOUT,
                ),
                logger,
            )
            raise

        result.stage = IngestionStage.RESOLVED
        result.duration_seconds = perf.duration
        logger.info(
            f"Ingested {result.podcast_id}: {result.created} new, {result.updated} updated, "
            f"{result.activity_batches} activity batches, {result.enrichment_jobs} enrichment jobs",
            extra={"post_count": result.post_count},
        )
        return result

    async def _run(self, podcast_job: PodcastJob, result: IngestionResult) -> None:
        with self._stage(result, IngestionStage.RECEIVED):
            podcast, url = self._validate(podcast_job)

        with self._stage(result, IngestionStage.FETCHING):
            document = await self.fetcher.parse_feed(url)
            result.entries = len(document.entries)

        with self._stage(result, IngestionStage.RECONCILING):
            stored = self.episode_repo.find_episodes_by_podcast(podcast.id)
            diff = self.reconciler.reconcile(podcast.id, document, stored)
            result.updated = len(diff.updated_episodes)
            result.unchanged = diff.unchanged
            result.skipped = diff.skipped

        with self._stage(result, IngestionStage.PERSISTING):
            created = self.episode_repo.upsert_episodes(diff.to_upsert)
            result.created = len(created)
            if document.title and not podcast.title:
                self.podcast_repo.update_podcast(podcast.id, title=document.title)
            pending = self.episode_repo.find_pending_fanout(podcast.id)

        with self._stage(result, IngestionStage.PUBLISHING_ACTIVITIES):
            unpublished = [episode for episode in pending if episode.activity_sent_at is None]
            result.activity_batches = await self.batcher.publish(
                podcast_feed_key(podcast.id, self.feed_group), unpublished
            )
            result.activities_published = len(unpublished)

        with self._stage(result, IngestionStage.SCHEDULING_ENRICHMENT):
            unqueued = [episode for episode in pending if episode.enrichment_queued_at is None]
            result.enrichment_jobs = await self.enrichment.schedule(unqueued)

        with self._stage(result, IngestionStage.RECORDING_HEALTH):
            result.post_count = self.health.record_success(podcast.id)

    def _validate(self, podcast_job: PodcastJob) -> Tuple[Podcast, str]:
        """Check the payload before any network call."""
        podcast_id = validate_podcast_id(podcast_job.podcast)
        url = URLValidator.validate_feed_url(podcast_job.url)

        podcast = self.podcast_repo.get_podcast(podcast_id)
        if podcast is None:
            raise IngestionError(
                ErrorKind.VALIDATION,
                f"Unknown podcast {podcast_id}",
                podcast_id=podcast_id,
                feed_url=url,
                error_code=ErrorCode.VALIDATION_NOT_FOUND,
            )
        return podcast, url

    @contextmanager
    def _stage(self, result: IngestionResult, stage: IngestionStage) -> Iterator[None]:
        """Tag anything raised inside the block with the stage's error kind."""
        result.stage = stage
        try:
            yield
        except Exception as e:
            raise IngestionError.wrap(
                _STAGE_ERROR_KINDS[stage],
                e,
                podcast_id=result.podcast_id,
                feed_url=result.feed_url,
            )

    def _fail(self, result: IngestionResult, error: IngestionError, logger) -> None:
        """Record a failed attempt; a failing health write never masks the stage error."""
        failed_stage = result.stage
        result.stage = IngestionStage.REJECTED
        result.error = error.to_dict()

        logger.warning(
            f"Ingestion failed during {failed_stage.value} ({error.kind.value}): {error}",
            extra={"error": result.error},
        )

        if not result.podcast_id or not str(result.podcast_id).strip():
            logger.error("Cannot record scrape failure for a job without a podcast id")
            return

        try:
            self.health.record_failure(str(result.podcast_id).strip())
        except Exception as health_error:
            logger.error(
                f"Failed to record scrape failure for {result.podcast_id}: {health_error}"
            )
