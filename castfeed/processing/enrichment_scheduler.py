"""
Enrichment Scheduler
====================

Submits one page-preview enrichment job per episode link.
"""

from typing import List, Optional, Sequence

from ..database.models import EnrichmentJob, Episode
from ..jobs.job_queue import JobOptions, JobQueue
from ..storage.episode_repository import EpisodeRepository
from ..utils.exceptions import DatabaseError, IngestionError, ErrorKind
from ..utils.logging import get_logger_for_component


def enrichment_job_options() -> JobOptions:
    """Options for enrichment jobs: single attempt, never retained."""
    return JobOptions(attempts=1, remove_on_complete=True, remove_on_fail=True)


class EnrichmentScheduler:
    """Enqueue enrichment jobs for episodes."""

    def __init__(self, queue: JobQueue, episode_repo: Optional[EpisodeRepository] = None):
        self.queue = queue
        self.episode_repo = episode_repo
        self.logger = get_logger_for_component("enrichment_scheduler")

    async def schedule(self, episodes: Sequence[Episode]) -> int:
        """Submit one job per episode, in order.

        A rejected submission does not stop the remaining ones. Accepted jobs
        are stamped on their episodes in one write after every submission
        was tried.

        Returns:
            Number of jobs accepted

        Raises:
            IngestionError: ``SCHEDULE`` if any submission or the stamp failed
        """
        failures: List[Exception] = []
        accepted_ids: List[str] = []

        for episode in episodes:
            payload = EnrichmentJob(url=episode.link).to_payload()
            try:
                await self.queue.add(payload, enrichment_job_options())
            except Exception as e:
                self.logger.warning(f"Failed to enqueue enrichment for {episode.link}: {e}")
                failures.append(e)
                continue
            accepted_ids.append(episode.id)

        if self.episode_repo is not None and accepted_ids:
            try:
                self.episode_repo.mark_enrichment_queued(accepted_ids)
            except DatabaseError as e:
                self.logger.error(f"Failed to stamp {len(accepted_ids)} queued enrichment jobs: {e}")
                failures.append(e)

        accepted = len(accepted_ids)
        if failures:
            raise IngestionError(
                ErrorKind.SCHEDULE,
                f"{len(failures)} enrichment scheduling errors for {len(episodes)} episodes",
                cause=failures[0],
                context={"failed": len(failures), "accepted": accepted},
            )

        if accepted:
            self.logger.info(f"Scheduled {accepted} enrichment jobs on {self.queue.name}")
        return accepted
