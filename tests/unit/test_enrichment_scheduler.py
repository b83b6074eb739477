"""
Tests for enrichment job scheduling.
"""

from unittest.mock import Mock, patch

import pytest

from castfeed.database.models import Episode
from castfeed.jobs.job_queue import JobQueue, JobState
from castfeed.processing.enrichment_scheduler import EnrichmentScheduler, enrichment_job_options
from castfeed.utils.exceptions import CastFeedError, DatabaseError, IngestionError, ErrorKind, ErrorCode


def make_episodes(count):
    return [
        Episode(podcast_id="podcast-1", unique_key=f"guid-{i}", link=f"https://example.com/ep/{i}")
        for i in range(count)
    ]


class TestEnrichmentScheduler:

    def test_job_options(self):
        opts = enrichment_job_options()
        assert opts.attempts == 1
        assert opts.remove_on_complete is True
        assert opts.remove_on_fail is True

    @pytest.mark.asyncio
    async def test_one_job_per_episode(self):
        queue = JobQueue("og")
        repo = Mock()
        episodes = make_episodes(3)

        accepted = await EnrichmentScheduler(queue, repo).schedule(episodes)

        assert accepted == 3
        jobs = queue.get_jobs(JobState.WAITING)
        assert [job.data for job in jobs] == [
            {"type": "episode", "url": f"https://example.com/ep/{i}"} for i in range(3)
        ]
        assert all(job.opts.remove_on_complete and job.opts.remove_on_fail for job in jobs)
        repo.mark_enrichment_queued.assert_called_once_with([e.id for e in episodes])

    @pytest.mark.asyncio
    async def test_rejected_submission_does_not_stop_others(self):
        queue = JobQueue("og")
        repo = Mock()
        episodes = make_episodes(3)
        real_add = queue.add
        calls = []

        async def flaky_add(data, opts=None):
            calls.append(data["url"])
            if len(calls) == 2:
                raise CastFeedError("queue full", error_code=ErrorCode.QUEUE_SUBMIT_FAILED, recoverable=True)
            return await real_add(data, opts)

        with patch.object(queue, "add", side_effect=flaky_add):
            with pytest.raises(IngestionError) as exc_info:
                await EnrichmentScheduler(queue, repo).schedule(episodes)

        assert exc_info.value.kind == ErrorKind.SCHEDULE
        assert exc_info.value.context["failed"] == 1
        assert exc_info.value.context["accepted"] == 2
        assert len(calls) == 3
        assert len(queue.get_jobs(JobState.WAITING)) == 2
        repo.mark_enrichment_queued.assert_called_once_with([episodes[0].id, episodes[2].id])

    @pytest.mark.asyncio
    async def test_stamp_failure_does_not_stop_submissions(self):
        queue = JobQueue("og")
        repo = Mock()
        repo.mark_enrichment_queued.side_effect = DatabaseError("database is locked")

        with pytest.raises(IngestionError) as exc_info:
            await EnrichmentScheduler(queue, repo).schedule(make_episodes(3))

        assert exc_info.value.kind == ErrorKind.SCHEDULE
        assert isinstance(exc_info.value.cause, DatabaseError)
        assert exc_info.value.context["accepted"] == 3
        assert len(queue.get_jobs(JobState.WAITING)) == 3
        repo.mark_enrichment_queued.assert_called_once()

    @pytest.mark.asyncio
    async def test_closed_queue_fails_every_submission(self):
        queue = JobQueue("og")
        await queue.close()

        with pytest.raises(IngestionError) as exc_info:
            await EnrichmentScheduler(queue).schedule(make_episodes(2))

        assert exc_info.value.context["failed"] == 2

    @pytest.mark.asyncio
    async def test_nothing_to_schedule(self):
        queue = JobQueue("og")
        assert await EnrichmentScheduler(queue).schedule([]) == 0
        assert queue.counts()[JobState.WAITING.value] == 0
