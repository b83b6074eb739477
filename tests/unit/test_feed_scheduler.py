"""
Tests for recurring feed scheduling.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from castfeed.config.settings import SchedulerSettings
from castfeed.database.models import Podcast
from castfeed.jobs.job_queue import JobOptions, JobQueue, JobState
from castfeed.scheduler.feed_scheduler import FeedScheduler
from castfeed.utils.exceptions import DatabaseError

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def seeded_repo(podcast_repo):
    podcast_repo.create_podcast(Podcast(id="due", feed_url="https://a.example.com/rss"))
    podcast_repo.create_podcast(Podcast(
        id="fresh", feed_url="https://b.example.com/rss", last_scraped_at=NOW - timedelta(minutes=5)
    ))
    podcast_repo.create_podcast(Podcast(
        id="stale", feed_url="https://c.example.com/rss", last_scraped_at=NOW - timedelta(hours=1)
    ))
    return podcast_repo


class TestFeedScheduler:

    @pytest.mark.asyncio
    async def test_enqueues_due_podcasts(self, seeded_repo):
        queue = JobQueue("podcast")
        scheduler = FeedScheduler(seeded_repo, queue, SchedulerSettings(scrape_interval_minutes=15))

        enqueued = await scheduler.enqueue_due_podcasts(NOW)

        assert enqueued == ["due", "stale"]
        assert [job.data for job in queue.get_jobs()] == [
            {"podcast": "due", "url": "https://a.example.com/rss"},
            {"podcast": "stale", "url": "https://c.example.com/rss"},
        ]

    @pytest.mark.asyncio
    async def test_pending_podcast_is_not_enqueued_twice(self, seeded_repo):
        queue = JobQueue("podcast")
        scheduler = FeedScheduler(seeded_repo, queue, SchedulerSettings())

        await scheduler.enqueue_due_podcasts(NOW)
        second_pass = await scheduler.enqueue_due_podcasts(NOW)

        assert second_pass == []
        assert len(queue.get_jobs(JobState.WAITING)) == 2

    @pytest.mark.asyncio
    async def test_job_options_are_applied(self, seeded_repo):
        queue = JobQueue("podcast")
        options = JobOptions(attempts=4, backoff_delay=2.0)
        scheduler = FeedScheduler(seeded_repo, queue, SchedulerSettings(), job_options=options)

        await scheduler.enqueue_due_podcasts(NOW)

        assert all(job.opts.attempts == 4 for job in queue.get_jobs())

    @pytest.mark.asyncio
    async def test_pass_limit(self, seeded_repo):
        queue = JobQueue("podcast")
        scheduler = FeedScheduler(seeded_repo, queue, SchedulerSettings(max_jobs_per_pass=1))

        assert await scheduler.enqueue_due_podcasts(NOW) == ["due"]

    @pytest.mark.asyncio
    async def test_run_forever_survives_failed_pass(self):
        repo = Mock()
        repo.list_due_podcasts.side_effect = DatabaseError("database is locked")
        scheduler = FeedScheduler(repo, JobQueue("podcast"), SchedulerSettings(poll_interval_seconds=1))

        task = asyncio.create_task(scheduler.run_forever())
        await asyncio.sleep(0.05)
        scheduler.stop()
        await asyncio.wait_for(task, timeout=1)

        assert repo.list_due_podcasts.call_count >= 1
