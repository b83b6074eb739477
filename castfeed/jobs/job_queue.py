"""
CastFeed Job Queue
==================

In-process asyncio job queue with at-least-once delivery. Each queue owns a
single handler passed to its constructor. Failed attempts are retried with the
job's backoff settings while the error is retryable and attempts remain.

A queue given a job store writes every job before ``add`` returns and keeps
the stored row in step with the job until the job is removed. ``restore``
reloads unfinished jobs after a restart.
"""

import asyncio
import time
import uuid
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Deque, Dict, List, Optional

from ..recovery.retry_logic import RetryConfig, RetryStrategy, calculate_delay
from ..utils.exceptions import CastFeedError, ErrorCode, is_retryable_error
from ..utils.logging import get_logger_for_component

if TYPE_CHECKING:
    from ..storage.job_repository import JobRepository


class JobState(str, Enum):
    """Lifecycle states of a queued job."""
    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


PENDING_STATES = (JobState.WAITING, JobState.DELAYED, JobState.ACTIVE)


@dataclass
class JobOptions:
    """Per-job delivery options."""
    attempts: int = 1
    backoff_strategy: RetryStrategy = RetryStrategy.FIXED_DELAY
    backoff_delay: float = 0.0
    max_backoff_delay: float = 300.0
    remove_on_complete: bool = False
    remove_on_fail: bool = False
    timeout: Optional[float] = None

    def retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_attempts=self.attempts,
            strategy=self.backoff_strategy,
            base_delay=self.backoff_delay,
            max_delay=self.max_backoff_delay,
        )


@dataclass
class Job:
    """A unit of work and its delivery bookkeeping."""
    id: str
    queue_name: str
    data: Any
    opts: JobOptions
    attempts_made: int = 0
    state: JobState = JobState.WAITING
    failed_reason: Optional[str] = None
    return_value: Any = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None


JobHandler = Callable[[Job], Awaitable[Any]]


class JobQueue:
    """Named asyncio job queue bound to one handler."""

    def __init__(
        self,
        name: str,
        handler: Optional[JobHandler] = None,
        default_options: Optional[JobOptions] = None,
        store: Optional["JobRepository"] = None,
    ):
        """Initialize job queue.

        Args:
            name: Queue name used in logs and job records
            handler: Coroutine function called with each ``Job``; a queue
                without a handler only accepts jobs
            default_options: Options applied when ``add`` gets none
            store: Job repository that persists jobs until they are removed
        """
        self.name = name
        self.handler = handler
        self.default_options = default_options or JobOptions()
        self.store = store
        self.logger = get_logger_for_component("job_queue")

        self._jobs: Dict[str, Job] = {}
        self._ready: Deque[str] = deque()
        self._delayed: Dict[str, float] = {}
        self._wakeup = asyncio.Event()
        self._workers: List[asyncio.Task] = []
        self._closed = False

    async def add(self, data: Any, opts: Optional[JobOptions] = None) -> Job:
        """Submit a job.

        Raises:
            CastFeedError: If the queue is closed
            DatabaseError: If the job store cannot write the job
        """
        if self._closed:
            raise CastFeedError(
                f"Queue {self.name} is closed",
                error_code=ErrorCode.QUEUE_SUBMIT_FAILED,
                recoverable=True,
            )

        job = Job(
            id=str(uuid.uuid4()),
            queue_name=self.name,
            data=data,
            opts=replace(opts) if opts else replace(self.default_options),
        )
        if self.store is not None:
            self.store.save_job(job)

        self._jobs[job.id] = job
        self._ready.append(job.id)
        self._wakeup.set()

        self.logger.debug(f"Queued job {job.id} on {self.name}")
        return job

    def restore(self) -> int:
        """Reload unfinished jobs from the store as waiting jobs.

        Jobs that were active when the process stopped are delivered again.

        Returns:
            Number of jobs restored
        """
        if self.store is None:
            return 0

        restored = 0
        for job in self.store.load_unfinished(self.name):
            if job.id in self._jobs:
                continue
            job.state = JobState.WAITING
            self._jobs[job.id] = job
            self._ready.append(job.id)
            restored += 1

        if restored:
            self._wakeup.set()
            self.logger.info(f"Restored {restored} jobs on {self.name}")
        return restored

    def get_job(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def get_jobs(self, *states: JobState) -> List[Job]:
        """Retained jobs in submission order, optionally filtered by state."""
        jobs = list(self._jobs.values())
        if states:
            jobs = [job for job in jobs if job.state in states]
        return jobs

    def has_pending(self, predicate: Callable[[Any], bool]) -> bool:
        """Whether a waiting, delayed or active job's data matches the predicate."""
        return any(
            predicate(job.data) for job in self._jobs.values() if job.state in PENDING_STATES
        )

    def counts(self) -> Dict[str, int]:
        result = {state.value: 0 for state in JobState}
        for job in self._jobs.values():
            result[job.state.value] += 1
        return result

    async def process_next(self) -> Optional[Job]:
        """Run one ready job through the handler.

        Returns:
            The processed job, or None when nothing is ready

        Raises:
            CastFeedError: If the queue has no handler
        """
        if self.handler is None:
            raise CastFeedError(
                f"Queue {self.name} has no handler",
                error_code=ErrorCode.QUEUE_NO_HANDLER,
            )

        job = self._take_next()
        if job is None:
            return None

        await self._run_job(job)
        return job

    async def run_until_empty(self) -> int:
        """Process jobs, waiting out backoff delays, until none are pending.

        Returns:
            Number of attempts made
        """
        processed = 0
        while True:
            job = await self.process_next()
            if job is not None:
                processed += 1
                continue

            delay = self._seconds_until_next_delayed()
            if delay is None:
                return processed
            await asyncio.sleep(delay)

    async def run(self, concurrency: int = 1) -> None:
        """Start worker tasks and wait until the queue is closed."""
        if self.handler is None:
            raise CastFeedError(
                f"Queue {self.name} has no handler",
                error_code=ErrorCode.QUEUE_NO_HANDLER,
            )

        self.logger.info(f"Starting {concurrency} workers on queue {self.name}")
        self._workers = [
            asyncio.create_task(self._worker_loop(index)) for index in range(concurrency)
        ]
        await asyncio.gather(*self._workers)

    async def close(self) -> None:
        """Stop accepting jobs and let workers finish their current job."""
        self._closed = True
        self._wakeup.set()
        if self._workers:
            await asyncio.gather(*self._workers)
            self._workers = []
        self.logger.info(f"Queue {self.name} closed", extra={"counts": self.counts()})

    async def _worker_loop(self, index: int) -> None:
        while not self._closed:
            job = self._take_next()
            if job is None:
                self._wakeup.clear()
                await self._wait_for_work()
                continue
            await self._run_job(job)

    async def _wait_for_work(self) -> None:
        try:
            await asyncio.wait_for(self._wakeup.wait(), self._seconds_until_next_delayed())
        except asyncio.TimeoutError:
            pass

    def _take_next(self) -> Optional[Job]:
        now = time.monotonic()
        for job_id, available_at in sorted(self._delayed.items(), key=lambda item: item[1]):
            if available_at > now:
                break
            del self._delayed[job_id]
            self._jobs[job_id].state = JobState.WAITING
            self._ready.append(job_id)

        while self._ready:
            job = self._jobs.get(self._ready.popleft())
            if job is not None and job.state == JobState.WAITING:
                return job
        return None

    def _seconds_until_next_delayed(self) -> Optional[float]:
        if not self._delayed:
            return None
        return max(0.0, min(self._delayed.values()) - time.monotonic())

    async def _run_job(self, job: Job) -> None:
        job.state = JobState.ACTIVE
        job.attempts_made += 1
        self._persist(job)

        try:
            if job.opts.timeout:
                result = await asyncio.wait_for(self.handler(job), job.opts.timeout)
            else:
                result = await self.handler(job)
        except asyncio.TimeoutError as e:
            error = CastFeedError(
                f"Job timed out after {job.opts.timeout}s",
                error_code=ErrorCode.QUEUE_JOB_TIMEOUT,
                recoverable=True,
            )
            error.__cause__ = e
            self._handle_failure(job, error)
        except asyncio.CancelledError:
            # Interrupted deliveries go back to the front of the queue
            job.state = JobState.WAITING
            job.attempts_made -= 1
            self._ready.appendleft(job.id)
            self._persist(job)
            raise
        except Exception as e:
            self._handle_failure(job, e)
        else:
            self._handle_success(job, result)

    def _handle_success(self, job: Job, result: Any) -> None:
        job.state = JobState.COMPLETED
        job.return_value = result
        job.finished_at = datetime.now(timezone.utc)
        self.logger.debug(f"Job {job.id} on {self.name} completed")

        if job.opts.remove_on_complete:
            self._remove(job)
        else:
            self._persist(job)

    def _handle_failure(self, job: Job, error: BaseException) -> None:
        job.failed_reason = str(error)

        if job.attempts_made < job.opts.attempts and is_retryable_error(error):
            delay = calculate_delay(job.attempts_made, job.opts.retry_config())
            self.logger.warning(
                f"Job {job.id} on {self.name} failed (attempt {job.attempts_made}/"
                f"{job.opts.attempts}), retrying in {delay:.1f}s: {error}"
            )
            if delay > 0:
                job.state = JobState.DELAYED
                self._delayed[job.id] = time.monotonic() + delay
            else:
                job.state = JobState.WAITING
                self._ready.append(job.id)
            self._persist(job)
            self._wakeup.set()
            return

        job.state = JobState.FAILED
        job.finished_at = datetime.now(timezone.utc)
        self.logger.error(
            f"Job {job.id} on {self.name} failed after {job.attempts_made} attempts: {error}"
        )

        if job.opts.remove_on_fail:
            self._remove(job)
        else:
            self._persist(job)

    def _persist(self, job: Job) -> None:
        if self.store is None:
            return
        try:
            self.store.save_job(job)
        except CastFeedError as e:
            # The in-memory job stays authoritative; a restart redelivers it
            self.logger.error(f"Could not persist job {job.id} on {self.name}: {e}")

    def _remove(self, job: Job) -> None:
        self._jobs.pop(job.id, None)
        if self.store is None:
            return
        try:
            self.store.delete_job(job.id)
        except CastFeedError as e:
            self.logger.error(f"Could not delete job {job.id} on {self.name}: {e}")
