"""
Job Repository
==============

SQLite persistence for queue jobs. A queue backed by this repository writes
each job before ``add`` returns and deletes it when the job is removed, so
waiting work survives a worker restart.
"""

import json
import sqlite3
from dataclasses import asdict
from datetime import datetime
from typing import List

from ..database.connection import DatabaseConnection
from ..jobs.job_queue import Job, JobOptions, JobState, PENDING_STATES
from ..recovery.retry_logic import RetryStrategy
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, ErrorCode
from .podcast_repository import to_db_timestamp


class JobRepository:
    """Repository for persisted queue jobs."""

    def __init__(self, db_connection: DatabaseConnection):
        self.db = db_connection
        self.logger = get_logger_for_component("job_repository")

    def save_job(self, job: Job) -> None:
        """Insert a job or update its delivery state.

        Raises:
            DatabaseError: If the write fails or the payload is not JSON
        """
        try:
            data = json.dumps(job.data)
            opts = json.dumps(self._options_to_dict(job.opts))
        except (TypeError, ValueError) as e:
            raise DatabaseError(
                f"Job {job.id} payload cannot be stored: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

        try:
            with self.db.get_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO queue_jobs (
                        id, queue_name, data, opts, state, attempts_made,
                        failed_reason, created_at, finished_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        state = excluded.state,
                        attempts_made = excluded.attempts_made,
                        failed_reason = excluded.failed_reason,
                        finished_at = excluded.finished_at
                """,
                    (
                        job.id,
                        job.queue_name,
                        data,
                        opts,
                        job.state.value,
                        job.attempts_made,
                        job.failed_reason,
                        to_db_timestamp(job.created_at),
                        to_db_timestamp(job.finished_at),
                    ),
                )
                conn.commit()
        except sqlite3.Error as e:
            self.logger.error(f"Failed to save job {job.id}: {e}")
            raise DatabaseError(
                f"Failed to save job {job.id}: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

    def delete_job(self, job_id: str) -> bool:
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute("DELETE FROM queue_jobs WHERE id = ?", (job_id,))
                conn.commit()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to delete job {job_id}: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e
        return cursor.rowcount > 0

    def load_unfinished(self, queue_name: str) -> List[Job]:
        """Waiting, delayed and active jobs of a queue in submission order.

        Raises:
            DatabaseError: If the query fails
        """
        states = [state.value for state in PENDING_STATES]
        marks = ", ".join("?" for _ in states)
        try:
            with self.db.get_connection() as conn:
                rows = conn.execute(
                    f"""
                    SELECT * FROM queue_jobs
                    WHERE queue_name = ? AND state IN ({marks})
                    ORDER BY rowid
                """,
                    (queue_name, *states),
                ).fetchall()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to load jobs for queue {queue_name}: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

        return [self._row_to_job(row) for row in rows]

    def count_jobs(self, queue_name: str) -> int:
        with self.db.get_connection() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM queue_jobs WHERE queue_name = ?", (queue_name,)
            ).fetchone()
        return row[0]

    def _options_to_dict(self, opts: JobOptions) -> dict:
        values = asdict(opts)
        values["backoff_strategy"] = opts.backoff_strategy.value
        return values

    def _row_to_job(self, row) -> Job:
        opts = json.loads(row["opts"])
        opts["backoff_strategy"] = RetryStrategy(opts["backoff_strategy"])

        return Job(
            id=row["id"],
            queue_name=row["queue_name"],
            data=json.loads(row["data"]),
            opts=JobOptions(**opts),
            attempts_made=row["attempts_made"],
            state=JobState(row["state"]),
            failed_reason=row["failed_reason"],
            created_at=datetime.fromisoformat(row["created_at"]),
            finished_at=(
                datetime.fromisoformat(row["finished_at"]) if row["finished_at"] else None
            ),
        )
