"""
Episode Repository
==================

Repository for episode rows: keyed lookups for reconciliation, idempotent
upserts by ``(podcast_id, unique_key)`` and the fan-out bookkeeping that makes
activity publication and enrichment scheduling resumable.
"""

import sqlite3
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from ..database.connection import DatabaseConnection
from ..database.models import Episode, EPISODE_METADATA_FIELDS, utc_now
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, ErrorCode
from .podcast_repository import to_db_timestamp

_INSERT_COLUMNS = (
    "id",
    "podcast_id",
    "unique_key",
    *EPISODE_METADATA_FIELDS,
    "created_at",
    "activity_sent_at",
    "enrichment_queued_at",
    "fanout_pending",
)


class EpisodeRepository:
    """Repository for managing episode data in the database."""

    def __init__(self, db_connection: DatabaseConnection):
        """Initialize episode repository.

        Args:
            db_connection: Database connection manager
        """
        self.db = db_connection
        self.logger = get_logger_for_component("episode_repository")

    def find_episodes_by_podcast(self, podcast_id: str) -> Dict[str, Episode]:
        """Stored episodes of a podcast keyed by unique key.

        Raises:
            DatabaseError: If the query fails
        """
        try:
            with self.db.get_connection() as conn:
                rows = conn.execute(
                    "SELECT * FROM episodes WHERE podcast_id = ? ORDER BY rowid",
                    (podcast_id,),
                ).fetchall()
        except sqlite3.Error as e:
            self.logger.error(f"Failed to load episodes for {podcast_id}: {e}")
            raise DatabaseError(
                f"Failed to load episodes for podcast {podcast_id}: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

        return {row["unique_key"]: self._row_to_episode(row) for row in rows}

    def upsert_episodes(self, episodes: Sequence[Episode]) -> List[Episode]:
        """Insert absent episodes and refresh the metadata of existing ones.

        Runs in one transaction. An episode whose ``(podcast_id, unique_key)``
        already exists keeps its stored id and bookkeeping columns.

        Returns:
            The episodes that were created, in input order

        Raises:
            DatabaseError: If the transaction fails
        """
        if not episodes:
            return []

        placeholders = ", ".join("?" for _ in _INSERT_COLUMNS)
        insert_sql = (
            f"INSERT OR IGNORE INTO episodes ({', '.join(_INSERT_COLUMNS)}) "
            f"VALUES ({placeholders})"
        )
        update_sql = (
            "UPDATE episodes SET "
            + ", ".join(f"{name} = ?" for name in EPISODE_METADATA_FIELDS)
            + " WHERE podcast_id = ? AND unique_key = ?"
        )

        created: List[Episode] = []
        refreshed = 0

        try:
            with self.db.transaction() as conn:
                for episode in episodes:
                    cursor = conn.execute(insert_sql, self._insert_params(episode))
                    if cursor.rowcount == 1:
                        created.append(episode)
                        continue

                    conn.execute(
                        update_sql,
                        (
                            *self._metadata_params(episode),
                            episode.podcast_id,
                            episode.unique_key,
                        ),
                    )
                    refreshed += 1
        except sqlite3.Error as e:
            self.logger.error(f"Episode upsert failed: {e}")
            raise DatabaseError(
                f"Failed to upsert {len(episodes)} episodes: {e}",
                error_code=ErrorCode.DATABASE_TRANSACTION,
            ) from e

        self.logger.debug(
            f"Upserted {len(episodes)} episodes ({len(created)} created, {refreshed} refreshed)"
        )
        return created

    def count_for_podcast(self, podcast_id: str) -> int:
        try:
            with self.db.get_connection() as conn:
                row = conn.execute(
                    "SELECT COUNT(*) FROM episodes WHERE podcast_id = ?", (podcast_id,)
                ).fetchone()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to count episodes for {podcast_id}: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e
        return row[0]

    def find_pending_fanout(self, podcast_id: str) -> List[Episode]:
        """Ingested episodes still missing an acknowledged activity or a queued enrichment job.

        Only rows created by ``upsert_episodes`` with ``fanout_pending`` set
        are considered; rows written by other paths are never fanned out.
        Returned in insertion order so that a clean pass yields the newly
        created episodes in feed order.
        """
        try:
            with self.db.get_connection() as conn:
                rows = conn.execute(
                    """
                    SELECT * FROM episodes
                    WHERE podcast_id = ?
                      AND fanout_pending = 1
                      AND (activity_sent_at IS NULL OR enrichment_queued_at IS NULL)
                    ORDER BY rowid
                """,
                    (podcast_id,),
                ).fetchall()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to load pending fan-out for {podcast_id}: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

        return [self._row_to_episode(row) for row in rows]

    def mark_activities_sent(
        self, episode_ids: Sequence[str], sent_at: Optional[datetime] = None
    ) -> int:
        """Stamp ``activity_sent_at`` for an acknowledged batch."""
        if not episode_ids:
            return 0
        return self._stamp("activity_sent_at", episode_ids, sent_at)

    def mark_enrichment_queued(
        self, episode_ids: Sequence[str], queued_at: Optional[datetime] = None
    ) -> int:
        """Stamp ``enrichment_queued_at`` for episodes whose jobs were accepted."""
        if not episode_ids:
            return 0
        return self._stamp("enrichment_queued_at", episode_ids, queued_at)

    def update_preview(
        self,
        link: str,
        title: Optional[str],
        image_url: Optional[str],
        enriched_at: Optional[datetime] = None,
    ) -> int:
        """Store the page preview on every episode that links to ``link``.

        Returns:
            Number of episodes updated

        Raises:
            DatabaseError: If the update fails
        """
        query = (
            "UPDATE episodes SET preview_title = ?, preview_image_url = ?, enriched_at = ? "
            "WHERE link = ?"
        )
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(
                    query, (title, image_url, to_db_timestamp(enriched_at or utc_now()), link)
                )
                conn.commit()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to store preview for {link}: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
                query=query,
            ) from e
        return cursor.rowcount

    def _stamp(self, column: str, episode_ids: Sequence[str], at: Optional[datetime]) -> int:
        marks = ", ".join("?" for _ in episode_ids)
        query = f"UPDATE episodes SET {column} = ? WHERE id IN ({marks})"
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(
                    query, (to_db_timestamp(at or utc_now()), *episode_ids)
                )
                conn.commit()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to update {column}: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
                query=query,
            ) from e
        return cursor.rowcount

    def _insert_params(self, episode: Episode) -> tuple:
        return (
            episode.id,
            episode.podcast_id,
            episode.unique_key,
            *self._metadata_params(episode),
            to_db_timestamp(episode.created_at or utc_now()),
            to_db_timestamp(episode.activity_sent_at),
            to_db_timestamp(episode.enrichment_queued_at),
            1 if episode.fanout_pending else 0,
        )

    def _metadata_params(self, episode: Episode) -> tuple:
        return tuple(
            to_db_timestamp(value) if isinstance(value, datetime) else value
            for value in (getattr(episode, name) for name in EPISODE_METADATA_FIELDS)
        )

    def _row_to_episode(self, row) -> Episode:
        return Episode(**{key: row[key] for key in row.keys()})
