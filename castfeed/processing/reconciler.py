"""
Episode Reconciler
==================

Diffs a parsed feed against the episodes already stored for a podcast.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Set

from ..database.models import Episode
from ..ingestion.feed_fetcher import FeedDocument, FeedEntry
from ..utils.logging import get_logger_for_component


@dataclass
class ReconcileResult:
    """Outcome of comparing a feed with stored state."""
    new_episodes: List[Episode] = field(default_factory=list)
    updated_episodes: List[Episode] = field(default_factory=list)
    unchanged: int = 0
    skipped: int = 0

    @property
    def to_upsert(self) -> List[Episode]:
        return self.new_episodes + self.updated_episodes

    @property
    def is_empty(self) -> bool:
        return not self.new_episodes and not self.updated_episodes


class EpisodeReconciler:
    """Compute episodes to create and episodes to refresh."""

    def __init__(self):
        self.logger = get_logger_for_component("reconciler")

    def reconcile(
        self,
        podcast_id: str,
        document: FeedDocument,
        stored: Mapping[str, Episode],
    ) -> ReconcileResult:
        """Compare feed entries with stored episodes.

        Args:
            podcast_id: Podcast owning the feed
            document: Parsed feed
            stored: Stored episodes keyed by unique key

        Returns:
            New episodes in feed order, changed episodes with their stored
            ids, and counts of unchanged and skipped entries
        """
        result = ReconcileResult()
        seen: Set[str] = set()

        for entry in document.entries:
            key = entry.unique_key
            if not key or not entry.link:
                result.skipped += 1
                continue

            # First occurrence of a key wins
            if key in seen:
                result.skipped += 1
                continue
            seen.add(key)

            existing = stored.get(key)
            if existing is None:
                result.new_episodes.append(self._to_episode(podcast_id, key, entry))
                continue

            candidate = self._to_episode(podcast_id, key, entry, episode_id=existing.id)
            if candidate.metadata_differs(existing):
                result.updated_episodes.append(candidate)
            else:
                result.unchanged += 1

        self.logger.debug(
            f"Reconciled {len(document.entries)} entries for {podcast_id}: "
            f"{len(result.new_episodes)} new, {len(result.updated_episodes)} updated, "
            f"{result.unchanged} unchanged, {result.skipped} skipped"
        )
        return result

    def _to_episode(
        self, podcast_id: str, key: str, entry: FeedEntry, episode_id: str = None
    ) -> Episode:
        fields: Dict = dict(
            podcast_id=podcast_id,
            unique_key=key,
            guid=entry.guid,
            title=entry.title,
            link=entry.link,
            enclosure_url=entry.enclosure_url,
            description=entry.description,
            image_url=entry.image_url,
            duration=entry.duration,
            published_at=entry.published_at,
        )
        if episode_id:
            fields["id"] = episode_id
        return Episode(**fields)
