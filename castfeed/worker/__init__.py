"""
CastFeed Worker
===============

Process bootstrap for the podcast ingestion worker.
"""

from .podcast_worker import PodcastWorker

__all__ = ["PodcastWorker"]
