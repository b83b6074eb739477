"""
CastFeed Processing Module
=========================

Reconciliation and fan-out pipeline for podcast feeds.

This module handles:
- Diffing parsed feeds against stored episodes
- Batched activity publication
- Enrichment job scheduling and episode page previews
- Scrape health bookkeeping
"""

from .reconciler import EpisodeReconciler, ReconcileResult
from .activity_batcher import ActivityBatcher
from .enrichment_scheduler import EnrichmentScheduler
from .episode_enricher import EpisodePageEnricher
from .health_tracker import ScrapeHealthTracker
from .pipeline import IngestionOrchestrator, IngestionResult, IngestionStage

__all__ = [
    "EpisodeReconciler",
    "ReconcileResult",
    "ActivityBatcher",
    "EnrichmentScheduler",
    "EpisodePageEnricher",
    "ScrapeHealthTracker",
    "IngestionOrchestrator",
    "IngestionResult",
    "IngestionStage",
]
