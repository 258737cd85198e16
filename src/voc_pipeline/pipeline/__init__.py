"""Scrape pipeline: deduplication, progress reporting and orchestration."""

from voc_pipeline.pipeline.deduplicator import Deduplicator, deduplicate
from voc_pipeline.pipeline.orchestrator import ScrapeOrchestrator
from voc_pipeline.pipeline.progress import ProgressReporter

__all__ = ["Deduplicator", "ProgressReporter", "ScrapeOrchestrator", "deduplicate"]
