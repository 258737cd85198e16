"""
Job processor: runs the VOC pipeline for one claimed job.

Modes:
- full: resolve sources, scrape, analyze
- sync: re-scrape the report's known sources additively, then re-analyze
- regenerate: clear the analysis and re-analyze the stored corpus
  (optionally re-scraping first)

Any exception marks the report failed with a readable progress message and
propagates so the queue fails the job. A job the queue cancels (timeout) stops
writing to its report and never saves an analysis.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from voc_pipeline.analysis.adapter import AnalysisAdapter
from voc_pipeline.analysis.schema import AnalysisContext
from voc_pipeline.constants import PLAN_SOURCE_LIMITS
from voc_pipeline.exceptions import JobCancelledError, StorageError
from voc_pipeline.job_queue.models import Job, JobMode
from voc_pipeline.logging_config import get_structured_logger
from voc_pipeline.pipeline import progress as messages
from voc_pipeline.pipeline.orchestrator import ScrapeOrchestrator
from voc_pipeline.pipeline.progress import ProgressReporter
from voc_pipeline.scrapers.models import DiscoveryMethod, ReviewSource, ScrapeSummary, SourceState
from voc_pipeline.storage.report_storage import ReportStatus, ReportStorage
from voc_pipeline.storage.review_storage import ReviewStorage

logger = logging.getLogger(__name__)


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def source_limit_for_plan(user_plan: Optional[str]) -> Optional[int]:
    """
    Number of verified sources a plan may scrape (None = all).

    Jobs without a plan are not capped; an unrecognized plan gets the free cap.
    """
    if not user_plan:
        return None
    plan = user_plan.strip().lower()
    if plan in PLAN_SOURCE_LIMITS:
        return PLAN_SOURCE_LIMITS[plan]
    return PLAN_SOURCE_LIMITS["free"]


def summarize_sources(summary: ScrapeSummary, synced_at: str) -> List[Dict[str, Any]]:
    """Per-source entries stored on the report."""
    return [
        {
            "platform": result.platform,
            "url": result.url,
            "reviewCount": result.review_count,
            "lastSync": synced_at,
            "success": result.success,
            "error": result.error,
            "state": SourceState(result.state).value,
        }
        for result in summary.results
    ]


class VocJobProcessor:
    """Run the pipeline for one job. Used as the JobQueue handler."""

    def __init__(
        self,
        report_storage: ReportStorage,
        review_storage: ReviewStorage,
        orchestrator: ScrapeOrchestrator,
        analysis_adapter: AnalysisAdapter,
    ):
        self.report_storage = report_storage
        self.review_storage = review_storage
        self.orchestrator = orchestrator
        self.analysis_adapter = analysis_adapter
        self.slogger = get_structured_logger(__name__)
        self._lock = threading.Lock()
        self._running: Dict[str, ProgressReporter] = {}

    def __call__(self, job: Job) -> Dict[str, Any]:
        return self.process(job)

    def process(self, job: Job) -> Dict[str, Any]:
        """
        Process a job according to its mode.

        Returns:
            Result summary stored on the completed job

        Raises:
            Exception: Whatever stopped the pipeline; the report is marked failed first
        """
        mode = JobMode(job.mode)
        progress = ProgressReporter(self.report_storage, job.report_id)
        with self._lock:
            self._running[job.id] = progress
        self.slogger.pipeline_stage(job.id, mode.value, "started", {"report_id": job.report_id})

        try:
            if mode == JobMode.SYNC:
                result = self._process_sync(job, progress)
            elif mode == JobMode.REGENERATE:
                result = self._process_regenerate(job, progress)
            else:
                result = self._process_full(job, progress)
        except Exception as e:
            self.slogger.pipeline_stage(job.id, mode.value, "failed", {"error": str(e)})
            if not progress.cancelled:
                self._mark_report_failed(job.report_id, e)
            raise
        finally:
            with self._lock:
                self._running.pop(job.id, None)

        self.slogger.pipeline_stage(job.id, mode.value, "completed", result)
        return result

    def cancel(self, job: Job, reason: str) -> None:
        """
        Fail the report of a job the queue gave up on.

        The job's handler may still be running; its later progress writes are
        dropped and it will not save an analysis. Used as the JobQueue
        ``on_timeout`` callback.
        """
        with self._lock:
            progress = self._running.get(job.id)
        if progress is not None:
            progress.cancel()
        self.slogger.pipeline_stage(job.id, JobMode(job.mode).value, "cancelled", {"reason": reason})
        self._mark_report_failed(job.report_id, reason)

    # ------------------------------------------------------------------ #
    # Modes
    # ------------------------------------------------------------------ #

    def _process_full(self, job: Job, progress: ProgressReporter) -> Dict[str, Any]:
        self.report_storage.create_report(
            job.report_id,
            job.company_id,
            job.business_name,
            job.business_url,
            industry=job.options.industry,
        )
        progress.report(messages.INITIALIZING, status=ReportStatus.PROCESSING)
        progress.report(messages.DISCOVERING)

        resolved: List[ReviewSource] = []
        summary = self.orchestrator.run(
            job.company_id,
            job.report_id,
            job.business_name,
            job.business_url,
            progress,
            source_limit=source_limit_for_plan(job.options.user_plan),
            on_resolved=resolved.extend,
        )
        sources = summarize_sources(summary, _utcnow_iso())
        self.report_storage.set_sources(job.report_id, sources)

        corpus_size = self._analyze_and_save(job, progress, sources)
        return {
            "mode": JobMode.FULL.value,
            "sourcesResolved": len(resolved),
            "sourcesVerified": sum(1 for s in resolved if s.verified),
            "totalStored": summary.total_stored,
            "corpusSize": corpus_size,
            "sources": sources,
        }

    def _process_sync(self, job: Job, progress: ProgressReporter) -> Dict[str, Any]:
        report = self._require_report(job.report_id)
        progress.report(messages.INITIALIZING, status=ReportStatus.PROCESSING)

        summary = self._rescrape_known_sources(job, report, progress)
        sources = self._merge_sources(job.report_id, report.get("sources") or [], summary)
        self.report_storage.set_sources(job.report_id, sources)

        total_reviews = sum(self.review_storage.count_by_source(job.report_id).values())
        progress.report(messages.sync_completed_message(total_reviews))

        corpus_size = self._analyze_and_save(job, progress, sources, report=report)
        return {
            "mode": JobMode.SYNC.value,
            "newReviews": summary.total_stored,
            "totalReviews": total_reviews,
            "corpusSize": corpus_size,
            "sources": sources,
        }

    def _process_regenerate(self, job: Job, progress: ProgressReporter) -> Dict[str, Any]:
        report = self._require_report(job.report_id)
        self.report_storage.clear_analysis(job.report_id)
        progress.report(messages.INITIALIZING, status=ReportStatus.PROCESSING)

        sources = report.get("sources") or []
        new_reviews = 0
        if job.options.rescrape:
            summary = self._rescrape_known_sources(job, report, progress)
            sources = self._merge_sources(job.report_id, sources, summary)
            self.report_storage.set_sources(job.report_id, sources)
            new_reviews = summary.total_stored

        corpus_size = self._analyze_and_save(job, progress, sources, report=report)
        return {
            "mode": JobMode.REGENERATE.value,
            "rescraped": job.options.rescrape,
            "newReviews": new_reviews,
            "corpusSize": corpus_size,
        }

    # ------------------------------------------------------------------ #
    # Shared steps
    # ------------------------------------------------------------------ #

    def _rescrape_known_sources(
        self, job: Job, report: Dict[str, Any], progress: ProgressReporter
    ) -> ScrapeSummary:
        """Scrape the report's stored sources; resolve afresh when it has none."""
        known = [
            ReviewSource(
                platform=entry["platform"],
                candidate_url=entry["url"],
                verified=True,
                discovered_by=DiscoveryMethod.REPORT,
            )
            for entry in report.get("sources") or []
            if entry.get("url") and entry.get("platform")
        ]

        if not known:
            progress.report(messages.DISCOVERING)
            resolved = self.orchestrator.resolve(job.business_name, job.business_url)
            known = [s for s in resolved if s.verified]

        limit = source_limit_for_plan(job.options.user_plan)
        if limit is not None:
            known = known[:limit]

        return self.orchestrator.scrape_sources(
            job.company_id, job.report_id, known, progress, sync=True
        )

    def _merge_sources(
        self, report_id: str, previous: List[Dict[str, Any]], summary: ScrapeSummary
    ) -> List[Dict[str, Any]]:
        """Fold a sync's results into the stored source list with cumulative counts."""
        synced_at = _utcnow_iso()
        counts = self.review_storage.count_by_source(report_id)
        merged: Dict[str, Dict[str, Any]] = {
            entry["url"]: dict(entry) for entry in previous if entry.get("url")
        }

        for entry in summarize_sources(summary, synced_at):
            existing = merged.get(entry["url"], {})
            existing.update(entry)
            existing["reviewCount"] = counts.get(entry["platform"], entry["reviewCount"])
            merged[entry["url"]] = existing

        return list(merged.values())

    def _analyze_and_save(
        self,
        job: Job,
        progress: ProgressReporter,
        sources: List[Dict[str, Any]],
        report: Optional[Dict[str, Any]] = None,
    ) -> int:
        progress.report(messages.ANALYZING)
        corpus = self.review_storage.get_reviews_for_report(job.report_id)
        industry = job.options.industry or (report or {}).get("industry")

        progress.report(messages.GENERATING)
        self.slogger.pipeline_stage(job.id, "analyze", "started", {"reviews": len(corpus)})
        analysis = self.analysis_adapter.analyze(
            corpus,
            AnalysisContext(
                business_name=job.business_name,
                business_url=job.business_url,
                industry=industry,
                sources=sources,
            ),
        )

        saved = progress.run_unless_cancelled(
            lambda: self.report_storage.save_analysis(
                job.report_id, analysis, sources, messages.READY
            )
        )
        if not saved:
            raise JobCancelledError(job.id, "analysis discarded after cancellation")
        self.slogger.pipeline_stage(job.id, "persist", "completed", {"report_id": job.report_id})
        return len(corpus)

    def _require_report(self, report_id: str) -> Dict[str, Any]:
        report = self.report_storage.get_report(report_id)
        if report is None:
            raise StorageError(f"Report {report_id} not found")
        return report

    def _mark_report_failed(self, report_id: str, error: object) -> None:
        try:
            self.report_storage.mark_failed(report_id, messages.failure_message(error))
        except StorageError as exc:
            logger.warning("Could not mark report %s failed: %s", report_id, exc)
