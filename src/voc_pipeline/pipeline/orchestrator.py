"""
Scrape orchestration for one job.

Each verified source goes Fetch -> Parse -> Deduplicate -> Store on a bounded
thread pool. A source failure is recorded against that source and never stops
the others.
"""

from __future__ import annotations

import concurrent.futures
import logging
import threading
from typing import Callable, List, Optional

from voc_pipeline.constants import DEFAULT_SCRAPE_CONCURRENCY
from voc_pipeline.discovery.source_resolver import SourceResolver
from voc_pipeline.exceptions import FetchError, StorageError
from voc_pipeline.logging_config import get_structured_logger
from voc_pipeline.pipeline.deduplicator import Deduplicator
from voc_pipeline.pipeline.progress import ProgressReporter, scraping_message, synced_message
from voc_pipeline.scrapers.models import (
    ReviewSource,
    ScrapedReview,
    ScrapeSummary,
    SourceResult,
    SourceState,
)
from voc_pipeline.scrapers.platforms import display_name
from voc_pipeline.scrapers.source_scraper import SourceScraper
from voc_pipeline.storage.review_storage import ReviewStorage

logger = logging.getLogger(__name__)


class ScrapeOrchestrator:
    """Resolve and scrape every review source for a business."""

    def __init__(
        self,
        resolver: SourceResolver,
        scraper: SourceScraper,
        review_storage: ReviewStorage,
        max_workers: int = DEFAULT_SCRAPE_CONCURRENCY,
    ):
        self.resolver = resolver
        self.scraper = scraper
        self.review_storage = review_storage
        self.max_workers = max(1, max_workers)
        self.slogger = get_structured_logger(__name__)

    def resolve(self, business_name: str, business_url: str) -> List[ReviewSource]:
        return self.resolver.resolve(business_name, business_url)

    def run(
        self,
        company_id: str,
        report_id: str,
        business_name: str,
        business_url: str,
        progress: ProgressReporter,
        source_limit: Optional[int] = None,
        on_resolved: Optional[Callable[[List[ReviewSource]], None]] = None,
    ) -> ScrapeSummary:
        """
        Resolve sources, then scrape the verified ones.

        Args:
            source_limit: Scrape at most this many verified sources (None = all)
            on_resolved: Called with the full resolved list before scraping starts
        """
        sources = self.resolve(business_name, business_url)
        if on_resolved:
            on_resolved(sources)

        verified = [s for s in sources if s.verified]
        if source_limit is not None:
            verified = verified[:source_limit]
        return self.scrape_sources(company_id, report_id, verified, progress)

    def scrape_sources(
        self,
        company_id: str,
        report_id: str,
        sources: List[ReviewSource],
        progress: ProgressReporter,
        sync: bool = False,
    ) -> ScrapeSummary:
        """
        Scrape a list of sources into storage.

        The company's stored fingerprints are loaded once; the fingerprint set,
        storage writes and progress updates share one lock.

        Args:
            sync: Emit "Synced <platform> (<n> new reviews)" after each source

        Returns:
            ScrapeSummary with per-source results in input order and the newly
            stored reviews
        """
        dedup = Deduplicator(self.review_storage.get_fingerprints(company_id))
        lock = threading.Lock()
        stored_reviews: List[ScrapedReview] = []
        total = len(sources)

        def scrape_one(index: int, source: ReviewSource) -> SourceResult:
            name = display_name(source.platform)
            result = SourceResult(platform=source.platform, url=source.candidate_url)
            with lock:
                progress.report(scraping_message(name, index, total))

            try:
                pages = self.scraper.scrape(source.platform, source.candidate_url)
            except FetchError as e:
                return self._fail(result, str(e))
            except Exception as e:
                logger.error("Unexpected error scraping %s: %s", source.candidate_url, e, exc_info=True)
                return self._fail(result, str(e))

            self._advance(result, SourceState.FETCHED)
            result.pages_fetched = pages.pages_fetched
            self._advance(result, SourceState.PARSED)
            result.parsed_count = len(pages.reviews)
            if not pages.reviews:
                self._advance(result, SourceState.SKIPPED_EMPTY)
                result.success = True
                self.slogger.scrape_activity(source.platform, "skipped_empty", {"url": source.candidate_url})
                return result

            with lock:
                fresh = dedup.filter(pages.reviews)
                try:
                    stored = self.review_storage.save_reviews(company_id, fresh, report_id=report_id)
                except StorageError as e:
                    dedup.forget(fresh)
                    return self._fail(result, str(e))
                stored_reviews.extend(fresh)
                if sync:
                    progress.report(synced_message(name, stored))

            self._advance(result, SourceState.STORED)
            result.success = True
            result.review_count = stored
            self.slogger.scrape_activity(
                source.platform,
                "stored",
                {"parsed": result.parsed_count, "stored": stored, "pages": pages.pages_fetched},
            )
            return result

        results: List[SourceResult] = []
        if sources:
            with concurrent.futures.ThreadPoolExecutor(
                max_workers=min(self.max_workers, total)
            ) as executor:
                futures = [
                    executor.submit(scrape_one, i, source)
                    for i, source in enumerate(sources, start=1)
                ]
                results = [future.result() for future in futures]

        summary = ScrapeSummary(
            total_stored=sum(r.review_count for r in results),
            results=results,
            reviews=stored_reviews,
        )
        logger.info(
            "Scraped %d sources for company %s: %d new reviews, %d failed",
            total,
            company_id,
            summary.total_stored,
            sum(1 for r in results if not r.success),
        )
        return summary

    @staticmethod
    def _advance(result: SourceResult, state: SourceState) -> None:
        result.state = state
        result.history.append(state.value)

    def _fail(self, result: SourceResult, error: str) -> SourceResult:
        self._advance(result, SourceState.FAILED)
        result.success = False
        result.error = error
        self.slogger.scrape_activity(result.platform, "failed", {"url": result.url, "error": error})
        return result
