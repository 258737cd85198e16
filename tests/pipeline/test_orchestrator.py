"""Tests for ScrapeOrchestrator."""

from unittest.mock import MagicMock

import pytest

from voc_pipeline.exceptions import FetchHttpError, FetchTimeout
from voc_pipeline.pipeline.orchestrator import ScrapeOrchestrator
from voc_pipeline.scrapers.models import ReviewSource
from voc_pipeline.scrapers.source_scraper import SourcePages
from voc_pipeline.storage import ReviewStorage


def _source(platform, url=None, verified=True):
    return ReviewSource(
        platform=platform,
        candidate_url=url or f"https://www.{platform}.com/acme",
        verified=verified,
    )


@pytest.fixture
def review_storage(db_path):
    return ReviewStorage(db_path)


@pytest.fixture
def progress():
    return MagicMock()


@pytest.fixture
def scraper():
    return MagicMock()


@pytest.fixture
def resolver():
    return MagicMock()


@pytest.fixture
def orchestrator(resolver, scraper, review_storage):
    return ScrapeOrchestrator(resolver, scraper, review_storage, max_workers=3)


def _pages(*reviews):
    return SourcePages(pages_fetched=1, reviews=list(reviews))


class TestScrapeSources:
    def test_new_reviews_only_are_stored(self, orchestrator, scraper, review_storage, make_review, progress):
        """Three reviews on the page, one already stored: two are new."""
        reviews = [
            make_review("Delivery took three weeks, very slow.", reviewer_name="Ann"),
            make_review("Great prices but the delivery was late.", reviewer_name="Ben"),
            make_review("Customer support sorted my refund fast.", reviewer_name="Cat"),
        ]
        review_storage.save_reviews("acme", [reviews[0]], report_id="older-report")
        scraper.scrape.return_value = _pages(*reviews)

        summary = orchestrator.scrape_sources("acme", "report-1", [_source("trustpilot")], progress)

        result = summary.results[0]
        assert result.state == "stored"
        assert result.success is True
        assert result.parsed_count == 3
        assert result.review_count == 2
        assert summary.total_stored == 2
        assert [r.fingerprint for r in summary.reviews] == [r.fingerprint for r in reviews[1:]]
        assert len(review_storage.get_reviews_for_report("report-1")) == 2

    def test_second_run_stores_nothing(self, orchestrator, scraper, review_storage, make_review, progress):
        scraper.scrape.return_value = _pages(
            make_review("Friendly team and quick service."),
            make_review("Would recommend to my friends."),
        )

        first = orchestrator.scrape_sources("acme", "report-1", [_source("trustpilot")], progress)
        second = orchestrator.scrape_sources("acme", "report-1", [_source("trustpilot")], progress)

        assert first.total_stored == 2
        assert second.total_stored == 0
        assert second.results[0].state == "stored"
        assert len(review_storage.get_reviews_for_report("report-1")) == 2

    def test_failed_source_does_not_stop_others(self, orchestrator, scraper, make_review, progress):
        def scrape(platform, url):
            if platform == "yelp":
                raise FetchHttpError(url, 403, "CAPTCHA challenge detected")
            if platform == "reddit":
                raise FetchTimeout(url, 30)
            return _pages(make_review(f"A {platform} review with text."))

        scraper.scrape.side_effect = scrape
        sources = [_source("trustpilot"), _source("yelp"), _source("reddit"), _source("bbb")]

        summary = orchestrator.scrape_sources("acme", "report-1", sources, progress)

        assert [r.platform for r in summary.results] == ["trustpilot", "yelp", "reddit", "bbb"]
        assert [r.state for r in summary.results] == ["stored", "failed", "failed", "stored"]
        assert "CAPTCHA" in summary.results[1].error
        assert "Timed out" in summary.results[2].error
        assert summary.total_stored == 2
        assert summary.results[0].history == ["queued", "fetched", "parsed", "stored"]
        assert summary.results[1].history == ["queued", "failed"]

    def test_unexpected_error_is_recorded(self, orchestrator, scraper, progress):
        scraper.scrape.side_effect = RuntimeError("parser exploded")

        summary = orchestrator.scrape_sources("acme", "report-1", [_source("trustpilot")], progress)

        assert summary.results[0].state == "failed"
        assert summary.results[0].error == "parser exploded"

    def test_empty_source_is_skipped(self, orchestrator, scraper, progress):
        scraper.scrape.return_value = _pages()

        summary = orchestrator.scrape_sources("acme", "report-1", [_source("sitejabber")], progress)

        result = summary.results[0]
        assert result.state == "skipped_empty"
        assert result.history == ["queued", "fetched", "parsed", "skipped_empty"]
        assert result.success is True
        assert result.review_count == 0

    def test_same_review_on_two_sources_stored_once(self, orchestrator, scraper, make_review, progress):
        review = make_review("Cross-posted review on two platforms.")
        scraper.scrape.return_value = _pages(review)

        summary = orchestrator.scrape_sources(
            "acme", "report-1", [_source("trustpilot"), _source("sitejabber")], progress
        )

        assert sorted(r.review_count for r in summary.results) == [0, 1]
        assert summary.total_stored == 1

    def test_progress_messages(self, orchestrator, scraper, make_review, progress):
        scraper.scrape.return_value = _pages(make_review("Helpful staff at the counter."))

        orchestrator.scrape_sources("acme", "report-1", [_source("trustpilot")], progress, sync=True)

        messages = [call[0][0] for call in progress.report.call_args_list]
        assert messages == ["Scraping Trustpilot... (1/1)", "Synced Trustpilot (1 new reviews)"]

    def test_storage_failure_fails_source(self, resolver, scraper, make_review, progress):
        storage = MagicMock()
        storage.get_fingerprints.return_value = set()
        from voc_pipeline.exceptions import StorageError

        storage.save_reviews.side_effect = StorageError("locked")
        scraper.scrape.return_value = _pages(make_review("Review that cannot be saved."))

        summary = ScrapeOrchestrator(resolver, scraper, storage).scrape_sources(
            "acme", "report-1", [_source("trustpilot")], progress
        )

        assert summary.results[0].state == "failed"
        assert summary.results[0].error == "locked"
        assert summary.reviews == []
        assert summary.results[0].history == ["queued", "fetched", "parsed", "failed"]
        assert summary.results[0].pages_fetched == 1

    def test_no_sources(self, orchestrator, progress):
        summary = orchestrator.scrape_sources("acme", "report-1", [], progress)
        assert summary.results == []
        assert summary.total_stored == 0


class TestRun:
    def test_scrapes_only_verified_sources(self, orchestrator, resolver, scraper, make_review, progress):
        resolved = [_source("trustpilot"), _source("google", verified=False), _source("yelp")]
        resolver.resolve.return_value = resolved
        scraper.scrape.return_value = _pages(make_review("Good food and fair prices."))
        seen = []

        summary = orchestrator.run("acme", "report-1", "Acme", "https://acme.com", progress, on_resolved=seen.extend)

        assert seen == resolved
        assert [r.platform for r in summary.results] == ["trustpilot", "yelp"]

    def test_source_limit(self, orchestrator, resolver, scraper, progress):
        resolver.resolve.return_value = [_source("trustpilot"), _source("yelp"), _source("bbb")]
        scraper.scrape.return_value = _pages()

        summary = orchestrator.run("acme", "report-1", "Acme", "https://acme.com", progress, source_limit=1)

        assert [r.platform for r in summary.results] == ["trustpilot"]
