"""Tests for SourceScraper pagination."""

from unittest.mock import MagicMock

import pytest

from voc_pipeline.exceptions import FetchHttpError, FetchTimeout
from voc_pipeline.scrapers.source_scraper import SourceScraper


def _card(text, author):
    return (
        "<article data-service-review-card-paper>"
        f"<span data-consumer-name-typography>{author}</span>"
        f"<p data-service-review-text-typography>{text}</p>"
        "</article>"
    )


PAGE_1 = _card("The checkout process was quick and painless.", "Ann") + _card(
    "Support replied within an hour, very impressed.", "Ben"
)
PAGE_2 = _card("Package arrived damaged but they replaced it.", "Cat")

BASE_URL = "https://www.trustpilot.com/review/acme.com"


@pytest.fixture
def fetcher():
    return MagicMock()


class TestSourceScraper:
    def test_follows_pages_until_cap(self, fetcher):
        fetcher.fetch.side_effect = [PAGE_1, PAGE_2, _card("Third page review with enough text.", "Dan")]

        result = SourceScraper(fetcher).scrape("trustpilot", BASE_URL)

        assert result.pages_fetched == 3
        assert len(result.reviews) == 4
        assert result.stop_reason == "page cap reached"
        urls = [call[0][0] for call in fetcher.fetch.call_args_list]
        assert urls == [BASE_URL, f"{BASE_URL}?page=2", f"{BASE_URL}?page=3"]

    def test_passes_platform_fetch_options(self, fetcher):
        fetcher.fetch.return_value = PAGE_1

        SourceScraper(fetcher).scrape("trustpilot", BASE_URL)

        kwargs = fetcher.fetch.call_args_list[0][1]
        assert kwargs["render_js"] is True
        assert kwargs["actions"]
        assert kwargs["settle_ms"] == 3000

    def test_repeated_page_stops_pagination(self, fetcher):
        fetcher.fetch.return_value = PAGE_1

        result = SourceScraper(fetcher).scrape("trustpilot", BASE_URL)

        assert len(result.reviews) == 2
        assert result.pages_fetched == 2
        assert result.stop_reason == "page 2 had no new reviews"

    def test_later_page_failure_keeps_collected_reviews(self, fetcher):
        fetcher.fetch.side_effect = [PAGE_1, FetchTimeout(f"{BASE_URL}?page=2", 30)]

        result = SourceScraper(fetcher).scrape("trustpilot", BASE_URL)

        assert len(result.reviews) == 2
        assert result.stop_reason == "page 2 failed"

    def test_first_page_failure_propagates(self, fetcher):
        fetcher.fetch.side_effect = FetchHttpError(BASE_URL, 404)

        with pytest.raises(FetchHttpError):
            SourceScraper(fetcher).scrape("trustpilot", BASE_URL)

    def test_single_page_platform(self, fetcher):
        fetcher.fetch.return_value = "<p>Our dentist was gentle and explained everything clearly.</p>"

        result = SourceScraper(fetcher).scrape("generic", "https://acme.com/testimonials")

        assert fetcher.fetch.call_count == 1
        assert [r.source_platform for r in result.reviews] == ["generic"]
