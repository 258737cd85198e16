"""Tests for structured logging helpers."""

import logging

import pytest

from voc_pipeline.logging_config import StructuredLogger, format_business_name, truncate_url


class TestTruncation:
    def test_short_url_unchanged(self):
        assert truncate_url("https://acme.com", max_length=40) == "https://acme.com"

    def test_long_url_shortened(self):
        url = "https://www.trustpilot.com/review/acme.com?page=12"
        assert truncate_url(url, max_length=20) == "https://www.trust..."

    def test_empty_url(self):
        assert truncate_url("") == ""

    def test_business_name(self):
        assert format_business_name("Acme Widgets International", max_length=10) == (
            "Acme Widgets International",
            "Acme Wi...",
        )


class TestStructuredLogger:
    def test_requires_environment(self, monkeypatch):
        monkeypatch.delenv("ENVIRONMENT")
        with pytest.raises(ValueError):
            StructuredLogger(logging.getLogger("test"))

    def test_scrape_activity_shortens_url_in_message_only(self, caplog):
        slogger = StructuredLogger(logging.getLogger("voc_pipeline.test"))
        url = "https://www.trustpilot.com/review/" + "a" * 200 + ".com"

        with caplog.at_level(logging.INFO, logger="voc_pipeline.test"):
            slogger.scrape_activity("trustpilot", "failed", {"url": url, "error": "HTTP 404"})

        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert record.getMessage() == f"Scraping trustpilot failed: {url[:117]}..."
        fields = record.structured_fields
        assert fields["category"] == "scrape"
        assert fields["details"] == {"platform": "trustpilot", "url": url, "error": "HTTP 404"}

    def test_scrape_activity_without_url(self, caplog):
        slogger = StructuredLogger(logging.getLogger("voc_pipeline.test"))

        with caplog.at_level(logging.INFO, logger="voc_pipeline.test"):
            slogger.scrape_activity("yelp", "resolve_failed")

        assert caplog.records[-1].getMessage() == "Scraping yelp resolve_failed"
