"""Shared pytest fixtures for all tests."""

from unittest.mock import MagicMock

import pytest

from voc_pipeline.ai.inference_client import InferenceResult
from voc_pipeline.scrapers.models import ScrapedReview
from voc_pipeline.storage.sqlite_client import ensure_schema


@pytest.fixture(autouse=True)
def set_test_environment(monkeypatch):
    """
    Automatically set ENVIRONMENT variable for all tests.

    This prevents ValueError from being raised when initializing
    StructuredLogger or calling setup_logging() in tests.
    """
    monkeypatch.setenv("ENVIRONMENT", "development")


@pytest.fixture
def db_path(tmp_path):
    """Fresh SQLite database with the worker schema."""
    return str(ensure_schema(str(tmp_path / "voc.db")))


@pytest.fixture
def make_review():
    """Factory for ScrapedReview objects with sensible defaults."""

    def _make(text="Great service, would come back again.", platform="trustpilot", **kwargs):
        return ScrapedReview.build(platform=platform, text=text, **kwargs)

    return _make


@pytest.fixture
def sample_analysis():
    """A model response carrying every required report section."""
    return {
        "executiveSummary": {
            "sentimentChange": "+5%",
            "volumeChange": "+10%",
            "mostPraised": "Support",
            "topComplaint": "Delivery",
            "overview": "Customers like the support team but complain about slow delivery.",
            "alerts": [],
        },
        "keyInsights": [
            {
                "insight": "Slow delivery drives negative reviews",
                "direction": "up",
                "mentions": 2,
                "platforms": ["trustpilot"],
                "impact": "high",
                "reviews": [],
            }
        ],
        "sentimentOverTime": [{"month": "Jan", "business": 70}],
        "mentionsByTopic": [
            {"topic": "Delivery", "positive": 0, "neutral": 0, "negative": 2, "total": 2}
        ],
        "trendingTopics": [],
        "volumeOverTime": [{"week": "W1", "volume": 2, "platform": "trustpilot"}],
        "competitorComparison": [],
        "marketGaps": [],
        "advancedMetrics": {
            "trustScore": 60,
            "repeatComplaints": 20,
            "avgResolutionTime": "2 days",
            "vocVelocity": "+3%",
        },
        "suggestedActions": ["Fix delivery times"],
        "vocDigest": {"summary": "Delivery is the main pain point.", "highlights": []},
    }


@pytest.fixture
def mock_inference_client():
    """InferenceClient stand-in whose execute() returns the text you set."""
    client = MagicMock()

    def _respond(text, model="claude-document"):
        client.execute.return_value = InferenceResult(text=text, model=model, total_tokens=10)
        return client

    client.respond = _respond
    return client
