"""
Pydantic models for scraped reviews, review sources, and per-source outcomes.
"""

import hashlib
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from voc_pipeline.constants import MAX_RATING, MIN_RATING
from voc_pipeline.scrapers.text_sanitizer import (
    clean_reviewer_name,
    clean_text,
    normalize_for_fingerprint,
)
from voc_pipeline.utils.date_utils import normalize_review_date


def compute_fingerprint(text: str, reviewer_name: Optional[str], date: Optional[str]) -> str:
    """
    Deterministic content hash of (normalized text, reviewer, date).

    Reviewer and date are normalized the same way regardless of which matcher
    extracted them, so one review seen through two matchers hashes identically.
    """
    parts = [
        normalize_for_fingerprint(text),
        (clean_reviewer_name(reviewer_name) or "").lower(),
        normalize_review_date(date) or "",
    ]
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


def clamp_rating(value: Any) -> Optional[int]:
    """Coerce a scraped rating into 1..5, or None when it isn't numeric."""
    if value is None or value == "":
        return None
    try:
        rating = round(float(str(value).strip().split("/")[0]))
    except (TypeError, ValueError):
        return None
    if rating <= 0:
        return None
    return max(MIN_RATING, min(MAX_RATING, rating))


class ScrapedReview(BaseModel):
    """
    One review extracted from a platform page.

    Immutable once created. ``fingerprint`` (not ``external_id``) is the
    deduplication key.
    """

    model_config = ConfigDict(frozen=True)

    source_platform: str
    external_id: str
    reviewer_name: Optional[str] = None
    rating: Optional[int] = Field(default=None, ge=MIN_RATING, le=MAX_RATING)
    text: str
    date: Optional[str] = None
    fingerprint: str

    @classmethod
    def build(
        cls,
        platform: str,
        text: str,
        reviewer_name: Optional[str] = None,
        rating: Any = None,
        date: Optional[str] = None,
        external_id: Optional[str] = None,
    ) -> "ScrapedReview":
        """Clean raw fields and derive the fingerprint."""
        cleaned_text = clean_text(text)
        reviewer = clean_reviewer_name(reviewer_name)
        review_date = normalize_review_date(date)
        fingerprint = compute_fingerprint(cleaned_text, reviewer, review_date)
        return cls(
            source_platform=platform,
            external_id=external_id or f"{platform}_{fingerprint[:16]}",
            reviewer_name=reviewer,
            rating=clamp_rating(rating),
            text=cleaned_text,
            date=review_date,
            fingerprint=fingerprint,
        )

    def to_record(self) -> Dict[str, Any]:
        """Row fields for the reviews table."""
        return {
            "source": self.source_platform,
            "external_review_id": self.external_id,
            "reviewer_name": self.reviewer_name,
            "rating": self.rating,
            "review_text": self.text,
            "review_date": self.date,
            "fingerprint": self.fingerprint,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "ScrapedReview":
        return cls(
            source_platform=record["source"],
            external_id=record.get("external_review_id") or record["fingerprint"][:16],
            reviewer_name=record.get("reviewer_name"),
            rating=record.get("rating"),
            text=record["review_text"],
            date=record.get("review_date"),
            fingerprint=record["fingerprint"],
        )


class DiscoveryMethod(str, Enum):
    """How a candidate URL was produced."""

    DETERMINISTIC = "deterministic"
    AI = "ai"
    REPORT = "report"  # Reused from a report's stored sources


class ReviewSource(BaseModel):
    """A platform page believed to host reviews of the business."""

    platform: str
    candidate_url: str
    verified: bool = False
    estimated_count: int = 0
    discovered_by: DiscoveryMethod = DiscoveryMethod.DETERMINISTIC
    error: Optional[str] = None

    model_config = ConfigDict(use_enum_values=True)


class SourceState(str, Enum):
    """
    Per-source progress within one job.

    Lifecycle: queued -> fetched -> parsed -> stored | skipped_empty | failed
    """

    QUEUED = "queued"
    FETCHED = "fetched"
    PARSED = "parsed"
    STORED = "stored"
    SKIPPED_EMPTY = "skipped_empty"
    FAILED = "failed"


class SourceResult(BaseModel):
    """Outcome of scraping one source."""

    platform: str
    url: str
    state: SourceState = SourceState.QUEUED
    # Every state entered, in order
    history: List[str] = Field(default_factory=lambda: [SourceState.QUEUED.value])
    success: bool = False
    pages_fetched: int = 0
    review_count: int = 0
    parsed_count: int = 0
    error: Optional[str] = None

    model_config = ConfigDict(use_enum_values=True)


class ScrapeSummary(BaseModel):
    """Aggregate outcome of scraping every source of a job."""

    total_stored: int = 0
    results: List[SourceResult] = Field(default_factory=list)
    reviews: List[ScrapedReview] = Field(default_factory=list)
