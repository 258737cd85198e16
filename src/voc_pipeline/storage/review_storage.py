"""SQLite-backed storage for scraped reviews.

The reviews table is the source of truth for deduplication: a review is
stored at most once per (company_id, fingerprint).
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set
from uuid import uuid4

from voc_pipeline.exceptions import StorageError
from voc_pipeline.scrapers.models import ScrapedReview
from voc_pipeline.storage.sqlite_client import sqlite_connection

logger = logging.getLogger(__name__)


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class ReviewStorage:
    """Persist reviews to SQLite."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path

    def get_fingerprints(self, company_id: str) -> Set[str]:
        """All fingerprints already stored for a company."""
        try:
            with sqlite_connection(self.db_path) as conn:
                rows = conn.execute(
                    "SELECT fingerprint FROM reviews WHERE company_id = ?", (company_id,)
                ).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to load fingerprints for {company_id}: {exc}") from exc
        return {row["fingerprint"] for row in rows}

    def save_reviews(
        self,
        company_id: str,
        reviews: List[ScrapedReview],
        report_id: Optional[str] = None,
    ) -> int:
        """
        Insert reviews, silently skipping any (company_id, fingerprint) already present.

        Returns:
            Number of rows actually inserted
        """
        if not reviews:
            return 0

        now = _utcnow()
        inserted = 0
        try:
            with sqlite_connection(self.db_path) as conn:
                for review in reviews:
                    record = review.to_record()
                    cursor = conn.execute(
                        """
                        INSERT OR IGNORE INTO reviews (
                            id, company_id, report_id, source, external_review_id,
                            reviewer_name, rating, review_text, review_date,
                            fingerprint, scraped_at
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            str(uuid4()),
                            company_id,
                            report_id,
                            record["source"],
                            record["external_review_id"],
                            record["reviewer_name"],
                            record["rating"],
                            record["review_text"],
                            record["review_date"],
                            record["fingerprint"],
                            now,
                        ),
                    )
                    inserted += cursor.rowcount
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to save reviews for {company_id}: {exc}") from exc

        skipped = len(reviews) - inserted
        if skipped:
            logger.debug("Skipped %d already-stored reviews for %s", skipped, company_id)
        return inserted

    def get_reviews_for_report(self, report_id: str) -> List[ScrapedReview]:
        """Reviews gathered for a report, oldest first."""
        try:
            with sqlite_connection(self.db_path) as conn:
                rows = conn.execute(
                    """
                    SELECT * FROM reviews
                    WHERE report_id = ?
                    ORDER BY scraped_at ASC, rowid ASC
                    """,
                    (report_id,),
                ).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to load reviews for report {report_id}: {exc}") from exc
        return [ScrapedReview.from_record(dict(row)) for row in rows]

    def count_by_source(self, report_id: str) -> Dict[str, int]:
        """Stored review counts per platform for a report."""
        try:
            with sqlite_connection(self.db_path) as conn:
                rows = conn.execute(
                    """
                    SELECT source, COUNT(*) AS total FROM reviews
                    WHERE report_id = ?
                    GROUP BY source
                    """,
                    (report_id,),
                ).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to count reviews for report {report_id}: {exc}") from exc
        return {row["source"]: row["total"] for row in rows}
