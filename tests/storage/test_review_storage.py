"""Tests for ReviewStorage."""

import sqlite3

import pytest

from voc_pipeline.exceptions import ConfigurationError, StorageError
from voc_pipeline.storage import ReviewStorage, sqlite_connection


@pytest.fixture
def storage(db_path):
    return ReviewStorage(db_path)


class TestSaveReviews:
    def test_inserts_and_reports_count(self, storage, make_review):
        reviews = [make_review("First review with enough text."), make_review("Second review, also long enough.")]

        assert storage.save_reviews("company-1", reviews, report_id="report-1") == 2
        assert storage.get_fingerprints("company-1") == {r.fingerprint for r in reviews}

    def test_duplicate_fingerprint_is_skipped(self, storage, make_review):
        review = make_review("Same review stored twice.")

        assert storage.save_reviews("company-1", [review], report_id="report-1") == 1
        assert storage.save_reviews("company-1", [review], report_id="report-2") == 0
        assert len(storage.get_reviews_for_report("report-1")) == 1
        assert storage.get_reviews_for_report("report-2") == []

    def test_fingerprints_are_scoped_per_company(self, storage, make_review):
        review = make_review("Shared text across companies.")

        storage.save_reviews("company-1", [review])

        assert storage.save_reviews("company-2", [review]) == 1
        assert storage.get_fingerprints("company-3") == set()

    def test_empty_batch(self, storage):
        assert storage.save_reviews("company-1", []) == 0


class TestReadReviews:
    def test_reviews_round_trip(self, storage, make_review):
        review = make_review(
            "Lovely staff, slow checkout.", platform="yelp", reviewer_name="Sam", rating=3, date="2024-02-01"
        )
        storage.save_reviews("company-1", [review], report_id="report-1")

        assert storage.get_reviews_for_report("report-1") == [review]

    def test_count_by_source(self, storage, make_review):
        storage.save_reviews(
            "company-1",
            [
                make_review("Trustpilot review number one.", platform="trustpilot"),
                make_review("Trustpilot review number two.", platform="trustpilot"),
                make_review("Yelp review number one here.", platform="yelp"),
            ],
            report_id="report-1",
        )

        assert storage.count_by_source("report-1") == {"trustpilot": 2, "yelp": 1}

    def test_missing_database_raises(self, tmp_path):
        with pytest.raises(ConfigurationError):
            with sqlite_connection(str(tmp_path / "missing.db")):
                pass

    def test_count_failure_raises_storage_error(self, tmp_path):
        path = str(tmp_path / "empty.db")
        with sqlite3.connect(path) as conn:
            conn.execute("CREATE TABLE unrelated (id INTEGER)")

        with pytest.raises(StorageError, match="Failed to count reviews for report report-1"):
            ReviewStorage(path).count_by_source("report-1")
