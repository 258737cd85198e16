"""Report, review, and job storage modules."""

from voc_pipeline.storage.report_storage import ReportStatus, ReportStorage
from voc_pipeline.storage.review_storage import ReviewStorage
from voc_pipeline.storage.sqlite_client import ensure_schema, sqlite_connection

__all__ = ["ReportStatus", "ReportStorage", "ReviewStorage", "ensure_schema", "sqlite_connection"]
