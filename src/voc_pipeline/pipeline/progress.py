"""Human-readable progress messages on the report row."""

import logging
import threading
from typing import Callable, Optional

from voc_pipeline.exceptions import StorageError
from voc_pipeline.storage.report_storage import ReportStatus, ReportStorage

logger = logging.getLogger(__name__)

INITIALIZING = "Initializing report..."
DISCOVERING = "Discovering review sources..."
ANALYZING = "Analyzing customer feedback..."
GENERATING = "Generating insights and charts..."
READY = "Report ready!"


def scraping_message(platform_name: str, index: int, total: int) -> str:
    return f"Scraping {platform_name}... ({index}/{total})"


def synced_message(platform_name: str, new_reviews: int) -> str:
    return f"Synced {platform_name} ({new_reviews} new reviews)"


def sync_completed_message(total_reviews: int) -> str:
    return f"Sync completed. Total reviews: {total_reviews}"


def failure_message(error: object) -> str:
    return f"Report generation failed: {error}"


class ProgressReporter:
    """
    Overwrite a report's progress message in place (last writer wins).

    Progress is advisory: a failed write is logged and never fails the job.
    Once cancelled, the reporter drops every further write.
    """

    def __init__(self, report_storage: ReportStorage, report_id: str):
        self.report_storage = report_storage
        self.report_id = report_id
        self._lock = threading.Lock()
        self._cancelled = False
        self.last_message: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Stop writing to the report; waits for an in-flight write to finish."""
        with self._lock:
            self._cancelled = True

    def run_unless_cancelled(self, write: Callable[[], None]) -> bool:
        """
        Run a final report write unless the reporter was cancelled.

        Returns:
            False if cancelled (``write`` not called)
        """
        with self._lock:
            if self._cancelled:
                return False
            write()
            return True

    def report(self, message: str, status: Optional[ReportStatus] = None) -> None:
        with self._lock:
            if self._cancelled:
                return
            self.last_message = message
            try:
                self.report_storage.update_progress(self.report_id, message, status=status)
            except StorageError as e:
                logger.warning("Progress update failed for report %s: %s", self.report_id, e)
