"""
Maintenance cycle for the VOC worker.

This module handles:
- Purging terminal jobs beyond the retention cap
- Enqueuing sync jobs for reports completed within the lookback window
"""

import logging
from typing import Optional

from voc_pipeline.constants import DEFAULT_SYNC_LOOKBACK_DAYS
from voc_pipeline.job_queue.manager import JobQueue
from voc_pipeline.job_queue.models import JobMode
from voc_pipeline.storage.report_storage import ReportStorage

logger = logging.getLogger(__name__)


def schedule_syncs(
    queue: JobQueue,
    report_storage: ReportStorage,
    lookback_days: int = DEFAULT_SYNC_LOOKBACK_DAYS,
) -> int:
    """
    Enqueue a sync job for every report completed within ``lookback_days``.

    Reports that already have a pending or processing job are skipped.

    Returns:
        Number of sync jobs enqueued
    """
    scheduled = 0
    for report in report_storage.list_recently_processed(lookback_days):
        if queue.has_active_job(report["id"]):
            logger.debug("Skipping sync for report %s: job already active", report["id"])
            continue
        queue.enqueue(
            company_id=report["company_id"],
            report_id=report["id"],
            business_name=report["business_name"],
            business_url=report["business_url"],
            mode=JobMode.SYNC,
            industry=report.get("industry"),
        )
        scheduled += 1

    if scheduled:
        logger.info("Scheduled %d report syncs (lookback %d days)", scheduled, lookback_days)
    else:
        logger.info("No reports due for sync")
    return scheduled


def run_maintenance(
    queue: JobQueue,
    report_storage: Optional[ReportStorage] = None,
    lookback_days: int = DEFAULT_SYNC_LOOKBACK_DAYS,
) -> dict:
    """
    Run the full maintenance cycle.

    1. Purge job history beyond the retention cap
    2. Schedule syncs for recently completed reports

    Returns:
        Dictionary with maintenance results
    """
    logger.info("Starting maintenance cycle")

    results = {
        "purged_count": 0,
        "scheduled_syncs": 0,
        "success": False,
        "error": None,
    }

    try:
        results["purged_count"] = queue.purge_history()
        storage = report_storage or ReportStorage(queue.db_path)
        results["scheduled_syncs"] = schedule_syncs(queue, storage, lookback_days)
        results["success"] = True
        logger.info(
            "Maintenance completed: purged=%d, scheduled_syncs=%d",
            results["purged_count"],
            results["scheduled_syncs"],
        )
    except Exception as e:
        logger.error("Maintenance failed: %s", e, exc_info=True)
        results["error"] = str(e)

    return results
