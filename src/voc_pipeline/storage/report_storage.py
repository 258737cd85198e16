"""SQLite-backed storage for VOC report rows.

A report row carries the polling surface (status + progress_message), the
final analysis document, and the per-source summary.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from voc_pipeline.exceptions import StorageError
from voc_pipeline.storage.sqlite_client import sqlite_connection

logger = logging.getLogger(__name__)


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def _serialize_json(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, default=str)


def _deserialize_json(value: Optional[str]) -> Any:
    if not value:
        return None
    try:
        return json.loads(value)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Dropping malformed JSON column value")
        return None


class ReportStatus(str, Enum):
    """
    Status of a report as seen by polling clients.

    Lifecycle: pending -> processing -> completed/failed
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


def _row_to_report(row: sqlite3.Row) -> Dict[str, Any]:
    rec = dict(row)
    rec["analysis"] = _deserialize_json(rec.get("analysis"))
    rec["sources"] = _deserialize_json(rec.get("sources")) or []
    return rec


class ReportStorage:
    """Read and write voc_reports rows."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path

    def create_report(
        self,
        report_id: str,
        company_id: str,
        business_name: str,
        business_url: str,
        industry: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create the report row if it does not exist yet; return the stored row."""
        now = _utcnow()
        try:
            with sqlite_connection(self.db_path) as conn:
                conn.execute(
                    """
                    INSERT OR IGNORE INTO voc_reports (
                        id, company_id, business_name, business_url, industry,
                        status, progress_message, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        report_id,
                        company_id,
                        business_name,
                        business_url,
                        industry,
                        ReportStatus.PENDING.value,
                        "Queued",
                        now,
                        now,
                    ),
                )
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to create report {report_id}: {exc}") from exc

        report = self.get_report(report_id)
        if report is None:
            raise StorageError(f"Report {report_id} missing after insert")
        return report

    def get_report(self, report_id: str) -> Optional[Dict[str, Any]]:
        with sqlite_connection(self.db_path) as conn:
            row = conn.execute("SELECT * FROM voc_reports WHERE id = ?", (report_id,)).fetchone()
        return _row_to_report(row) if row else None

    def _update(self, report_id: str, fields: Dict[str, Any]) -> None:
        fields = {**fields, "updated_at": _utcnow()}
        assignments = ", ".join(f"{key} = ?" for key in fields)
        try:
            with sqlite_connection(self.db_path) as conn:
                cursor = conn.execute(
                    f"UPDATE voc_reports SET {assignments} WHERE id = ?",
                    (*fields.values(), report_id),
                )
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to update report {report_id}: {exc}") from exc
        if cursor.rowcount == 0:
            raise StorageError(f"Report {report_id} not found")

    def update_progress(
        self, report_id: str, message: str, status: Optional[ReportStatus] = None
    ) -> None:
        """Overwrite the progress message (and optionally the status) in place."""
        fields: Dict[str, Any] = {"progress_message": message}
        if status is not None:
            fields["status"] = ReportStatus(status).value
        self._update(report_id, fields)

    def set_sources(self, report_id: str, sources: List[Dict[str, Any]]) -> None:
        self._update(report_id, {"sources": _serialize_json(sources)})

    def save_analysis(
        self,
        report_id: str,
        analysis: Dict[str, Any],
        sources: List[Dict[str, Any]],
        message: str,
    ) -> None:
        """Persist the finished analysis and mark the report completed."""
        now = _utcnow()
        self._update(
            report_id,
            {
                "analysis": _serialize_json(analysis),
                "sources": _serialize_json(sources),
                "status": ReportStatus.COMPLETED.value,
                "progress_message": message,
                "processed_at": now,
            },
        )

    def clear_analysis(self, report_id: str) -> None:
        """Drop the analysis ahead of a regeneration."""
        self._update(
            report_id,
            {
                "analysis": None,
                "status": ReportStatus.PENDING.value,
                "progress_message": "Queued for regeneration",
            },
        )

    def mark_failed(self, report_id: str, message: str) -> None:
        self._update(
            report_id,
            {"status": ReportStatus.FAILED.value, "progress_message": message},
        )

    def get_status(self, report_id: str) -> Optional[Dict[str, Any]]:
        """Polling view: state, progress message, and whether analysis is ready."""
        with sqlite_connection(self.db_path) as conn:
            row = conn.execute(
                """
                SELECT status, progress_message, analysis IS NOT NULL AS analysis_ready
                FROM voc_reports WHERE id = ?
                """,
                (report_id,),
            ).fetchone()
        if row is None:
            return None
        return {
            "state": row["status"],
            "progressMessage": row["progress_message"] or "",
            "analysisReady": bool(row["analysis_ready"])
            and row["status"] == ReportStatus.COMPLETED.value,
        }

    def list_recently_processed(self, days: int) -> List[Dict[str, Any]]:
        """Completed reports whose last processing finished within ``days``."""
        cutoff = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()
        with sqlite_connection(self.db_path) as conn:
            rows = conn.execute(
                """
                SELECT * FROM voc_reports
                WHERE status = ? AND processed_at IS NOT NULL AND processed_at >= ?
                ORDER BY processed_at ASC
                """,
                (ReportStatus.COMPLETED.value, cutoff),
            ).fetchall()
        return [_row_to_report(row) for row in rows]
