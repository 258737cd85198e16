"""SQLite-backed report job queue.

One ``JobQueue`` owns the voc_jobs table and the worker thread that drains
it. Jobs are claimed oldest-first by enqueue sequence; a company never has
two jobs processing at once.
"""

from __future__ import annotations

import concurrent.futures
import json
import logging
import sqlite3
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from pydantic import ValidationError

from voc_pipeline.constants import (
    DEFAULT_JOB_RETENTION,
    DEFAULT_JOB_TIMEOUT,
    DEFAULT_MAX_CONCURRENT_JOBS,
    DEFAULT_PURGE_INTERVAL,
)
from voc_pipeline.exceptions import InvalidStateTransition, StorageError
from voc_pipeline.job_queue.models import Job, JobMode, JobOptions, JobState
from voc_pipeline.logging_config import get_structured_logger
from voc_pipeline.storage.sqlite_client import sqlite_connection

logger = logging.getLogger(__name__)

# Called with a claimed job; returns the result summary stored on completion
JobHandler = Callable[[Job], Optional[Dict[str, Any]]]
# Called with a job the queue failed on timeout, plus the failure message
TimeoutHandler = Callable[[Job, str], None]

_TERMINAL_STATES = (JobState.COMPLETED.value, JobState.FAILED.value)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(dt: datetime) -> str:
    return dt.isoformat()


def _rows_to_jobs(rows: List[Any]) -> List[Job]:
    jobs: List[Job] = []
    for row in rows:
        try:
            jobs.append(Job.from_record(dict(row)))
        except (ValidationError, ValueError, KeyError, TypeError) as exc:
            logger.error("Dropping malformed job row %s: %s", dict(row).get("id"), exc)
    return jobs


class JobQueue:
    """Manage report jobs stored in SQLite and the worker that runs them."""

    def __init__(
        self,
        db_path: Optional[str] = None,
        handler: Optional[JobHandler] = None,
        on_timeout: Optional[TimeoutHandler] = None,
        max_concurrent_jobs: int = DEFAULT_MAX_CONCURRENT_JOBS,
        job_timeout: int = DEFAULT_JOB_TIMEOUT,
        retention: int = DEFAULT_JOB_RETENTION,
        purge_interval: int = DEFAULT_PURGE_INTERVAL,
        idle_wait: float = 30.0,
    ):
        """
        Args:
            db_path: SQLite database path (resolved by sqlite_connection)
            handler: Callable that processes one job
            on_timeout: Callable notified after a job is failed for running too long
            max_concurrent_jobs: Jobs processed at once (different companies only)
            job_timeout: Seconds before a processing job is failed
            retention: Terminal jobs kept by the history purge
            purge_interval: Seconds between history purges
            idle_wait: Upper bound on an idle sleep; enqueue wakes the worker early
        """
        self.db_path = db_path
        self.handler = handler
        self.on_timeout = on_timeout
        self.max_concurrent_jobs = max(1, max_concurrent_jobs)
        self.job_timeout = job_timeout
        self.retention = retention
        self.purge_interval = purge_interval
        self.idle_wait = idle_wait

        self.slogger = get_structured_logger(__name__)
        self._wake = threading.Event()
        self._stop = threading.Event()
        self._claim_lock = threading.Lock()
        self._active_lock = threading.Lock()
        # job id -> company id, held until the handler thread returns
        self._active: Dict[str, str] = {}
        self._thread: Optional[threading.Thread] = None
        self._last_purge = 0.0
        self.jobs_processed = 0
        self.last_error: Optional[str] = None

    # ------------------------------------------------------------------ #
    # Producer side
    # ------------------------------------------------------------------ #

    def enqueue(
        self,
        company_id: str,
        report_id: str,
        business_name: str,
        business_url: str,
        mode: JobMode = JobMode.FULL,
        industry: Optional[str] = None,
        user_plan: Optional[str] = None,
        rescrape: bool = False,
    ) -> str:
        """
        Add a pending job and wake the worker.

        Returns:
            The new job id

        Raises:
            ValueError: If a required field is empty
            StorageError: If the insert fails
        """
        required = {
            "companyId": company_id,
            "reportId": report_id,
            "businessName": business_name,
            "businessUrl": business_url,
        }
        missing = [name for name, value in required.items() if not (value and str(value).strip())]
        if missing:
            raise ValueError(f"Missing required fields: {', '.join(missing)}")

        job = Job(
            id=str(uuid4()),
            company_id=company_id,
            report_id=report_id,
            business_name=business_name.strip(),
            business_url=business_url.strip(),
            mode=JobMode(mode),
            options=JobOptions(industry=industry, user_plan=user_plan, rescrape=rescrape),
            created_at=_utcnow(),
        )

        record = job.to_record()
        columns = ", ".join(record.keys())
        placeholders = ", ".join(["?"] * len(record))
        try:
            with sqlite_connection(self.db_path) as conn:
                conn.execute(
                    f"INSERT INTO voc_jobs ({columns}) VALUES ({placeholders})",
                    tuple(record.values()),
                )
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to insert job: {exc}") from exc

        self.slogger.job_activity(
            job.id, job.mode.value, "enqueued", {"company_id": company_id, "report_id": report_id}
        )
        self._wake.set()
        return job.id

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def get_job(self, job_id: str) -> Optional[Job]:
        with sqlite_connection(self.db_path) as conn:
            row = conn.execute("SELECT * FROM voc_jobs WHERE id = ?", (job_id,)).fetchone()
        return Job.from_record(dict(row)) if row else None

    def get_job_by_company_id(self, company_id: str) -> Optional[Job]:
        """Most recently enqueued job for a company."""
        with sqlite_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM voc_jobs WHERE company_id = ? ORDER BY seq DESC LIMIT 1",
                (company_id,),
            ).fetchone()
        return Job.from_record(dict(row)) if row else None

    def get_pending_jobs(self, limit: int = 50) -> List[Job]:
        with sqlite_connection(self.db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM voc_jobs WHERE state = ? ORDER BY seq ASC LIMIT ?",
                (JobState.PENDING.value, limit),
            ).fetchall()
        return _rows_to_jobs(rows)

    def has_active_job(self, report_id: str) -> bool:
        """True when the report already has a pending or processing job."""
        with sqlite_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT 1 FROM voc_jobs WHERE report_id = ? AND state IN (?, ?) LIMIT 1",
                (report_id, JobState.PENDING.value, JobState.PROCESSING.value),
            ).fetchone()
        return row is not None

    def get_queue_stats(self) -> Dict[str, int]:
        stats = {state.value: 0 for state in JobState}
        stats["total"] = 0

        with sqlite_connection(self.db_path) as conn:
            rows = conn.execute(
                "SELECT state, COUNT(*) AS count FROM voc_jobs GROUP BY state"
            ).fetchall()

        for row in rows:
            stats[row["state"]] = row["count"]
            stats["total"] += row["count"]
        return stats

    @property
    def active_job_ids(self) -> List[str]:
        with self._active_lock:
            return sorted(self._active)

    # ------------------------------------------------------------------ #
    # State transitions
    # ------------------------------------------------------------------ #

    def claim_next(self) -> Optional[Job]:
        """
        Move the oldest claimable pending job to processing.

        A pending job is claimable when no other job for the same company is
        processing, and no handler for that company is still running (a
        timed-out job's handler keeps its company busy until it returns).
        Returns None when nothing can be claimed.
        """
        with self._claim_lock:
            with self._active_lock:
                busy = sorted(set(self._active.values()))
            busy_clause = ""
            if busy:
                busy_clause = f"AND company_id NOT IN ({', '.join(['?'] * len(busy))})"

            with sqlite_connection(self.db_path) as conn:
                row = conn.execute(
                    f"""
                    SELECT id FROM voc_jobs
                    WHERE state = ?
                      AND company_id NOT IN (
                          SELECT company_id FROM voc_jobs WHERE state = ?
                      )
                      {busy_clause}
                    ORDER BY seq ASC
                    LIMIT 1
                    """,
                    (JobState.PENDING.value, JobState.PROCESSING.value, *busy),
                ).fetchone()
                if row is None:
                    return None

                cursor = conn.execute(
                    "UPDATE voc_jobs SET state = ?, started_at = ? WHERE id = ? AND state = ?",
                    (JobState.PROCESSING.value, _iso(_utcnow()), row["id"], JobState.PENDING.value),
                )
                if cursor.rowcount != 1:
                    return None

        job = self.get_job(row["id"])
        if job:
            self.slogger.job_activity(job.id, job.mode.value, "processing")
        return job

    def _finish(
        self,
        job_id: str,
        target: JobState,
        error: Optional[str] = None,
        result: Optional[Dict[str, Any]] = None,
    ) -> None:
        with sqlite_connection(self.db_path) as conn:
            cursor = conn.execute(
                """
                UPDATE voc_jobs
                SET state = ?, error = ?, result = ?, completed_at = ?
                WHERE id = ? AND state = ?
                """,
                (
                    target.value,
                    error,
                    json.dumps(result, default=str) if result is not None else None,
                    _iso(_utcnow()),
                    job_id,
                    JobState.PROCESSING.value,
                ),
            )
            if cursor.rowcount == 1:
                return
            row = conn.execute("SELECT state FROM voc_jobs WHERE id = ?", (job_id,)).fetchone()

        current = row["state"] if row else "missing"
        raise InvalidStateTransition(job_id, current, target.value)

    def mark_completed(self, job_id: str, result: Optional[Dict[str, Any]] = None) -> None:
        self._finish(job_id, JobState.COMPLETED, result=result)

    def mark_failed(self, job_id: str, error: str) -> None:
        """Fail a processing job, keeping the error message verbatim."""
        self._finish(job_id, JobState.FAILED, error=error)

    def reset_stuck_jobs(self, grace_seconds: int = 0) -> int:
        """
        Return processing jobs left over from a previous run to pending.

        Only jobs started more than ``grace_seconds`` ago are reset.
        """
        cutoff = _iso(_utcnow() - timedelta(seconds=grace_seconds))
        with sqlite_connection(self.db_path) as conn:
            cursor = conn.execute(
                """
                UPDATE voc_jobs SET state = ?, started_at = NULL
                WHERE state = ? AND (started_at IS NULL OR started_at <= ?)
                """,
                (JobState.PENDING.value, JobState.PROCESSING.value, cutoff),
            )
            reset_count = cursor.rowcount

        self.slogger.worker_status("startup_recovered_processing", {"count": reset_count})
        if reset_count:
            self._wake.set()
        return reset_count

    def purge_history(self, retention: Optional[int] = None) -> int:
        """
        Delete terminal jobs beyond the most recent ``retention``.

        Oldest completion goes first. Pending and processing jobs are never
        touched.

        Returns:
            Number of jobs deleted
        """
        keep = self.retention if retention is None else retention
        with sqlite_connection(self.db_path) as conn:
            cursor = conn.execute(
                """
                DELETE FROM voc_jobs
                WHERE state IN (?, ?)
                  AND id NOT IN (
                      SELECT id FROM voc_jobs
                      WHERE state IN (?, ?)
                      ORDER BY completed_at DESC, seq DESC
                      LIMIT ?
                  )
                """,
                (*_TERMINAL_STATES, *_TERMINAL_STATES, keep),
            )
            deleted = cursor.rowcount

        self._last_purge = time.monotonic()
        if deleted:
            self.slogger.database_activity("purge", "voc_jobs", "completed", {"deleted": deleted})
        return deleted

    # ------------------------------------------------------------------ #
    # Processing
    # ------------------------------------------------------------------ #

    def _run_handler(self, job: Job) -> None:
        """Run the handler for a claimed job and record its terminal state."""
        if self.handler is None:
            raise RuntimeError("JobQueue has no handler configured")

        try:
            result = self.handler(job)
        except Exception as e:
            logger.error("Job %s failed: %s", job.id, e, exc_info=True)
            self.last_error = str(e)
            try:
                self.mark_failed(job.id, str(e))
            except InvalidStateTransition as exc:
                logger.warning("Ignoring late failure for job %s: %s", job.id, exc)
                return
            self.slogger.job_activity(job.id, job.mode.value, "failed", {"error": str(e)})
            return

        try:
            self.mark_completed(job.id, result)
        except InvalidStateTransition as exc:
            # Job already failed (timed out) while the handler was still running
            logger.warning("Ignoring late completion for job %s: %s", job.id, exc)
            return
        self.jobs_processed += 1
        self.slogger.job_activity(job.id, job.mode.value, "completed")

    def process_next(self) -> Optional[Job]:
        """
        Claim and process one job on the calling thread.

        Returns:
            The job as stored after processing, or None if nothing was pending
        """
        job = self.claim_next()
        if job is None:
            return None
        self._run_handler(job)
        return self.get_job(job.id)

    def _release(self, job_id: str) -> None:
        with self._active_lock:
            self._active.pop(job_id, None)
        self._wake.set()

    def _fail_timed_out(self, job: Job) -> None:
        msg = f"Processing exceeded timeout ({self.job_timeout}s)"
        self.slogger.worker_status(
            "processing_timeout", {"job_id": job.id, "timeout_seconds": self.job_timeout}
        )
        self.last_error = msg
        try:
            self.mark_failed(job.id, msg)
        except InvalidStateTransition as exc:
            logger.warning("Timeout raced with job completion: %s", exc)
            return

        if self.on_timeout is not None:
            try:
                self.on_timeout(job, msg)
            except Exception as e:
                logger.error("Timeout callback failed for job %s: %s", job.id, e, exc_info=True)

    def _supervise(self, job: Job) -> None:
        """Run one job under the processing timeout."""
        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=1, thread_name_prefix=f"voc-job-{job.id[:8]}"
        )
        future = None
        try:
            future = executor.submit(self._run_handler, job)
            future.add_done_callback(lambda _f: self._release(job.id))
            try:
                future.result(timeout=self.job_timeout)
            except concurrent.futures.TimeoutError:
                self._fail_timed_out(job)
        except Exception as e:
            logger.error("Supervisor error for job %s: %s", job.id, e, exc_info=True)
            self.last_error = str(e)
        finally:
            # A timed-out handler keeps running in the background and holds
            # its company until it returns
            executor.shutdown(wait=False)
            if future is None:
                self._release(job.id)

    def _worker_loop(self) -> None:
        self.slogger.worker_status("started", {"max_concurrent_jobs": self.max_concurrent_jobs})
        with concurrent.futures.ThreadPoolExecutor(
            max_workers=self.max_concurrent_jobs, thread_name_prefix="voc-worker"
        ) as pool:
            while not self._stop.is_set():
                try:
                    if time.monotonic() - self._last_purge >= self.purge_interval:
                        self.purge_history()

                    with self._active_lock:
                        has_capacity = len(self._active) < self.max_concurrent_jobs

                    job = self.claim_next() if has_capacity else None
                    if job is None:
                        self._wake.wait(timeout=self.idle_wait)
                        self._wake.clear()
                        continue

                    with self._active_lock:
                        self._active[job.id] = job.company_id
                    pool.submit(self._supervise, job)
                except Exception as e:
                    logger.error("Error in worker loop: %s", e, exc_info=True)
                    self.last_error = str(e)
                    self._wake.wait(timeout=self.idle_wait)
                    self._wake.clear()

        self.slogger.worker_status("stopped", {"total_processed": self.jobs_processed})

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the worker thread (no-op if already running)."""
        if self.running:
            return
        if self.handler is None:
            raise RuntimeError("JobQueue has no handler configured")
        self._stop.clear()
        self._thread = threading.Thread(target=self._worker_loop, name="voc-queue", daemon=True)
        self._thread.start()

    def shutdown(self, timeout: float = 30.0) -> bool:
        """
        Stop claiming jobs and wait for in-flight ones.

        Returns:
            True if the worker stopped within ``timeout``
        """
        self._stop.set()
        self._wake.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                return False
        self._thread = None
        return True
