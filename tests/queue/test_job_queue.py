"""Tests for the SQLite-backed JobQueue."""

import threading
import time
from unittest.mock import MagicMock

import pytest

from voc_pipeline.exceptions import InvalidStateTransition
from voc_pipeline.job_queue import Job, JobMode, JobQueue, JobState
from voc_pipeline.storage import sqlite_connection


@pytest.fixture
def queue(db_path):
    return JobQueue(db_path, handler=MagicMock(return_value={"ok": True}), idle_wait=0.05)


def _enqueue(queue, company_id, report_id=None, **kwargs):
    return queue.enqueue(
        company_id=company_id,
        report_id=report_id or f"report-{company_id}",
        business_name=f"{company_id} Inc",
        business_url=f"https://{company_id}.example.com",
        **kwargs,
    )


class TestEnqueue:
    def test_creates_pending_job(self, queue):
        job_id = _enqueue(queue, "acme", industry="retail", user_plan="paid")

        job = queue.get_job(job_id)
        assert job.state == JobState.PENDING
        assert job.mode == JobMode.FULL
        assert job.options.industry == "retail"
        assert job.options.user_plan == "paid"
        assert job.created_at is not None
        assert job.started_at is None

    def test_missing_fields_rejected(self, queue):
        with pytest.raises(ValueError, match="Missing required fields: businessName, businessUrl"):
            queue.enqueue(company_id="acme", report_id="r1", business_name=" ", business_url="")

    def test_has_active_job(self, queue):
        _enqueue(queue, "acme", report_id="r1")
        assert queue.has_active_job("r1") is True
        assert queue.has_active_job("r2") is False

    def test_queue_stats(self, queue):
        _enqueue(queue, "acme")
        _enqueue(queue, "beta")
        queue.claim_next()

        stats = queue.get_queue_stats()

        assert stats == {"pending": 1, "processing": 1, "completed": 0, "failed": 0, "total": 2}

    def test_latest_job_for_company(self, queue):
        _enqueue(queue, "acme", report_id="r1")
        latest = _enqueue(queue, "acme", report_id="r2")

        assert queue.get_job_by_company_id("acme").id == latest
        assert queue.get_job_by_company_id("nobody") is None


class TestClaimOrdering:
    def test_fifo_by_enqueue_order(self, queue):
        first = _enqueue(queue, "acme")
        second = _enqueue(queue, "beta")

        assert queue.claim_next().id == first
        assert queue.claim_next().id == second
        assert queue.claim_next() is None

    def test_same_company_waits_for_processing_job(self, queue):
        """A, B, A: the second A job is skipped while the first is processing."""
        a1 = _enqueue(queue, "a", report_id="a1")
        b = _enqueue(queue, "b")
        a2 = _enqueue(queue, "a", report_id="a2")

        assert queue.claim_next().id == a1
        assert queue.claim_next().id == b
        assert queue.claim_next() is None

        queue.mark_completed(a1)
        assert queue.claim_next().id == a2

    def test_claim_sets_started_at(self, queue):
        _enqueue(queue, "acme")
        job = queue.claim_next()
        assert job.state == JobState.PROCESSING
        assert job.started_at is not None

    def test_concurrent_claims_never_share_a_job(self, queue):
        for i in range(10):
            _enqueue(queue, f"company-{i}")
        claimed = []
        lock = threading.Lock()

        def worker():
            while True:
                job = queue.claim_next()
                if job is None:
                    return
                with lock:
                    claimed.append(job.id)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(claimed) == 10
        assert len(set(claimed)) == 10


class TestTransitions:
    def test_complete_stores_result(self, queue):
        job_id = _enqueue(queue, "acme")
        queue.claim_next()

        queue.mark_completed(job_id, {"totalStored": 3})

        job = queue.get_job(job_id)
        assert job.state == JobState.COMPLETED
        assert job.result == {"totalStored": 3}
        assert job.completed_at is not None

    def test_failed_error_kept_verbatim(self, queue):
        job_id = _enqueue(queue, "acme")
        queue.claim_next()

        queue.mark_failed(job_id, "Analysis response missing required fields: mentionsByTopic")

        job = queue.get_job(job_id)
        assert job.state == JobState.FAILED
        assert job.error == "Analysis response missing required fields: mentionsByTopic"

    def test_pending_job_cannot_complete(self, queue):
        job_id = _enqueue(queue, "acme")

        with pytest.raises(InvalidStateTransition) as exc_info:
            queue.mark_completed(job_id)

        assert exc_info.value.current == "pending"

    def test_terminal_job_cannot_move(self, queue):
        job_id = _enqueue(queue, "acme")
        queue.claim_next()
        queue.mark_failed(job_id, "boom")

        with pytest.raises(InvalidStateTransition):
            queue.mark_completed(job_id)
        assert queue.get_job(job_id).state == JobState.FAILED

    def test_unknown_job(self, queue):
        with pytest.raises(InvalidStateTransition, match="missing"):
            queue.mark_failed("nope", "boom")

    def test_is_terminal(self):
        assert JobState.COMPLETED.is_terminal
        assert JobState.FAILED.is_terminal
        assert not JobState.PROCESSING.is_terminal


class TestRecoveryAndPurge:
    def test_reset_stuck_jobs(self, queue):
        job_id = _enqueue(queue, "acme")
        queue.claim_next()

        assert queue.reset_stuck_jobs() == 1

        job = queue.get_job(job_id)
        assert job.state == JobState.PENDING
        assert job.started_at is None
        assert queue.claim_next().id == job_id

    def test_reset_respects_grace_period(self, queue):
        _enqueue(queue, "acme")
        queue.claim_next()
        assert queue.reset_stuck_jobs(grace_seconds=3600) == 0

    def test_purge_keeps_most_recent_terminal_jobs(self, queue, db_path):
        ids = []
        for i in range(5):
            job_id = _enqueue(queue, f"c{i}")
            queue.claim_next()
            queue.mark_completed(job_id)
            ids.append(job_id)
        pending = _enqueue(queue, "waiting")
        with sqlite_connection(db_path) as conn:
            for i, job_id in enumerate(ids):
                conn.execute(
                    "UPDATE voc_jobs SET completed_at = ? WHERE id = ?",
                    (f"2024-01-0{i + 1}T00:00:00+00:00", job_id),
                )

        deleted = queue.purge_history(retention=2)

        assert deleted == 3
        assert [queue.get_job(j) is not None for j in ids] == [False, False, False, True, True]
        assert queue.get_job(pending).state == JobState.PENDING


class TestProcessing:
    def test_process_next_completes_job(self, queue):
        job_id = _enqueue(queue, "acme")

        job = queue.process_next()

        assert job.id == job_id
        assert job.state == JobState.COMPLETED
        assert job.result == {"ok": True}
        assert queue.jobs_processed == 1
        handled = queue.handler.call_args[0][0]
        assert isinstance(handled, Job)
        assert handled.state == JobState.PROCESSING

    def test_handler_exception_fails_job(self, queue):
        queue.handler.side_effect = RuntimeError("Report generation exploded")
        _enqueue(queue, "acme")

        job = queue.process_next()

        assert job.state == JobState.FAILED
        assert job.error == "Report generation exploded"
        assert queue.last_error == "Report generation exploded"

    def test_nothing_pending(self, queue):
        assert queue.process_next() is None

    def test_timeout_fails_job_and_ignores_late_completion(self, db_path):
        release = threading.Event()

        def slow_handler(job):
            release.wait(5)
            return {"late": True}

        queue = JobQueue(db_path, handler=slow_handler, job_timeout=0.2, idle_wait=0.05)
        job_id = _enqueue(queue, "acme")
        job = queue.claim_next()

        queue._supervise(job)
        release.set()
        time.sleep(0.2)

        stored = queue.get_job(job_id)
        assert stored.state == JobState.FAILED
        assert stored.error == "Processing exceeded timeout (0.2s)"
        assert stored.result is None

    def test_timeout_notifies_callback(self, db_path):
        release = threading.Event()
        on_timeout = MagicMock()
        queue = JobQueue(
            db_path,
            handler=lambda job: release.wait(5),
            on_timeout=on_timeout,
            job_timeout=0.2,
        )
        job_id = _enqueue(queue, "acme")

        queue._supervise(queue.claim_next())
        release.set()

        on_timeout.assert_called_once()
        job, message = on_timeout.call_args[0]
        assert job.id == job_id
        assert message == "Processing exceeded timeout (0.2s)"

    def test_callback_not_called_when_job_finishes_in_time(self, db_path):
        on_timeout = MagicMock()
        queue = JobQueue(db_path, handler=MagicMock(return_value={}), on_timeout=on_timeout, job_timeout=5)
        _enqueue(queue, "acme")

        queue._supervise(queue.claim_next())

        on_timeout.assert_not_called()

    def test_running_handler_blocks_its_company(self, queue):
        _enqueue(queue, "acme")
        beta_id = _enqueue(queue, "beta")
        queue._active["timed-out-job"] = "acme"

        assert queue.claim_next().id == beta_id
        assert queue.claim_next() is None

    def test_timed_out_handler_holds_company_until_it_returns(self, db_path):
        release = threading.Event()
        second_done = threading.Event()
        lock = threading.Lock()
        running = []
        peak = []

        def handler(job):
            with lock:
                running.append(job.company_id)
                peak.append(running.count("acme"))
            try:
                if job.report_id == "r1":
                    release.wait(5)
                else:
                    second_done.set()
                return {}
            finally:
                with lock:
                    running.remove(job.company_id)

        queue = JobQueue(db_path, handler=handler, job_timeout=0.2, idle_wait=0.05, max_concurrent_jobs=2)
        first = _enqueue(queue, "acme", report_id="r1")
        second = _enqueue(queue, "acme", report_id="r2")

        queue.start()
        try:
            deadline = time.monotonic() + 5
            while queue.get_job(first).state != JobState.FAILED and time.monotonic() < deadline:
                time.sleep(0.02)
            assert queue.get_job(first).state == JobState.FAILED

            time.sleep(0.3)
            assert queue.get_job(second).state == JobState.PENDING
            assert queue.active_job_ids == [first]

            release.set()
            assert second_done.wait(5)
        finally:
            release.set()
            assert queue.shutdown(timeout=5)

        assert max(peak) == 1
        assert queue.get_job(second).state == JobState.COMPLETED

    def test_worker_thread_drains_queue(self, db_path):
        done = threading.Event()
        handled = []

        def handler(job):
            handled.append(job.company_id)
            if len(handled) == 2:
                done.set()
            return {}

        queue = JobQueue(db_path, handler=handler, idle_wait=0.05)
        _enqueue(queue, "acme")
        _enqueue(queue, "beta")

        queue.start()
        try:
            assert done.wait(5)
        finally:
            assert queue.shutdown(timeout=5)

        assert handled == ["acme", "beta"]
        assert not queue.running

    def test_start_requires_handler(self, db_path):
        with pytest.raises(RuntimeError):
            JobQueue(db_path).start()
