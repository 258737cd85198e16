"""Tests for the flask_worker HTTP surface."""

from unittest.mock import MagicMock

import pytest

from voc_pipeline.job_queue import JobQueue, JobState
from voc_pipeline.settings import WorkerSettings
from voc_pipeline.storage import ReportStorage


@pytest.fixture
def worker(monkeypatch, db_path):
    """flask_worker module wired to a temporary database."""
    from voc_pipeline import flask_worker

    queue = JobQueue(db_path, handler=MagicMock(return_value={}), idle_wait=0.05)
    monkeypatch.setattr(flask_worker, "job_queue", queue)
    monkeypatch.setattr(flask_worker, "report_storage", ReportStorage(db_path))
    monkeypatch.setattr(flask_worker, "settings", WorkerSettings(db_path=db_path))
    monkeypatch.setitem(flask_worker.worker_state, "start_time", None)
    monkeypatch.setitem(flask_worker.worker_state, "last_error", None)
    yield flask_worker
    queue.shutdown(timeout=5)


@pytest.fixture
def client(worker):
    return worker.app.test_client()


def _create_job(client, **overrides):
    payload = {
        "companyId": "acme",
        "reportId": "report-1",
        "businessName": "Acme",
        "businessUrl": "https://acme.com",
        "industry": "retail",
    }
    payload.update(overrides)
    return client.post("/jobs", json=payload)


class TestJobs:
    def test_create_job(self, client, worker):
        response = _create_job(client, userPlan="free")

        assert response.status_code == 202
        body = response.get_json()
        assert body["reportId"] == "report-1"
        job = worker.job_queue.get_job(body["jobId"])
        assert job.state == JobState.PENDING
        assert job.options.user_plan == "free"
        assert worker.report_storage.get_report("report-1")["status"] == "pending"

    def test_missing_fields(self, client):
        response = client.post("/jobs", json={"companyId": "acme"})

        assert response.status_code == 400
        assert response.get_json()["error"] == "Missing required fields: reportId, businessName, businessUrl"

    def test_get_job(self, client):
        job_id = _create_job(client).get_json()["jobId"]

        response = client.get(f"/jobs/{job_id}")

        assert response.status_code == 200
        assert response.get_json()["state"] == "pending"
        assert client.get("/jobs/unknown").status_code == 404

    def test_company_job(self, client):
        job_id = _create_job(client).get_json()["jobId"]

        assert client.get("/companies/acme/job").get_json()["id"] == job_id
        assert client.get("/companies/nobody/job").status_code == 404


class TestReports:
    def test_status_and_document(self, client, worker, sample_analysis):
        _create_job(client)
        worker.report_storage.save_analysis("report-1", sample_analysis, [{"platform": "trustpilot"}], "Report ready!")

        status = client.get("/reports/report-1/status").get_json()
        assert status == {"state": "completed", "progressMessage": "Report ready!", "analysisReady": True}

        document = client.get("/reports/report-1").get_json()
        assert document["companyId"] == "acme"
        assert document["analysis"]["vocDigest"]["summary"] == "Delivery is the main pain point."
        assert document["sources"] == [{"platform": "trustpilot"}]

    def test_unknown_report(self, client):
        assert client.get("/reports/nope").status_code == 404
        assert client.get("/reports/nope/status").status_code == 404
        assert client.post("/reports/nope/sync").status_code == 404

    def test_regenerate_conflicts_with_active_job(self, client):
        _create_job(client)

        response = client.post("/reports/report-1/regenerate", json={"rescrape": True})

        assert response.status_code == 409

    def test_sync_enqueues_job(self, client, worker):
        _create_job(client)
        worker.job_queue.process_next()

        response = client.post("/reports/report-1/sync")

        assert response.status_code == 202
        body = response.get_json()
        assert body["mode"] == "sync"
        assert worker.job_queue.get_job(body["jobId"]).business_name == "Acme"

    def test_regenerate_passes_rescrape(self, client, worker):
        _create_job(client)
        worker.job_queue.process_next()

        body = client.post("/reports/report-1/regenerate", json={"rescrape": True}).get_json()

        job = worker.job_queue.get_job(body["jobId"])
        assert job.mode.value == "regenerate"
        assert job.options.rescrape is True


class TestWorkerControl:
    def test_health_when_stopped(self, client):
        body = client.get("/health").get_json()
        assert body["status"] == "stopped"
        assert body["running"] is False

    def test_start_and_stop(self, client):
        assert client.post("/start").status_code == 200
        assert client.get("/health").get_json()["status"] == "healthy"
        assert client.post("/start").status_code == 400

        assert client.post("/stop").status_code == 200
        assert client.post("/stop").status_code == 400

    def test_status_includes_queue_stats(self, client):
        _create_job(client)

        body = client.get("/status").get_json()

        assert body["queue"]["pending"] == 1
        assert body["worker"]["active_jobs"] == []

    def test_maintenance(self, client, worker, sample_analysis):
        _create_job(client)
        worker.job_queue.process_next()
        worker.report_storage.save_analysis("report-1", sample_analysis, [], "Report ready!")

        response = client.post("/maintenance")

        assert response.status_code == 200
        assert response.get_json()["scheduled_syncs"] == 1
