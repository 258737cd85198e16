#!/usr/bin/env python3
"""
Flask-based VOC report worker with health monitoring and graceful shutdown.

This worker provides:
- HTTP endpoints to enqueue report jobs and poll their progress
- Report document, regenerate and sync endpoints
- Health, status and start/stop controls for the queue worker
- Startup recovery of jobs left processing by a previous run
"""
import os
import signal
import sys
import time
from typing import Any, Dict, Optional, Tuple

from dotenv import load_dotenv
from flask import Flask, jsonify, request

from voc_pipeline.ai.inference_client import InferenceClient
from voc_pipeline.analysis.adapter import AnalysisAdapter
from voc_pipeline.discovery.source_resolver import SourceResolver
from voc_pipeline.job_queue import JobMode, JobQueue, VocJobProcessor
from voc_pipeline.logging_config import get_structured_logger, setup_logging
from voc_pipeline.maintenance import run_maintenance
from voc_pipeline.pipeline.orchestrator import ScrapeOrchestrator
from voc_pipeline.scrapers.fetcher import Fetcher
from voc_pipeline.scrapers.source_scraper import SourceScraper
from voc_pipeline.settings import WorkerSettings, get_settings
from voc_pipeline.storage import ReportStorage, ReviewStorage, ensure_schema

# Load environment variables
load_dotenv()

setup_logging(log_file=os.getenv("VOC_WORKER_LOG_FILE"))

slogger = get_structured_logger(__name__)

# Global state
worker_state: Dict[str, Any] = {
    "running": False,
    "shutdown_requested": False,
    "start_time": None,
    "last_error": None,
}

# Global components (initialized in main or on /start)
job_queue: Optional[JobQueue] = None
report_storage: Optional[ReportStorage] = None
settings: Optional[WorkerSettings] = None

# Flask app
app = Flask(__name__)


def initialize_components(worker_settings: WorkerSettings) -> Tuple[JobQueue, ReportStorage]:
    """Build storage, pipeline and queue from settings."""
    db_path = str(ensure_schema(worker_settings.db_path))
    slogger.worker_status("sqlite_path_selected", {"path": db_path})

    reports = ReportStorage(db_path)
    reviews = ReviewStorage(db_path)

    fetcher = Fetcher(
        scraper_api_key=worker_settings.scraper_api_key,
        render_backend=worker_settings.render_backend,
        timeout=worker_settings.fetch_timeout_seconds,
    )
    inference_client = InferenceClient()

    resolver = SourceResolver(
        fetcher,
        inference_client=inference_client,
        validation_timeout=worker_settings.validation_timeout_seconds,
        ai_discovery_enabled=worker_settings.ai_discovery_enabled,
    )
    orchestrator = ScrapeOrchestrator(
        resolver,
        SourceScraper(fetcher),
        reviews,
        max_workers=worker_settings.scrape_concurrency,
    )
    adapter = AnalysisAdapter(
        inference_client,
        temperature=worker_settings.analysis_temperature,
        max_tokens=worker_settings.analysis_max_tokens,
    )
    processor = VocJobProcessor(reports, reviews, orchestrator, adapter)

    queue = JobQueue(
        db_path,
        handler=processor,
        on_timeout=processor.cancel,
        max_concurrent_jobs=worker_settings.max_concurrent_jobs,
        job_timeout=worker_settings.job_timeout_seconds,
        retention=worker_settings.job_retention,
        purge_interval=worker_settings.purge_interval_seconds,
    )
    return queue, reports


def _ensure_components() -> Tuple[JobQueue, ReportStorage]:
    global job_queue, report_storage, settings

    if job_queue is None or report_storage is None:
        settings = settings or get_settings()
        job_queue, report_storage = initialize_components(settings)
    return job_queue, report_storage


def _error(message: str, status: int):
    return jsonify({"error": message}), status


def _enqueue_for_report(report_id: str, mode: JobMode, rescrape: bool = False):
    queue, reports = _ensure_components()
    report = reports.get_report(report_id)
    if report is None:
        return _error(f"Report {report_id} not found", 404)
    if queue.has_active_job(report_id):
        return _error(f"Report {report_id} already has a job in progress", 409)

    job_id = queue.enqueue(
        company_id=report["company_id"],
        report_id=report_id,
        business_name=report["business_name"],
        business_url=report["business_url"],
        mode=mode,
        industry=report.get("industry"),
        rescrape=rescrape,
    )
    return jsonify({"jobId": job_id, "reportId": report_id, "mode": mode.value}), 202


# Flask routes
@app.route("/health")
def health():
    """Health check endpoint."""
    running = job_queue.running if job_queue else False
    return jsonify(
        {
            "status": "healthy" if running else "stopped",
            "running": running,
            "jobs_processed": job_queue.jobs_processed if job_queue else 0,
            "last_error": (job_queue.last_error if job_queue else None) or worker_state["last_error"],
        }
    )


@app.route("/status")
def status():
    """Detailed status endpoint."""
    queue_stats: Dict[str, Any] = {}
    if job_queue:
        try:
            queue_stats = job_queue.get_queue_stats()
        except Exception as e:
            queue_stats = {"error": str(e)}

    start_time = worker_state.get("start_time")
    return jsonify(
        {
            "worker": {
                **worker_state,
                "running": job_queue.running if job_queue else False,
                "active_jobs": job_queue.active_job_ids if job_queue else [],
            },
            "queue": queue_stats,
            "uptime": time.time() - start_time if start_time else 0,
        }
    )


@app.route("/start", methods=["POST"])
def start_worker():
    """Start the queue worker."""
    if job_queue is not None and job_queue.running:
        return jsonify({"message": "Worker is already running"}), 400

    queue, _ = _ensure_components()
    # Startup recovery: return stuck processing jobs to pending
    queue.reset_stuck_jobs()

    worker_state["shutdown_requested"] = False
    worker_state["start_time"] = time.time()
    queue.start()
    worker_state["running"] = True

    return jsonify({"message": "Worker started"})


@app.route("/stop", methods=["POST"])
def stop_worker():
    """Stop the queue worker gracefully."""
    if job_queue is None or not job_queue.running:
        return jsonify({"message": "Worker is not running"}), 400

    worker_state["shutdown_requested"] = True
    stopped = job_queue.shutdown(timeout=30)
    if not stopped:
        return jsonify({"message": "Worker stop requested but still running"}), 202

    worker_state["running"] = False
    return jsonify({"message": "Worker stopped"})


@app.route("/jobs", methods=["POST"])
def create_job():
    """Enqueue a full report job."""
    data = request.get_json(silent=True) or {}
    required = ["companyId", "reportId", "businessName", "businessUrl"]
    missing = [field for field in required if not str(data.get(field) or "").strip()]
    if missing:
        return _error(f"Missing required fields: {', '.join(missing)}", 400)

    queue, reports = _ensure_components()
    reports.create_report(
        data["reportId"],
        data["companyId"],
        data["businessName"],
        data["businessUrl"],
        industry=data.get("industry"),
    )
    job_id = queue.enqueue(
        company_id=data["companyId"],
        report_id=data["reportId"],
        business_name=data["businessName"],
        business_url=data["businessUrl"],
        industry=data.get("industry"),
        user_plan=data.get("userPlan"),
    )
    return jsonify({"jobId": job_id, "reportId": data["reportId"]}), 202


@app.route("/jobs/<job_id>")
def get_job(job_id: str):
    queue, _ = _ensure_components()
    job = queue.get_job(job_id)
    if job is None:
        return _error(f"Job {job_id} not found", 404)
    return jsonify(job.to_api())


@app.route("/companies/<company_id>/job")
def get_company_job(company_id: str):
    """Most recent job for a company."""
    queue, _ = _ensure_components()
    job = queue.get_job_by_company_id(company_id)
    if job is None:
        return _error(f"No jobs for company {company_id}", 404)
    return jsonify(job.to_api())


@app.route("/reports/<report_id>/status")
def report_status(report_id: str):
    """Polling view: {state, progressMessage, analysisReady}."""
    _, reports = _ensure_components()
    report_state = reports.get_status(report_id)
    if report_state is None:
        return _error(f"Report {report_id} not found", 404)
    return jsonify(report_state)


@app.route("/reports/<report_id>")
def get_report(report_id: str):
    """Report document: analysis plus per-source summary."""
    _, reports = _ensure_components()
    report = reports.get_report(report_id)
    if report is None:
        return _error(f"Report {report_id} not found", 404)
    return jsonify(
        {
            "id": report["id"],
            "companyId": report["company_id"],
            "businessName": report["business_name"],
            "businessUrl": report["business_url"],
            "status": report["status"],
            "progressMessage": report["progress_message"],
            "analysis": report["analysis"],
            "sources": report["sources"],
            "processedAt": report["processed_at"],
        }
    )


@app.route("/reports/<report_id>/regenerate", methods=["POST"])
def regenerate_report(report_id: str):
    """Re-run analysis for a report, optionally re-scraping its sources first."""
    data = request.get_json(silent=True) or {}
    return _enqueue_for_report(report_id, JobMode.REGENERATE, rescrape=bool(data.get("rescrape")))


@app.route("/reports/<report_id>/sync", methods=["POST"])
def sync_report(report_id: str):
    """Additively re-scrape a report's sources and refresh its analysis."""
    return _enqueue_for_report(report_id, JobMode.SYNC)


@app.route("/maintenance", methods=["POST"])
def maintenance_endpoint():
    """
    Run maintenance tasks: purge job history and schedule report syncs.
    """
    queue, reports = _ensure_components()
    lookback = (settings or get_settings()).sync_lookback_days

    slogger.worker_status("maintenance_started")
    results = run_maintenance(queue, reports, lookback_days=lookback)
    slogger.worker_status("maintenance_completed", results)

    if results["success"]:
        return jsonify(
            {
                "message": "Maintenance completed successfully",
                "purged_count": results["purged_count"],
                "scheduled_syncs": results["scheduled_syncs"],
            }
        )
    return (
        jsonify(
            {
                "message": "Maintenance failed",
                "error": results["error"],
            }
        ),
        500,
    )


def signal_handler(signum, frame):
    """Handle shutdown signals gracefully."""
    slogger.worker_status("shutdown_requested", {"signal": signum})
    worker_state["shutdown_requested"] = True
    if job_queue is not None:
        job_queue.shutdown(timeout=30)
    worker_state["running"] = False
    sys.exit(0)


def main():
    """Main entry point."""
    global job_queue, report_storage, settings

    # Register signal handlers
    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    try:
        settings = get_settings()
        job_queue, report_storage = initialize_components(settings)

        # Startup recovery: reset stale processing jobs before taking new work
        job_queue.reset_stuck_jobs()

        # Start worker automatically
        worker_state["start_time"] = time.time()
        job_queue.start()
        worker_state["running"] = True

        # Start Flask server
        port = int(os.getenv("WORKER_PORT", "5555"))
        host = os.getenv("WORKER_HOST", "0.0.0.0")

        slogger.worker_status("flask_server_starting", {"host": host, "port": port})
        app.run(host=host, port=port, debug=False, use_reloader=False)

    except Exception as e:
        slogger.logger.error(f"Fatal error in Flask worker: {e}", exc_info=True)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
