"""Logging configuration with JSON output to stdout and file."""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

# Global configuration cache
_logging_config: Optional[Dict] = None

ENVIRONMENT_REQUIRED_ERROR = (
    "ENVIRONMENT variable is required but not set. "
    "Must be set to 'staging', 'production', or 'development'."
)


def _load_logging_config() -> Dict:
    """
    Load logging configuration from config/logging.yaml.

    Returns:
        Dict with logging configuration, or defaults if the file is absent.
    """
    global _logging_config

    if _logging_config is not None:
        return _logging_config

    config_path = Path(__file__).parent.parent.parent / "config" / "logging.yaml"

    if config_path.exists():
        try:
            with open(config_path, "r") as f:
                _logging_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            print(f"Failed to load logging config from {config_path}: {e}", file=sys.stderr)
            _logging_config = {}
    else:
        _logging_config = {}

    _logging_config.setdefault("console", {})
    _logging_config["console"].setdefault("max_business_name_length", 80)
    _logging_config["console"].setdefault("max_url_length", 120)

    return _logging_config


def format_business_name(business_name: str, max_length: Optional[int] = None) -> Tuple[str, str]:
    """
    Format a business name for logging with both full and display versions.

    Args:
        business_name: The full business name.
        max_length: Maximum display length. If None, uses the config value.

    Returns:
        Tuple of (full_name, display_name)
    """
    if not business_name:
        return "", ""

    full_name = business_name.strip()

    if max_length is None:
        max_length = _load_logging_config()["console"]["max_business_name_length"]

    if max_length <= 0 or len(full_name) <= max_length:
        return full_name, full_name

    if max_length <= 3:
        return full_name, full_name[:max_length]

    return full_name, full_name[: max_length - 3] + "..."


def truncate_url(url: str, max_length: Optional[int] = None) -> str:
    """Shorten a URL for log display."""
    if not url:
        return ""
    if max_length is None:
        max_length = _load_logging_config()["console"]["max_url_length"]
    if max_length <= 3 or len(url) <= max_length:
        return url
    return url[: max_length - 3] + "..."


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(self, environment: str = "development"):
        super().__init__()
        self.environment = environment

    def format(self, record: logging.LogRecord) -> str:
        severity_map = {
            logging.DEBUG: "DEBUG",
            logging.INFO: "INFO",
            logging.WARNING: "WARNING",
            logging.ERROR: "ERROR",
            logging.CRITICAL: "ERROR",
        }

        log_entry: Dict[str, Any] = {
            "severity": severity_map.get(record.levelno, "INFO"),
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "environment": self.environment,
            "service": "voc-worker",
            "logger": record.name,
        }

        if hasattr(record, "structured_fields"):
            log_entry.update(record.structured_fields)
        else:
            log_entry.update(
                {
                    "category": "system",
                    "action": "log",
                    "message": record.getMessage(),
                }
            )

        if record.exc_info:
            exc_type, exc_value, exc_tb = record.exc_info
            log_entry["error"] = {
                "type": exc_type.__name__ if exc_type else "Exception",
                "message": str(exc_value),
                "stack": self.formatException(record.exc_info) if exc_tb else None,
            }

        return json.dumps(log_entry, default=str)


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
) -> None:
    """
    Configure logging with JSON output to stdout and optionally a file.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Path to log file. Defaults to logs/worker.log at the repo root.

    Environment Variables:
        LOG_LEVEL: Override log level.
        LOG_FILE: Override log file path.
        ENVIRONMENT: Environment name (staging, production, development).
    """
    log_level = os.getenv("LOG_LEVEL", log_level).upper()
    log_file = os.getenv("LOG_FILE", log_file)
    if log_file is None:
        log_file = str(Path(__file__).parent.parent.parent / "logs" / "worker.log")

    environment = os.getenv("ENVIRONMENT")
    if not environment:
        environment = "development"
        print("WARNING: ENVIRONMENT not set, defaulting to 'development'", file=sys.stderr)
        os.environ["ENVIRONMENT"] = environment

    json_formatter = JSONFormatter(environment=environment)
    level = getattr(logging, log_level, logging.INFO)

    handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(json_formatter)
    console_handler.setLevel(level)
    handlers.append(console_handler)

    try:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(json_formatter)
        file_handler.setLevel(level)
        handlers.append(file_handler)
    except OSError as e:
        print(f"File logging disabled ({log_file}): {e}", file=sys.stderr)
        log_file = None

    logging.basicConfig(level=level, handlers=handlers, force=True)

    # Third-party chatter
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    StructuredLogger(logging.getLogger(__name__)).worker_status(
        "logging_configured",
        details={"environment": environment, "level": log_level, "file": log_file},
    )


class StructuredLogger:
    """Helper for categorized JSON log entries."""

    def __init__(self, logger: logging.Logger):
        """
        Initialize structured logger.

        Args:
            logger: Base logger instance

        Raises:
            ValueError: If ENVIRONMENT variable is not set
        """
        self.logger = logger
        self.environment = os.getenv("ENVIRONMENT")
        if not self.environment:
            raise ValueError(ENVIRONMENT_REQUIRED_ERROR)

    def _log(self, level: str, structured_fields: Dict[str, Any]) -> None:
        log_method = getattr(self.logger, level.lower())
        log_method(
            structured_fields.get("message", ""),
            extra={"structured_fields": structured_fields},
        )

    def job_activity(
        self, job_id: str, mode: str, action: str, details: Optional[Dict] = None
    ) -> None:
        """
        Log a job lifecycle event.

        Args:
            job_id: Queue job ID
            mode: Job mode (full, sync, regenerate)
            action: Lifecycle action (enqueued, processing, completed, failed, purged)
            details: Optional additional details
        """
        level = "error" if action.lower() == "failed" else "info"
        self._log(
            level,
            {
                "category": "queue",
                "action": action,
                "message": f"Job {action}",
                "jobId": job_id,
                "jobMode": mode,
                "details": details or {},
            },
        )

    def pipeline_stage(
        self, job_id: str, stage: str, status: str, details: Optional[Dict] = None
    ) -> None:
        """
        Log pipeline stage transitions.

        Args:
            job_id: Queue job ID
            stage: Pipeline stage (resolve, scrape, analyze, persist)
            status: Stage status (started, completed, failed, skipped)
            details: Optional additional details
        """
        level = "info"
        if status.lower() in ("failed", "error"):
            level = "error"
        elif status.lower() == "skipped":
            level = "warning"

        self._log(
            level,
            {
                "category": "pipeline",
                "action": status,
                "message": f"Pipeline {stage} {status}",
                "jobId": job_id,
                "pipelineStage": stage.lower(),
                "details": details or {},
            },
        )

    def scrape_activity(self, platform: str, action: str, details: Optional[Dict] = None) -> None:
        """
        Log scraping activity for one platform.

        Args:
            platform: Platform key being scraped
            action: Action being performed (fetched, parsed, stored, failed)
            details: Optional additional details; a ``url`` entry is shortened
                for the message and kept in full in the details
        """
        level = "warning" if action.lower() == "failed" else "info"
        details = details or {}
        message = f"Scraping {platform} {action}"
        if details.get("url"):
            message = f"{message}: {truncate_url(details['url'])}"
        self._log(
            level,
            {
                "category": "scrape",
                "action": action,
                "message": message,
                "details": {"platform": platform, **details},
            },
        )

    def business_activity(
        self, business_name: str, action: str, details: Optional[Dict] = None
    ) -> None:
        """Log an event about a business (resolution, sync scheduling)."""
        full_name, display_name = format_business_name(business_name)
        self._log(
            "info",
            {
                "category": "business",
                "action": action.lower(),
                "message": f"Business {action.lower()}: {display_name}",
                "details": {
                    "business_name": full_name,
                    "business_name_display": display_name,
                    **(details or {}),
                },
            },
        )

    def ai_activity(self, operation: str, status: str, details: Optional[Dict] = None) -> None:
        """
        Log AI operations.

        Args:
            operation: AI operation (discover, analyze)
            status: Operation status
            details: Optional additional details (model, tokens)
        """
        self._log(
            "info",
            {
                "category": "ai",
                "action": operation.lower(),
                "message": f"AI {operation} {status}",
                "details": details or {},
            },
        )

    def database_activity(
        self,
        operation: str,
        table: str,
        status: str,
        details: Optional[Dict] = None,
    ) -> None:
        """Log database operations."""
        self._log(
            "info",
            {
                "category": "database",
                "action": operation.lower(),
                "message": f"Database {operation} on {table}: {status}",
                "details": {"table": table, "status": status, **(details or {})},
            },
        )

    def worker_status(self, status: str, details: Optional[Dict] = None) -> None:
        """
        Log worker status changes.

        Args:
            status: Worker status (started, stopping, idle, processing)
            details: Optional additional details
        """
        self._log(
            "info",
            {
                "category": "worker",
                "action": status.lower(),
                "message": f"Worker {status}",
                "details": details or {},
            },
        )


def get_structured_logger(name: str) -> StructuredLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__).

    Returns:
        StructuredLogger instance.
    """
    return StructuredLogger(logging.getLogger(name))
