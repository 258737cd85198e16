"""SQLite connection utilities for the worker."""

from __future__ import annotations

import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from voc_pipeline.exceptions import ConfigurationError


PROJECT_ROOT = Path(__file__).resolve().parents[3]
DEFAULT_DB_PATH = PROJECT_ROOT / "data" / "voc.db"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS voc_reports (
    id TEXT PRIMARY KEY,
    company_id TEXT NOT NULL,
    business_name TEXT NOT NULL,
    business_url TEXT NOT NULL,
    industry TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    progress_message TEXT,
    analysis TEXT,
    sources TEXT,
    processed_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_voc_reports_company ON voc_reports(company_id);

CREATE TABLE IF NOT EXISTS reviews (
    id TEXT PRIMARY KEY,
    company_id TEXT NOT NULL,
    report_id TEXT,
    source TEXT NOT NULL,
    external_review_id TEXT,
    reviewer_name TEXT,
    rating INTEGER,
    review_text TEXT NOT NULL,
    review_date TEXT,
    fingerprint TEXT NOT NULL,
    scraped_at TEXT NOT NULL,
    UNIQUE(company_id, fingerprint)
);

CREATE INDEX IF NOT EXISTS idx_reviews_report ON reviews(report_id);

CREATE TABLE IF NOT EXISTS voc_jobs (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    company_id TEXT NOT NULL,
    report_id TEXT NOT NULL,
    business_name TEXT NOT NULL,
    business_url TEXT NOT NULL,
    mode TEXT NOT NULL DEFAULT 'full',
    options TEXT,
    state TEXT NOT NULL DEFAULT 'pending',
    error TEXT,
    result TEXT,
    created_at TEXT NOT NULL,
    started_at TEXT,
    completed_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_voc_jobs_state ON voc_jobs(state);
CREATE INDEX IF NOT EXISTS idx_voc_jobs_company ON voc_jobs(company_id);
"""


def resolve_db_path(db_path: Optional[str] = None) -> Path:
    """
    Resolve the SQLite database path using env vars with sane defaults.

    Order of precedence:
        1. Explicit db_path argument
        2. VOC_SQLITE_PATH env var
        3. data/voc.db inside the repository
    """
    path = db_path or os.getenv("VOC_SQLITE_PATH") or str(DEFAULT_DB_PATH)
    return Path(path).expanduser().resolve()


def _create_connection(resolved_path: Path) -> sqlite3.Connection:
    """Create a configured sqlite3 connection."""
    conn = sqlite3.connect(resolved_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute("PRAGMA busy_timeout = 5000;")
    return conn


@contextmanager
def sqlite_connection(db_path: Optional[str] = None) -> Iterator[sqlite3.Connection]:
    """
    Context manager that yields a configured sqlite3 connection.

    Each call opens a fresh connection to avoid cross-thread issues.
    """
    resolved_path = resolve_db_path(db_path)
    if not resolved_path.exists():
        raise ConfigurationError(
            f"SQLite database not found at {resolved_path}. "
            "Set VOC_SQLITE_PATH or call ensure_schema() to create it."
        )
    conn = _create_connection(resolved_path)
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def ensure_schema(db_path: Optional[str] = None) -> Path:
    """Create the database file and tables if they do not exist yet."""
    resolved_path = resolve_db_path(db_path)
    try:
        resolved_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigurationError(f"Cannot create database directory for {resolved_path}") from exc

    conn = _create_connection(resolved_path)
    try:
        conn.executescript(SCHEMA_SQL)
        conn.commit()
    finally:
        conn.close()
    return resolved_path

