"""
Pydantic models for report jobs backed by SQLite.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class JobState(str, Enum):
    """
    State of a report job.

    Lifecycle: pending -> processing -> completed/failed

    - PENDING: Enqueued, waiting for a worker
    - PROCESSING: Claimed by the worker (started_at set)
    - COMPLETED: Report persisted (terminal)
    - FAILED: Pipeline error, message kept verbatim in ``error`` (terminal)
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


class JobMode(str, Enum):
    """What the processor does with a job."""

    FULL = "full"  # resolve -> scrape -> analyze
    SYNC = "sync"  # re-scrape known sources additively, then re-analyze
    REGENERATE = "regenerate"  # re-analyze the stored corpus (optionally re-scrape)


class JobOptions(BaseModel):
    """Optional pipeline parameters carried on a job."""

    industry: Optional[str] = None
    user_plan: Optional[str] = None
    rescrape: bool = False


class Job(BaseModel):
    """One queued report generation."""

    model_config = ConfigDict(use_enum_values=False)

    id: str
    company_id: str
    report_id: str
    business_name: str
    business_url: str
    mode: JobMode = JobMode.FULL
    options: JobOptions = Field(default_factory=JobOptions)
    state: JobState = JobState.PENDING
    error: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    seq: Optional[int] = None

    @staticmethod
    def _dt(value: Optional[datetime]) -> Optional[str]:
        return value.isoformat() if value else None

    def to_record(self) -> Dict[str, Any]:
        """Column values for an INSERT into voc_jobs (seq is assigned by SQLite)."""
        return {
            "id": self.id,
            "company_id": self.company_id,
            "report_id": self.report_id,
            "business_name": self.business_name,
            "business_url": self.business_url,
            "mode": self.mode.value,
            "options": self.options.model_dump_json(),
            "state": self.state.value,
            "error": self.error,
            "result": json.dumps(self.result) if self.result is not None else None,
            "created_at": self._dt(self.created_at),
            "started_at": self._dt(self.started_at),
            "completed_at": self._dt(self.completed_at),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Job":
        """Hydrate a job from a SQLite row."""

        def parse_json(value: Optional[str]) -> Optional[Dict[str, Any]]:
            if not value:
                return None
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                return None

        def parse_dt(value: Optional[str]) -> Optional[datetime]:
            return datetime.fromisoformat(value) if value else None

        return cls(
            id=record["id"],
            seq=record.get("seq"),
            company_id=record["company_id"],
            report_id=record["report_id"],
            business_name=record["business_name"],
            business_url=record["business_url"],
            mode=JobMode(record.get("mode") or JobMode.FULL.value),
            options=JobOptions(**(parse_json(record.get("options")) or {})),
            state=JobState(record["state"]),
            error=record.get("error"),
            result=parse_json(record.get("result")),
            created_at=parse_dt(record.get("created_at")),
            started_at=parse_dt(record.get("started_at")),
            completed_at=parse_dt(record.get("completed_at")),
        )

    def to_api(self) -> Dict[str, Any]:
        """camelCase view returned by the worker's HTTP API."""
        return {
            "id": self.id,
            "companyId": self.company_id,
            "reportId": self.report_id,
            "businessName": self.business_name,
            "businessUrl": self.business_url,
            "mode": self.mode.value,
            "industry": self.options.industry,
            "userPlan": self.options.user_plan,
            "state": self.state.value,
            "error": self.error,
            "result": self.result,
            "createdAt": self._dt(self.created_at),
            "startedAt": self._dt(self.started_at),
            "completedAt": self._dt(self.completed_at),
        }
