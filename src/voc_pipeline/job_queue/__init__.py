"""Report job queue: models, SQLite-backed manager, and pipeline processor."""

from voc_pipeline.job_queue.manager import JobQueue
from voc_pipeline.job_queue.models import Job, JobMode, JobOptions, JobState
from voc_pipeline.job_queue.processor import VocJobProcessor

__all__ = ["Job", "JobMode", "JobOptions", "JobQueue", "JobState", "VocJobProcessor"]
