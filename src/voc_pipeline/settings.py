"""Runtime settings loaded from the environment with an optional YAML overlay.

Usage:
    from voc_pipeline.settings import get_settings

    settings = get_settings()
    timeout = settings.fetch_timeout_seconds
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from voc_pipeline import constants
from voc_pipeline.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


# Environment variable -> settings field
ENV_FIELDS: Dict[str, str] = {
    "VOC_SQLITE_PATH": "db_path",
    "SCRAPER_API_KEY": "scraper_api_key",
    "RENDER_BACKEND": "render_backend",
    "FETCH_TIMEOUT_SECONDS": "fetch_timeout_seconds",
    "VALIDATION_TIMEOUT_SECONDS": "validation_timeout_seconds",
    "SCRAPE_CONCURRENCY": "scrape_concurrency",
    "MAX_CONCURRENT_JOBS": "max_concurrent_jobs",
    "JOB_TIMEOUT_SECONDS": "job_timeout_seconds",
    "JOB_RETENTION": "job_retention",
    "PURGE_INTERVAL_SECONDS": "purge_interval_seconds",
    "SYNC_LOOKBACK_DAYS": "sync_lookback_days",
    "ANALYSIS_TEMPERATURE": "analysis_temperature",
    "ANALYSIS_MAX_TOKENS": "analysis_max_tokens",
    "AI_DISCOVERY_ENABLED": "ai_discovery_enabled",
}


class WorkerSettings(BaseModel):
    """Typed worker configuration."""

    model_config = ConfigDict(extra="ignore")

    db_path: Optional[str] = None
    scraper_api_key: Optional[str] = None
    render_backend: Literal["proxy", "playwright"] = "proxy"
    fetch_timeout_seconds: float = Field(default=constants.DEFAULT_FETCH_TIMEOUT, gt=0)
    validation_timeout_seconds: float = Field(default=constants.DEFAULT_VALIDATION_TIMEOUT, gt=0)
    scrape_concurrency: int = Field(default=constants.DEFAULT_SCRAPE_CONCURRENCY, ge=1, le=8)
    max_concurrent_jobs: int = Field(default=constants.DEFAULT_MAX_CONCURRENT_JOBS, ge=1, le=4)
    job_timeout_seconds: int = Field(default=constants.DEFAULT_JOB_TIMEOUT, ge=5)
    job_retention: int = Field(default=constants.DEFAULT_JOB_RETENTION, ge=0)
    purge_interval_seconds: int = Field(default=constants.DEFAULT_PURGE_INTERVAL, ge=1)
    sync_lookback_days: int = Field(default=constants.DEFAULT_SYNC_LOOKBACK_DAYS, ge=1)
    analysis_temperature: float = Field(default=constants.DEFAULT_ANALYSIS_TEMPERATURE, ge=0, le=1)
    analysis_max_tokens: int = Field(default=constants.DEFAULT_ANALYSIS_MAX_TOKENS, ge=256)
    ai_discovery_enabled: bool = True


def _load_yaml_overlay() -> Dict[str, Any]:
    """Read the optional YAML file named by CONFIG_PATH."""
    override_path = os.getenv("CONFIG_PATH") or os.getenv("WORKER_CONFIG_PATH")
    if not override_path:
        return {}

    path = Path(override_path).expanduser()
    if not path.exists():
        logger.warning("Config file %s not found; using environment only", path)
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Failed to read config file {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")

    # Allow either a flat mapping or one nested under "worker"
    return data.get("worker", data)


def load_settings() -> WorkerSettings:
    """
    Build settings from the YAML overlay and the environment.

    Environment variables win over the YAML file.

    Raises:
        ConfigurationError: If any value fails validation
    """
    values: Dict[str, Any] = dict(_load_yaml_overlay())

    for env_name, field_name in ENV_FIELDS.items():
        raw = os.getenv(env_name)
        if raw is not None and raw != "":
            values[field_name] = raw

    try:
        return WorkerSettings(**values)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid worker settings: {exc}") from exc


@lru_cache(maxsize=1)
def get_settings() -> WorkerSettings:
    """Return process-wide settings, resolved once."""
    settings = load_settings()
    logger.debug("Loaded worker settings: %s", settings.model_dump(exclude={"scraper_api_key"}))
    return settings
