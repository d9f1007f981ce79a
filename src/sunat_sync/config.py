"""Configuration model and helpers.

Data contract:
- api_base_url: base URL of the backend API (``/api/v1`` prefix included)
- user_agent: User-Agent header for HTTP requests
- request_timeout_sec: timeout in seconds for HTTP requests
- rate_limit_rps: max requests per second
- retry: retry policy for idempotent requests (max attempts, backoff seconds)
- jobs_poll_interval_sec: poll period for the downloads list
- dashboard_poll_interval_sec: poll period for the dashboard triage view
- recent_jobs_limit: how many recent jobs the dashboard asks for
- search_debounce_ms: pause in typing before free-text search is applied
- default_page_size: page size used when the address bar does not set one
- token_env: environment variable holding the bearer token
"""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, Field


class RetryPolicy(BaseModel):
    """Retry policy for HTTP requests."""

    max_attempts: int = Field(..., ge=1)
    backoff_sec: float = Field(..., ge=0)


class Config(BaseModel):
    """Root configuration model for sunat_sync."""

    api_base_url: str
    user_agent: str
    request_timeout_sec: int = Field(..., ge=1)
    rate_limit_rps: int = Field(..., ge=1)
    retry: RetryPolicy
    jobs_poll_interval_sec: float = Field(..., gt=0)
    dashboard_poll_interval_sec: float = Field(..., gt=0)
    recent_jobs_limit: int = Field(..., ge=1)
    search_debounce_ms: int = Field(..., ge=0)
    default_page_size: int = Field(..., ge=1, le=500)
    token_env: str


def default_config() -> Config:
    """Return default configuration values."""
    return Config(
        api_base_url="http://localhost:4003/api/v1",
        user_agent="sunat_sync/0.1",
        request_timeout_sec=30,
        rate_limit_rps=5,
        retry=RetryPolicy(max_attempts=3, backoff_sec=1),
        jobs_poll_interval_sec=10,
        dashboard_poll_interval_sec=5,
        recent_jobs_limit=10,
        search_debounce_ms=300,
        default_page_size=50,
        token_env="SUNAT_SYNC_TOKEN",
    )


def load_config(path: Path) -> Config:
    """Load and validate config.yml from disk."""
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    return Config.model_validate(data)


def save_config(config: Config, path: Path) -> None:
    """Save config.yml to disk."""
    payload = config.model_dump()
    path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
