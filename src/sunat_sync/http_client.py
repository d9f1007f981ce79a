"""Lightweight HTTP client for sunat_sync."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Mapping

import requests

from .config import Config
from .session import Session

_IDEMPOTENT_METHODS = frozenset({"GET", "HEAD"})


class HttpClientError(RuntimeError):
    """Raised when a request fails or the backend answers with an error status."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        detail: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


@dataclass(frozen=True)
class HttpClientConfig:
    """Configuration for HTTP requests."""

    rate_limit_rps: int
    timeout_sec: int
    max_attempts: int
    backoff_sec: float
    user_agent: str

    @classmethod
    def from_config(cls, config: Config) -> "HttpClientConfig":
        return cls(
            rate_limit_rps=config.rate_limit_rps,
            timeout_sec=config.request_timeout_sec,
            max_attempts=config.retry.max_attempts,
            backoff_sec=config.retry.backoff_sec,
            user_agent=config.user_agent,
        )


@dataclass(frozen=True)
class BinaryResponse:
    """Raw payload of a file download."""

    content: bytes
    content_type: str


class HttpClient:
    """Minimal requests-based HTTP client with retries, rate limiting and bearer auth.

    Only GET/HEAD are retried. POST requests trigger server-side actions
    (retry, cancel, batch downloads) and are sent exactly once.
    """

    def __init__(
        self,
        config: HttpClientConfig,
        session: Session,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._base_url = session.base_url.rstrip("/")
        self._session = requests.Session()
        self._session.headers.update({"User-Agent": config.user_agent})
        self._session.headers.update(session.auth_headers())
        self._logger = logger or logging.getLogger("sunat_sync.http")
        self._last_request_at: float | None = None
        self._rate_lock = threading.Lock()

    def url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    def get_json(self, path: str, params: Mapping[str, Any] | None = None) -> Any:
        """Perform a GET request and return the decoded JSON body."""
        response = self._checked("GET", path, params=params)
        return response.json()

    def post_json(self, path: str, payload: Any | None = None) -> Any:
        """Perform a POST request with a JSON body and return the decoded JSON body."""
        response = self._checked("POST", path, json=payload if payload is not None else {})
        if not response.content:
            return None
        return response.json()

    def delete_json(self, path: str) -> Any:
        """Perform a DELETE request; an empty body returns None."""
        response = self._checked("DELETE", path)
        if not response.content:
            return None
        return response.json()

    def get_bytes(self, path: str, params: Mapping[str, Any] | None = None) -> BinaryResponse:
        """Perform a GET request and return raw bytes."""
        response = self._checked("GET", path, params=params)
        return BinaryResponse(response.content, response.headers.get("Content-Type", ""))

    def post_bytes(self, path: str, payload: Any) -> BinaryResponse:
        """Perform a POST request with a JSON body and return raw bytes."""
        response = self._checked("POST", path, json=payload)
        return BinaryResponse(response.content, response.headers.get("Content-Type", ""))

    def _checked(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        url = self.url(path)
        response = self._request(method, url, **kwargs)
        if not response.ok:
            detail = _error_detail(response)
            raise HttpClientError(
                f"{method} {url} failed with status {response.status_code}",
                status_code=response.status_code,
                detail=detail,
            )
        return response

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        max_attempts = self._config.max_attempts if method in _IDEMPOTENT_METHODS else 1
        for attempt in range(1, max_attempts + 1):
            self._rate_limit_sleep()
            try:
                response = self._session.request(
                    method,
                    url,
                    timeout=self._config.timeout_sec,
                    allow_redirects=True,
                    **kwargs,
                )
                if response.status_code >= 500 and attempt < max_attempts:
                    raise HttpClientError(
                        f"{method} {url} -> {response.status_code}",
                        status_code=response.status_code,
                    )
                return response
            except (requests.RequestException, HttpClientError) as exc:
                is_last = attempt == max_attempts
                self._logger.warning(
                    "HTTP error (%s %s) attempt %s/%s: %s",
                    method,
                    url,
                    attempt,
                    max_attempts,
                    exc,
                )
                if is_last:
                    status_code = exc.status_code if isinstance(exc, HttpClientError) else None
                    raise HttpClientError(str(exc), status_code=status_code) from exc
                backoff = self._config.backoff_sec * (2 ** (attempt - 1))
                time.sleep(backoff)
        raise HttpClientError(f"{method} {url} failed after retries")

    def _rate_limit_sleep(self) -> None:
        # Controllers share this client across executor threads.
        min_interval = 1 / self._config.rate_limit_rps
        with self._rate_lock:
            now = time.monotonic()
            if self._last_request_at is not None:
                elapsed = now - self._last_request_at
                if elapsed < min_interval:
                    time.sleep(min_interval - elapsed)
            self._last_request_at = time.monotonic()


def _error_detail(response: requests.Response) -> str | None:
    try:
        payload = response.json()
    except ValueError:
        return None
    if isinstance(payload, dict):
        detail = payload.get("detail")
        if isinstance(detail, str):
            return detail
    return None
