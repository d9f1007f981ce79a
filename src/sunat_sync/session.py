"""Explicit session context for authenticated requests."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .config import Config


@dataclass(frozen=True)
class Session:
    """Bearer token plus backend location, passed to whoever talks to the API."""

    base_url: str
    token: str | None = None

    @classmethod
    def from_env(cls, config: Config) -> "Session":
        token = os.environ.get(config.token_env) or None
        return cls(base_url=config.api_base_url, token=token)

    def auth_headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}
