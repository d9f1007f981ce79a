"""State model and helpers.

Data contract:
- schema_version: integer version for future migrations
- query: canonical filter query string (the address bar of the document list)
- last_poll_at: ISO timestamp of the last successful job poll, or null
- notes: freeform notes for operators
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field


class State(BaseModel):
    """Persistent client state."""

    schema_version: int = Field(..., ge=1)
    query: str
    last_poll_at: Optional[datetime]
    notes: str


def default_state() -> State:
    """Return the initial state (default filters, never polled)."""
    return State(
        schema_version=1,
        query="",
        last_poll_at=None,
        notes="Estado inicial",
    )


def load_state(path: Path) -> State:
    """Load and validate state.json from disk."""
    data = json.loads(path.read_text(encoding="utf-8"))
    return State.model_validate(data)


def save_state(state: State, path: Path) -> None:
    """Save state.json to disk."""
    payload = state.model_dump(mode="json")
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
