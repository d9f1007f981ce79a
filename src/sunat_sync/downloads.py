"""Deterministic file names and saving of downloaded payloads."""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from pathlib import Path

from .http_client import BinaryResponse
from .models import Comprobante, RetrievalJob

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def document_filename(document: Comprobante, ext: str) -> str:
    """``{serie}-{numero}.{ext}`` for a single document."""
    return safe_filename(f"{document.serie}-{document.numero}.{ext}")


def export_filename(entity: str, day: date | None = None, ext: str = "xlsx") -> str:
    """``{entity}_{YYYY-MM-DD}.{ext}`` for bulk exports."""
    day = day or datetime.now(timezone.utc).date()
    return safe_filename(f"{entity}_{day.isoformat()}.{ext}")


def batch_filename(moment: datetime | None = None) -> str:
    moment = moment or datetime.now(timezone.utc)
    return f"comprobantes_{int(moment.timestamp() * 1000)}.zip"


def job_archive_filename(job: RetrievalJob, content_type: str) -> str:
    """``{ruc}_{periodo}.zip`` when the payload is an archive, ``.xlsx`` otherwise."""
    is_zip = "zip" in content_type or (job.archive_url or "").endswith(".zip")
    ext = "zip" if is_zip else "xlsx"
    return safe_filename(f"{_job_entity(job)}_{job.periodo}.{ext}")


def job_excel_filename(job: RetrievalJob) -> str:
    return safe_filename(f"{_job_entity(job)}_{job.periodo}_detallado.xlsx")


def _job_entity(job: RetrievalJob) -> str:
    return job.company_ruc or f"descarga_{job.id}"


def safe_filename(name: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("_", name).strip("._")
    return cleaned or "archivo"


def save_payload(directory: Path, filename: str, payload: BinaryResponse) -> Path:
    """Write the payload under ``directory``; an existing file is overwritten."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / safe_filename(filename)
    path.write_bytes(payload.content)
    return path
