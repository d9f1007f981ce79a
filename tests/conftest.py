from __future__ import annotations

import threading
from datetime import datetime

import pytest

from sunat_sync.filters import FilterState
from sunat_sync.http_client import BinaryResponse, HttpClientError
from sunat_sync.models import Comprobante, DocumentPage, JobFile, RetrievalJob
from sunat_sync.notifications import NotificationCenter


def make_job(job_id: str, estado: str, day: int = 1, **extra) -> RetrievalJob:
    payload = {
        "id": job_id,
        "estado": estado,
        "periodo": "2024-03",
        "modulos": ["facturas_emitidas"],
        "formatos": ["xml", "pdf"],
        "created_at": f"2024-04-{day:02d}T10:00:00",
        "empresa_ruc": "20123456789",
        "empresa_razon_social": "Comercial Andina SAC",
    }
    payload.update(extra)
    return RetrievalJob.model_validate(payload)


def make_document(doc_id: str, numero: int = 1, modulo: str = "facturas_emitidas") -> Comprobante:
    return Comprobante(
        id=doc_id,
        tipo="factura",
        serie="F001",
        numero=str(numero),
        fecha_emision=datetime(2024, 3, 1, 12, 0),
        ruc_emisor="20123456789",
        razon_emisor="Comercial Andina SAC",
        ruc_receptor="20987654321",
        razon_receptor="Cliente Uno SRL",
        total=118.0,
        modulo=modulo,
        has_xml=True,
        has_pdf=True,
    )


class FakeJobsBackend:
    """Scripted stand-in for the job endpoints."""

    def __init__(self, jobs: list[RetrievalJob] | None = None) -> None:
        self.jobs = list(jobs or [])
        self.calls: list[tuple] = []
        self.list_error: Exception | None = None
        self.action_error: Exception | None = None
        self.excel_error: Exception | None = None
        self.files: list[JobFile] = []

    @property
    def list_calls(self) -> int:
        return sum(1 for call in self.calls if call[0] == "list")

    def list_jobs(self, limit=None):
        self.calls.append(("list", limit))
        if self.list_error is not None:
            raise self.list_error
        return list(self.jobs)

    def create_job(self, request):
        self.calls.append(("create", request))
        if self.action_error is not None:
            raise self.action_error
        return None

    def retry_job(self, job_id):
        self.calls.append(("retry", job_id))
        if self.action_error is not None:
            raise self.action_error

    def cancel_job(self, job_id):
        self.calls.append(("cancel", job_id))
        if self.action_error is not None:
            raise self.action_error

    def list_job_files(self, job_id):
        self.calls.append(("files", job_id))
        return list(self.files)

    def download_job_archive(self, job_id):
        self.calls.append(("archive", job_id))
        return BinaryResponse(b"PK\x03\x04", "application/zip")

    def download_job_excel(self, job_id):
        self.calls.append(("excel", job_id))
        if self.excel_error is not None:
            raise self.excel_error
        return BinaryResponse(b"xlsx", "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet")

    def download_job_file(self, file_id):
        self.calls.append(("file", file_id))
        return BinaryResponse(b"<xml/>", "application/xml")


class FakeDocumentsBackend:
    """Serves ``total`` synthetic documents; a gate per document type can hold a request."""

    def __init__(self, total: int = 120) -> None:
        self.total = total
        self.calls: list[FilterState] = []
        self.batch_calls: list[tuple] = []
        self.gates: dict[str, threading.Event] = {}
        self.error: Exception | None = None

    def list_documents(self, filters: FilterState) -> DocumentPage:
        self.calls.append(filters)
        gate = self.gates.get(filters.document_type)
        if gate is not None:
            gate.wait(timeout=5)
        if self.error is not None:
            raise self.error
        start = filters.offset
        end = min(start + filters.page_size, self.total)
        items = [make_document(f"{filters.document_type}-{n}", n) for n in range(start, end)]
        return DocumentPage(items=items, total=self.total, skip=start, limit=filters.page_size)

    def download_document(self, document_id, kind):
        self.batch_calls.append(("document", document_id, kind))
        if self.error is not None:
            raise self.error
        return BinaryResponse(b"<Invoice/>", "application/xml")

    def batch_download(self, ids, formato):
        self.batch_calls.append(("batch", list(ids), formato))
        gate = self.gates.get("batch")
        if gate is not None:
            gate.wait(timeout=5)
        if self.error is not None:
            raise self.error
        return BinaryResponse(b"PK\x03\x04", "application/zip")

    def export_documents(self, filters):
        self.batch_calls.append(("export", filters))
        if self.error is not None:
            raise self.error
        return BinaryResponse(b"xlsx", "application/vnd.ms-excel")

    def export_selection(self, ids):
        self.batch_calls.append(("export_selection", list(ids)))
        return BinaryResponse(b"xlsx", "application/vnd.ms-excel")


@pytest.fixture
def notifier() -> NotificationCenter:
    return NotificationCenter()


@pytest.fixture
def server_error() -> HttpClientError:
    return HttpClientError("GET /comprobantes failed with status 500", status_code=500, detail="Servicio no disponible")
