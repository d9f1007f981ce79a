"""Endpoint methods of the downloads backend."""

from __future__ import annotations

from typing import Iterable, List, Protocol, Sequence

from .filters import FilterState, backend_params, export_params
from .http_client import BinaryResponse, HttpClient
from .models import (
    Company,
    CredentialCheck,
    DocumentPage,
    JobFile,
    JobRequest,
    RetrievalJob,
    ScheduledDownload,
    ScheduleRequest,
)

BATCH_FORMATS = ("xml", "pdf", "all")
DOCUMENT_KINDS = ("xml", "pdf")


class JobsBackend(Protocol):
    def list_jobs(self, limit: int | None = None) -> List[RetrievalJob]: ...

    def create_job(self, request: JobRequest) -> RetrievalJob | None: ...

    def retry_job(self, job_id: str) -> None: ...

    def cancel_job(self, job_id: str) -> None: ...

    def list_job_files(self, job_id: str) -> List[JobFile]: ...

    def download_job_archive(self, job_id: str) -> BinaryResponse: ...

    def download_job_excel(self, job_id: str) -> BinaryResponse: ...

    def download_job_file(self, file_id: str) -> BinaryResponse: ...


class DocumentsBackend(Protocol):
    def list_documents(self, filters: FilterState) -> DocumentPage: ...

    def download_document(self, document_id: str, kind: str) -> BinaryResponse: ...

    def batch_download(self, ids: Sequence[str], formato: str) -> BinaryResponse: ...

    def export_documents(self, filters: FilterState) -> BinaryResponse: ...

    def export_selection(self, ids: Sequence[str]) -> BinaryResponse: ...


class PortalApi:
    """Typed wrapper over the jobs, schedules, documents and companies routes."""

    def __init__(self, client: HttpClient) -> None:
        self._client = client

    # Jobs

    def list_jobs(self, limit: int | None = None) -> List[RetrievalJob]:
        params = {"limit": limit} if limit is not None else None
        data = self._client.get_json("/descargas", params=params)
        return [RetrievalJob.model_validate(item) for item in data]

    def get_job(self, job_id: str) -> RetrievalJob:
        return RetrievalJob.model_validate(self._client.get_json(f"/descargas/{job_id}"))

    def create_job(self, request: JobRequest) -> RetrievalJob | None:
        payload = request.model_dump(exclude_none=True)
        data = self._client.post_json("/descargas", payload)
        if isinstance(data, dict) and "estado" in data:
            return RetrievalJob.model_validate(data)
        return None

    def retry_job(self, job_id: str) -> None:
        self._client.post_json(f"/descargas/{job_id}/retry")

    def cancel_job(self, job_id: str) -> None:
        self._client.post_json(f"/descargas/{job_id}/cancel")

    def list_job_files(self, job_id: str) -> List[JobFile]:
        data = self._client.get_json(f"/descargas/{job_id}/archivos")
        return [JobFile.model_validate(item) for item in data.get("archivos", [])]

    def download_job_archive(self, job_id: str) -> BinaryResponse:
        return self._client.get_bytes(f"/descargas/{job_id}/download")

    def download_job_excel(self, job_id: str) -> BinaryResponse:
        return self._client.get_bytes(f"/descargas/{job_id}/excel")

    def download_job_file(self, file_id: str) -> BinaryResponse:
        return self._client.get_bytes(f"/descargas/archivos/{file_id}/download")

    # Companies

    def list_companies(self, active: bool | None = None) -> List[Company]:
        params = {"activa": str(active).lower()} if active is not None else None
        data = self._client.get_json("/empresas", params=params)
        return [Company.model_validate(item) for item in data]

    def validate_company(self, company_id: str) -> CredentialCheck:
        """Ask the backend to log in to SOL with the stored credentials."""
        return CredentialCheck.model_validate(self._client.post_json(f"/empresas/{company_id}/validate"))

    # Scheduled downloads

    def list_schedules(self) -> List[ScheduledDownload]:
        data = self._client.get_json("/descargas-programadas")
        return [ScheduledDownload.model_validate(item) for item in data]

    def create_schedule(self, request: ScheduleRequest) -> ScheduledDownload | None:
        data = self._client.post_json("/descargas-programadas", request.payload())
        if isinstance(data, dict) and "frecuencia" in data:
            return ScheduledDownload.model_validate(data)
        return None

    def toggle_schedule(self, schedule_id: str) -> None:
        self._client.post_json(f"/descargas-programadas/{schedule_id}/toggle")

    def run_schedule(self, schedule_id: str) -> None:
        self._client.post_json(f"/descargas-programadas/{schedule_id}/ejecutar")

    def delete_schedule(self, schedule_id: str) -> None:
        self._client.delete_json(f"/descargas-programadas/{schedule_id}")

    # Documents

    def list_documents(self, filters: FilterState) -> DocumentPage:
        data = self._client.get_json("/comprobantes", params=backend_params(filters))
        return DocumentPage.model_validate(data)

    def download_document(self, document_id: str, kind: str) -> BinaryResponse:
        if kind not in DOCUMENT_KINDS:
            raise ValueError(f"Tipo de archivo no soportado: {kind}")
        return self._client.get_bytes(f"/comprobantes/{document_id}/{kind}")

    def batch_download(self, ids: Sequence[str], formato: str) -> BinaryResponse:
        if formato not in BATCH_FORMATS:
            raise ValueError(f"Formato no soportado: {formato}")
        return self._client.post_bytes(
            "/comprobantes/batch/download",
            {"ids": _id_list(ids), "formato": formato},
        )

    def export_documents(self, filters: FilterState) -> BinaryResponse:
        return self._client.get_bytes("/comprobantes/export/excel", params=export_params(filters))

    def export_selection(self, ids: Sequence[str]) -> BinaryResponse:
        return self._client.post_bytes("/comprobantes/export/excel", {"ids": _id_list(ids)})


def _id_list(ids: Iterable[str]) -> list[str]:
    return sorted(set(ids))
