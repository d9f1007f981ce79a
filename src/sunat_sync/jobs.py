"""Live view of bulk-download jobs: polling, triage and user actions.

The controller never changes a job locally. Retry and cancel are sent to
the backend and their effect shows up on the next poll.

State machine as seen from here::

    pending -> processing -> completed | failed
    pending | processing -> cancelled   (cancel)
    failed -> pending                   (retry)

completed and cancelled are terminal.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, NoReturn, Sequence

from .api import JobsBackend
from .downloads import job_archive_filename, job_excel_filename, save_payload
from .error_messages import FriendlyError, classify
from .http_client import HttpClientError
from .models import JobFile, JobRequest, JobState, RetrievalJob
from .notifications import NotificationCenter, error_message

HISTORY_SIZE = 3


class JobActionError(RuntimeError):
    """Raised when a retry/cancel/create/download requested by the user fails."""


@dataclass(frozen=True)
class JobTriage:
    processing: tuple[RetrievalJob, ...]
    failed: tuple[RetrievalJob, ...]
    last_completed: RetrievalJob | None
    history: tuple[RetrievalJob, ...]

    @property
    def has_activity(self) -> bool:
        return bool(self.processing or self.failed or self.last_completed)

    def failures(self) -> list[tuple[RetrievalJob, FriendlyError]]:
        return [(job, classify(job.error_text)) for job in self.failed]


def newest_first(jobs: Iterable[RetrievalJob]) -> list[RetrievalJob]:
    return sorted(jobs, key=lambda job: job.created_at, reverse=True)


def triage(jobs: Iterable[RetrievalJob], history_size: int = HISTORY_SIZE) -> JobTriage:
    """Pick what the dashboard shows first.

    Every processing and failed job, the latest completed one, and up to
    ``history_size`` older completed jobs, all newest first.
    """
    ordered = newest_first(jobs)
    completed = [job for job in ordered if job.state is JobState.COMPLETED]
    return JobTriage(
        processing=tuple(job for job in ordered if job.state is JobState.PROCESSING),
        failed=tuple(job for job in ordered if job.state is JobState.FAILED),
        last_completed=completed[0] if completed else None,
        history=tuple(completed[1 : 1 + history_size]),
    )


JobsListener = Callable[[tuple[RetrievalJob, ...]], None]


class JobController:
    """Polls the job list on a fixed period and exposes retry/cancel.

    At most one timer exists per controller and at most one poll is in
    flight; a poll requested while another is running waits for that one.
    """

    def __init__(
        self,
        backend: JobsBackend,
        notifier: NotificationCenter,
        *,
        interval_sec: float = 10.0,
        limit: int | None = None,
        download_dir: Path | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._backend = backend
        self._notifier = notifier
        self._interval_sec = interval_sec
        self._limit = limit
        self._download_dir = download_dir
        self._logger = logger or logging.getLogger("sunat_sync.jobs")
        self._jobs: tuple[RetrievalJob, ...] = ()
        self._last_polled_at: datetime | None = None
        self._timer: asyncio.Task[None] | None = None
        self._inflight: asyncio.Task[tuple[RetrievalJob, ...]] | None = None
        self._listeners: list[JobsListener] = []

    @property
    def jobs(self) -> tuple[RetrievalJob, ...]:
        return self._jobs

    @property
    def last_polled_at(self) -> datetime | None:
        return self._last_polled_at

    @property
    def is_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def subscribe(self, listener: JobsListener) -> None:
        self._listeners.append(listener)

    def find(self, job_id: str) -> RetrievalJob | None:
        for job in self._jobs:
            if job.id == job_id:
                return job
        return None

    def triage(self, history_size: int = HISTORY_SIZE) -> JobTriage:
        return triage(self._jobs, history_size)

    # Lifecycle

    async def start(self) -> None:
        if self.is_running:
            return
        self._timer = asyncio.create_task(self._run())

    async def stop(self) -> None:
        timer, self._timer = self._timer, None
        if timer is None:
            return
        timer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await timer

    async def __aenter__(self) -> "JobController":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    async def _run(self) -> None:
        while True:
            await self.poll()
            await asyncio.sleep(self._interval_sec)

    # Polling

    async def poll(self) -> tuple[RetrievalJob, ...]:
        """Refresh the job list; failures keep the last known list."""
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.create_task(self._poll_once())
        return await asyncio.shield(self._inflight)

    async def _poll_once(self) -> tuple[RetrievalJob, ...]:
        try:
            jobs = await asyncio.to_thread(self._backend.list_jobs, self._limit)
        except (HttpClientError, ValueError) as exc:
            self._logger.warning("No se pudo actualizar la lista de descargas: %s", exc)
            return self._jobs
        self._jobs = tuple(newest_first(jobs))
        self._last_polled_at = datetime.now(timezone.utc)
        for listener in list(self._listeners):
            listener(self._jobs)
        return self._jobs

    # Actions

    async def create(self, request: JobRequest) -> None:
        await self._action(
            self._backend.create_job,
            request,
            success="Descarga iniciada",
            failure="Error al crear descarga",
        )

    async def retry(self, job_id: str) -> None:
        job = self._require(job_id)
        if not job.can_retry:
            self._reject(f"Solo se pueden reintentar descargas fallidas (estado: {job.state.value})")
        await self._action(
            self._backend.retry_job,
            job_id,
            success="Reintentando descarga",
            failure="Error al reintentar",
        )

    async def cancel(self, job_id: str) -> None:
        job = self._require(job_id)
        if not job.can_cancel:
            self._reject(
                f"Solo se pueden cancelar descargas pendientes o en proceso (estado: {job.state.value})"
            )
        await self._action(
            self._backend.cancel_job,
            job_id,
            success="Descarga cancelada",
            failure="Error al cancelar",
        )

    async def files(self, job_id: str) -> list[JobFile]:
        try:
            return await asyncio.to_thread(self._backend.list_job_files, job_id)
        except (HttpClientError, ValueError) as exc:
            self._fail(exc, "Error al cargar archivos")

    async def download_archive(self, job: RetrievalJob) -> Path:
        if job.state is not JobState.COMPLETED:
            self._reject("El archivo no está disponible")
        payload = await self._fetch(self._backend.download_job_archive, job.id, "Error al descargar el archivo")
        path = self._save(job_archive_filename(job, payload.content_type), payload)
        kind = "ZIP" if path.suffix == ".zip" else "Excel"
        self._notifier.success(f"{kind} descargado")
        return path

    async def download_excel(self, job: RetrievalJob) -> Path:
        try:
            payload = await asyncio.to_thread(self._backend.download_job_excel, job.id)
        except (HttpClientError, ValueError) as exc:
            if isinstance(exc, HttpClientError) and exc.status_code == 404:
                self._fail(exc, "Excel no disponible para esta descarga", prefer_detail=False)
            self._fail(exc, "Error al descargar el Excel")
        path = self._save(job_excel_filename(job), payload)
        self._notifier.success("Excel detallado descargado")
        return path

    async def download_file(self, job_file: JobFile) -> Path:
        payload = await self._fetch(
            self._backend.download_job_file, job_file.id, "Error al descargar archivo"
        )
        return self._save(job_file.nombre, payload)

    async def _action(self, call: Callable[[Any], Any], arg: Any, *, success: str, failure: str) -> None:
        try:
            await asyncio.to_thread(call, arg)
        except (HttpClientError, ValueError) as exc:
            self._fail(exc, failure)
        self._notifier.success(success)
        await self.poll()

    async def _fetch(self, call: Callable[[str], Any], arg: str, failure: str) -> Any:
        try:
            return await asyncio.to_thread(call, arg)
        except (HttpClientError, ValueError) as exc:
            self._fail(exc, failure)

    def _save(self, filename: str, payload: Any) -> Path:
        if self._download_dir is None:
            self._reject("No hay directorio de descargas configurado")
        try:
            return save_payload(self._download_dir, filename, payload)
        except OSError as exc:
            self._fail(exc, f"No se pudo guardar {filename}")

    def _require(self, job_id: str) -> RetrievalJob:
        job = self.find(job_id)
        if job is None:
            self._reject(f"Descarga no encontrada: {job_id}")
        return job

    def _reject(self, message: str) -> NoReturn:
        self._notifier.error(message)
        raise JobActionError(message)

    def _fail(self, exc: Exception, fallback: str, prefer_detail: bool = True) -> NoReturn:
        message = error_message(exc, fallback) if prefer_detail else fallback
        self._notifier.error(message)
        raise JobActionError(message) from exc


def summarize(jobs: Sequence[RetrievalJob]) -> dict[str, int]:
    counts = {state.value: 0 for state in JobState}
    for job in jobs:
        counts[job.state.value] += 1
    return counts
