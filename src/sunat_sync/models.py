"""Wire models for the downloads backend.

Data contract (backend field names in parentheses):
- RetrievalJob: one bulk-download request ("descarga"). The client only
  observes it; state changes happen server-side.
- Comprobante: one retrieved document summary.
- DocumentPage: one page of the document listing (items, total, skip, limit).
- Company, JobFile, JobRequest: companies, per-module files of a finished
  job, and the payload that creates a job.
- ScheduledDownload, ScheduleRequest: recurring downloads run by the backend
  ("descargas programadas") and the payload that creates one.
- CredentialCheck: outcome of validating a company's SOL credentials.

Timestamps arrive without a zone suffix but are UTC; validators attach UTC
so nothing downstream interprets them as local time.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_PERIODO_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class JobState(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Company(_WireModel):
    id: str
    ruc: str
    razon_social: Optional[str] = None
    validada: bool = False
    activa: bool = True
    grupo: Optional[str] = None


class RetrievalJob(_WireModel):
    """Bulk document retrieval job as returned by ``GET /descargas``."""

    id: str
    state: JobState = Field(alias="estado")
    periodo: str
    modulos: List[str] = Field(default_factory=list)
    formatos: List[str] = Field(default_factory=list)
    progress: int = Field(default=0, alias="progreso", ge=0, le=100)
    progress_message: Optional[str] = Field(default=None, alias="mensaje_progreso")
    error_text: Optional[str] = Field(default=None, alias="errores")
    result_count: int = Field(default=0, alias="total_comprobantes")
    created_at: datetime
    company_ruc: Optional[str] = Field(default=None, alias="empresa_ruc")
    company_name: Optional[str] = Field(default=None, alias="empresa_razon_social")
    archive_url: Optional[str] = Field(default=None, alias="archivo_url")
    excel_url: Optional[str] = Field(default=None, alias="excel_url")

    @field_validator("created_at")
    @classmethod
    def _created_at_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @property
    def can_retry(self) -> bool:
        return self.state is JobState.FAILED

    @property
    def can_cancel(self) -> bool:
        return self.state in (JobState.PENDING, JobState.PROCESSING)


class JobFile(_WireModel):
    id: str
    modulo: str
    nombre: str
    tipo_archivo: str
    tamano_bytes: int = 0


class JobRequest(_WireModel):
    """Payload for ``POST /descargas``."""

    empresa_id: Optional[str] = None
    periodo: str
    modulos: List[str] = Field(..., min_length=1)
    formatos: List[str] = Field(..., min_length=1)

    @field_validator("periodo")
    @classmethod
    def _valid_periodo(cls, value: str) -> str:
        if not _PERIODO_RE.match(value):
            raise ValueError("periodo debe tener formato YYYY-MM")
        return value


class Comprobante(_WireModel):
    """Document summary row of the listing."""

    id: str
    tipo: str
    serie: str
    numero: str
    fecha_emision: datetime
    ruc_emisor: str
    razon_emisor: Optional[str] = None
    ruc_receptor: Optional[str] = None
    razon_receptor: Optional[str] = None
    moneda: str = "PEN"
    total: Optional[float] = None
    modulo: str = ""
    has_xml: bool = False
    has_pdf: bool = False

    @field_validator("fecha_emision")
    @classmethod
    def _fecha_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @property
    def is_issued(self) -> bool:
        return "emitidas" in self.modulo

    def counterparty(self) -> tuple[Optional[str], Optional[str]]:
        """Return (ruc, name) of the other party: receiver when issued, issuer when received."""
        if self.is_issued:
            return self.ruc_receptor, self.razon_receptor
        return self.ruc_emisor, self.razon_emisor


class DocumentPage(_WireModel):
    items: List[Comprobante] = Field(default_factory=list)
    total: int = Field(default=0, ge=0)
    skip: int = 0
    limit: int = 0


FREQUENCIES = ("daily", "weekly", "monthly")
RELATIVE_PERIODS = ("previous", "current")
_HORA_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class ScheduledDownload(_WireModel):
    """Recurring download as listed by ``GET /descargas-programadas``."""

    id: str
    nombre: str
    activo: bool = True
    empresa_ruc: Optional[str] = None
    frecuencia: str
    hora: str
    proxima_ejecucion: Optional[datetime] = None
    total_ejecuciones: int = 0
    ejecuciones_exitosas: int = 0

    @field_validator("proxima_ejecucion")
    @classmethod
    def _next_run_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value) if value is not None else None


class ScheduleRequest(_WireModel):
    """Payload for ``POST /descargas-programadas``.

    ``dia_semana`` (0 = lunes) only applies to weekly schedules and
    ``dia_mes`` (1-28, or -1 for the last day) only to monthly ones; the
    other is dropped. A missing day takes the first valid one.
    """

    nombre: str = Field(..., min_length=1)
    empresa_id: Optional[str] = None
    frecuencia: str = "monthly"
    hora: str = "08:00"
    modulos: List[str] = Field(..., min_length=1)
    formatos: List[str] = Field(..., min_length=1)
    periodo_relativo: str = "previous"
    dia_semana: Optional[int] = Field(default=None, ge=0, le=6)
    dia_mes: Optional[int] = None

    @field_validator("frecuencia")
    @classmethod
    def _valid_frequency(cls, value: str) -> str:
        if value not in FREQUENCIES:
            raise ValueError(f"frecuencia debe ser una de: {', '.join(FREQUENCIES)}")
        return value

    @field_validator("hora")
    @classmethod
    def _valid_hora(cls, value: str) -> str:
        if not _HORA_RE.match(value):
            raise ValueError("hora debe tener formato HH:MM")
        return value

    @field_validator("periodo_relativo")
    @classmethod
    def _valid_relative_period(cls, value: str) -> str:
        if value not in RELATIVE_PERIODS:
            raise ValueError(f"periodo_relativo debe ser uno de: {', '.join(RELATIVE_PERIODS)}")
        return value

    @field_validator("dia_mes")
    @classmethod
    def _valid_dia_mes(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value != -1 and not 1 <= value <= 28:
            raise ValueError("dia_mes debe estar entre 1 y 28, o -1 para el último día")
        return value

    @model_validator(mode="after")
    def _day_for_frequency(self) -> "ScheduleRequest":
        if self.frecuencia == "weekly":
            self.dia_mes = None
            if self.dia_semana is None:
                self.dia_semana = 0
        elif self.frecuencia == "monthly":
            self.dia_semana = None
            if self.dia_mes is None:
                self.dia_mes = 1
        else:
            self.dia_semana = None
            self.dia_mes = None
        return self

    def payload(self) -> dict:
        data = self.model_dump(exclude_none=True)
        data["empresa_id"] = self.empresa_id
        return data


class CredentialCheck(_WireModel):
    """Result of ``POST /empresas/{id}/validate``."""

    success: bool
    message: str = ""
