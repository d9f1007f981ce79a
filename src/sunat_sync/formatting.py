"""Display helpers for jobs and schedules: labels, periods and times."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Sequence

from .models import JobState, as_utc

MODULE_LABELS: dict[str, str] = {
    "facturas_emitidas": "Facturas Emitidas",
    "facturas_recibidas": "Facturas Recibidas",
    "boletas_emitidas": "Boletas Emitidas",
    "boletas_recibidas": "Boletas Recibidas",
    "nc_boletas_emitidas": "NC Boletas Emitidas",
    "nd_boletas_emitidas": "ND Boletas Emitidas",
    "guias_remision_emitidas": "GRE Emitidas",
    "guias_remision_recibidas": "GRE Recibidas",
    "guias_transportista_emitidas": "GRT Emitidas",
    "guias_transportista_recibidas": "GRT Recibidas",
    "retenciones_emitidas": "Retenciones Emitidas",
    "retenciones_recibidas": "Retenciones Recibidas",
    "percepciones_emitidas": "Percepciones Emitidas",
    "percepciones_recibidas": "Percepciones Recibidas",
}

STATE_LABELS: dict[JobState, str] = {
    JobState.PENDING: "Pendiente",
    JobState.PROCESSING: "Procesando",
    JobState.COMPLETED: "Completado",
    JobState.FAILED: "Fallido",
    JobState.CANCELLED: "Cancelado",
}

FREQUENCY_LABELS: dict[str, str] = {
    "daily": "Diario",
    "weekly": "Semanal",
    "monthly": "Mensual",
}

_MONTHS = ("Ene", "Feb", "Mar", "Abr", "May", "Jun", "Jul", "Ago", "Sep", "Oct", "Nov", "Dic")


def state_label(state: JobState) -> str:
    return STATE_LABELS.get(state, state.value)


def format_modules(modules: Sequence[str], max_show: int = 2) -> str:
    """Join module labels, collapsing the tail into "+N más"."""
    if not modules:
        return ""
    labels = [MODULE_LABELS.get(module, module) for module in modules]
    if len(labels) <= max_show:
        return ", ".join(labels)
    shown = ", ".join(labels[:max_show])
    return f"{shown}, +{len(labels) - max_show} más"


def format_period(periodo: str) -> str:
    """``2024-03`` -> ``Mar 2024``; anything unparseable is returned as is."""
    year, _, month = periodo.partition("-")
    try:
        index = int(month) - 1
    except ValueError:
        return periodo
    if not 0 <= index < 12:
        return periodo
    return f"{_MONTHS[index]} {year}"


def format_time_ago(moment: datetime, now: datetime | None = None) -> str:
    now = as_utc(now) if now is not None else datetime.now(timezone.utc)
    seconds = (now - as_utc(moment)).total_seconds()
    minutes = int(seconds // 60)
    hours = int(seconds // 3600)
    days = int(seconds // 86400)
    if minutes < 1:
        return "Ahora"
    if minutes < 60:
        return f"Hace {minutes} min"
    if hours < 24:
        return f"Hace {hours}h"
    if days == 1:
        return "Ayer"
    return f"Hace {days} días"


def format_local(moment: datetime, tz=None) -> str:
    """Day/month hour:minute in the local zone (or ``tz``)."""
    return as_utc(moment).astimezone(tz).strftime("%d/%m %H:%M")


def format_frequency(frecuencia: str) -> str:
    return FREQUENCY_LABELS.get(frecuencia, frecuencia)


def format_next_run(moment: datetime | None, tz=None) -> str:
    if moment is None:
        return "No programada"
    return format_local(moment, tz)
