"""CLI for sunat_sync."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import ValidationError

from .api import PortalApi
from .comprobantes import ComprobantesQuery, DocumentActionError, ResultPage
from .config import Config, load_config
from .error_messages import classify
from .filters import AddressBar, FilterState, FilterStore
from .formatting import (
    format_frequency,
    format_local,
    format_modules,
    format_next_run,
    format_period,
    format_time_ago,
    state_label,
)
from .http_client import HttpClient, HttpClientConfig, HttpClientError
from .jobs import JobActionError, JobController, JobTriage, summarize
from .logging_utils import setup_logging
from .models import JobRequest, JobState, RetrievalJob, ScheduledDownload, ScheduleRequest
from .notifications import NotificationCenter, error_message
from .paths import config_path, data_dir, downloads_dir, state_path
from .project import init_project
from .selection import EmptySelectionError, SelectionManager
from .session import Session
from .state import State, load_state, save_state

app = typer.Typer(help="sunat_sync CLI: descargas masivas y comprobantes")


def validate_config_state(cfg_path: Path, st_path: Path) -> tuple[Config, State]:
    """Validate config and state files, raising on error."""
    config = load_config(cfg_path)
    state = load_state(st_path)
    return config, state


def build_api(config: Config, logger: logging.Logger) -> PortalApi:
    client = HttpClient(
        HttpClientConfig.from_config(config),
        Session.from_env(config),
        logger=logger,
    )
    return PortalApi(client)


def _bootstrap() -> tuple[Config, State, logging.Logger]:
    logger = setup_logging(data_dir() / "logs")
    init_project()
    config, state = validate_config_state(config_path(), state_path())
    return config, state, logger


def _controller(config: Config, logger: logging.Logger, interval_sec: float | None = None) -> JobController:
    return JobController(
        build_api(config, logger),
        NotificationCenter(logger.getChild("notifications")),
        interval_sec=interval_sec or config.jobs_poll_interval_sec,
        limit=config.recent_jobs_limit,
        download_dir=downloads_dir(),
        logger=logger.getChild("jobs"),
    )


def _mark_polled(state: State) -> None:
    state.last_poll_at = datetime.now(timezone.utc)
    save_state(state, state_path())


def _abort(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED)
    raise typer.Exit(code=1)


def _job_line(job: RetrievalJob) -> str:
    company = job.company_ruc or "-"
    name = job.company_name or "Sin nombre"
    line = (
        f"[{state_label(job.state)}] {job.id} · {company} - {name} · "
        f"{format_period(job.periodo)} · {format_modules(job.modulos) or '-'} · "
        f"{job.result_count} docs · {format_local(job.created_at)}"
    )
    if job.state is JobState.PROCESSING:
        line += f" · {job.progress}%"
        if job.progress_message:
            line += f" · {job.progress_message}"
    elif job.state is JobState.CANCELLED:
        line += f" · {job.progress_message or 'Cancelada por el usuario'}"
    return line


def _print_triage(view: JobTriage) -> None:
    if not view.has_activity:
        typer.echo("Sin actividad reciente.")
        return
    for job in view.processing:
        typer.echo(_job_line(job))
    for job, error in view.failures():
        typer.secho(_job_line(job), fg=typer.colors.RED)
        typer.echo(f"    {error.headline} - {error.remedy}")
    if view.last_completed is not None:
        job = view.last_completed
        typer.secho(
            f"Última completada: {_job_line(job)} ({format_time_ago(job.created_at)})",
            fg=typer.colors.GREEN,
        )
    if view.history:
        typer.echo("Historial:")
        for job in view.history:
            typer.echo(f"  {_job_line(job)}")


@app.command()
def init() -> None:
    """Create folders and default config/state if missing."""
    setup_logging(data_dir() / "logs")
    init_project()
    typer.echo("Inicialización completada.")


@app.command("validate")
def validate_cmd() -> None:
    """Validate config.yml and data/state/state.json."""
    try:
        validate_config_state(config_path(), state_path())
    except (ValidationError, FileNotFoundError, json.JSONDecodeError) as exc:
        typer.secho(f"Error de validación: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo("OK")


@app.command("show-config")
def show_config() -> None:
    """Print parsed config."""
    config = load_config(config_path())
    typer.echo(json.dumps(config.model_dump(), indent=2, ensure_ascii=False))


@app.command("show-state")
def show_state() -> None:
    """Print parsed state."""
    state = load_state(state_path())
    typer.echo(json.dumps(state.model_dump(mode="json"), indent=2, ensure_ascii=False))


@app.command("jobs")
def jobs(
    all_jobs: bool = typer.Option(False, "--all", help="Listar todas las descargas, no solo el resumen."),
) -> None:
    """Show the dashboard triage of recent downloads."""
    config, state, logger = _bootstrap()
    controller = _controller(config, logger)
    listed = asyncio.run(controller.poll())
    if controller.last_polled_at is None:
        _abort("No se pudo conectar con el servidor.")
    _mark_polled(state)
    if all_jobs:
        for job in listed:
            typer.echo(_job_line(job))
        return
    _print_triage(controller.triage())


@app.command("watch")
def watch(
    cycles: int = typer.Option(3, min=1, help="Cantidad de actualizaciones antes de salir."),
    interval: Optional[float] = typer.Option(None, help="Segundos entre actualizaciones."),
) -> None:
    """Poll the downloads list on a fixed period."""
    config, state, logger = _bootstrap()
    controller = _controller(config, logger, interval or config.dashboard_poll_interval_sec)

    async def _watch() -> None:
        done = asyncio.Event()
        seen = 0

        def _on_update(listed: tuple[RetrievalJob, ...]) -> None:
            nonlocal seen
            seen += 1
            typer.echo(json.dumps(summarize(listed), ensure_ascii=False))
            if seen >= cycles:
                done.set()

        controller.subscribe(_on_update)
        async with controller:
            await done.wait()

    asyncio.run(_watch())
    _mark_polled(state)
    _print_triage(controller.triage())


@app.command("create")
def create(
    periodo: str = typer.Option(..., help="Periodo YYYY-MM."),
    modulo: List[str] = typer.Option(..., "--modulo", help="Módulo a descargar (repetible)."),
    formato: List[str] = typer.Option(["xml", "pdf"], "--formato", help="Formato (repetible)."),
    empresa: Optional[str] = typer.Option(None, help="ID de empresa."),
) -> None:
    """Start a new bulk download."""
    config, _, logger = _bootstrap()
    try:
        request = JobRequest(empresa_id=empresa, periodo=periodo, modulos=modulo, formatos=formato)
    except ValidationError as exc:
        _abort(f"Datos inválidos: {exc}")
    controller = _controller(config, logger)
    try:
        asyncio.run(controller.create(request))
    except JobActionError as exc:
        _abort(str(exc))
    typer.echo("Descarga iniciada.")


def _run_job_action(job_id: str, action: str) -> None:
    config, state, logger = _bootstrap()
    controller = _controller(config, logger)

    async def _act() -> None:
        await controller.poll()
        await getattr(controller, action)(job_id)

    try:
        asyncio.run(_act())
    except JobActionError as exc:
        _abort(str(exc))
    _mark_polled(state)
    job = controller.find(job_id)
    if job is not None:
        typer.echo(_job_line(job))


@app.command("retry")
def retry(job_id: str = typer.Argument(..., help="ID de la descarga fallida.")) -> None:
    """Retry a failed download."""
    _run_job_action(job_id, "retry")
    typer.echo("Reintentando descarga.")


@app.command("cancel")
def cancel(job_id: str = typer.Argument(..., help="ID de la descarga pendiente o en proceso.")) -> None:
    """Cancel a pending or processing download."""
    _run_job_action(job_id, "cancel")
    typer.echo("Descarga cancelada.")


@app.command("empresas")
def empresas(
    todas: bool = typer.Option(False, "--todas", help="Incluir empresas inactivas."),
) -> None:
    """List companies available for downloads and filters."""
    config, _, logger = _bootstrap()
    api = build_api(config, logger)
    try:
        companies = api.list_companies(active=None if todas else True)
    except (HttpClientError, ValueError) as exc:
        _abort(error_message(exc, "Error al cargar empresas"))
    for company in companies:
        flags = "" if company.validada else " (sin validar)"
        typer.echo(f"{company.id} · {company.ruc} · {company.razon_social or '-'}{flags}")


@app.command("validate-company")
def validate_company(company_id: str = typer.Argument(..., help="ID de la empresa.")) -> None:
    """Check the SOL credentials stored for a company."""
    config, _, logger = _bootstrap()
    api = build_api(config, logger)
    try:
        companies = {company.id: company for company in api.list_companies()}
        if company_id not in companies:
            _abort(f"Empresa no encontrada: {company_id}")
        result = api.validate_company(company_id)
    except (HttpClientError, ValueError) as exc:
        _abort(error_message(exc, "Error al validar"))
    ruc = companies[company_id].ruc
    if not result.success:
        _abort(f"{ruc}: {result.message}")
    typer.secho(f"{ruc}: Credenciales validadas", fg=typer.colors.GREEN)


def _schedule_line(schedule: ScheduledDownload) -> str:
    status = "Activo" if schedule.activo else "Inactivo"
    return (
        f"[{status}] {schedule.id} · {schedule.nombre} · "
        f"{format_frequency(schedule.frecuencia)} {schedule.hora} · {schedule.empresa_ruc or 'Todas'} · "
        f"Próxima: {format_next_run(schedule.proxima_ejecucion)} · "
        f"{schedule.ejecuciones_exitosas}/{schedule.total_ejecuciones} ejecuciones"
    )


@app.command("schedules")
def schedules(as_json: bool = typer.Option(False, "--json", help="Salida JSON.")) -> None:
    """List scheduled downloads with their run counts."""
    config, _, logger = _bootstrap()
    api = build_api(config, logger)
    try:
        items = api.list_schedules()
    except (HttpClientError, ValueError) as exc:
        _abort(error_message(exc, "Error al cargar descargas programadas"))
    if as_json:
        typer.echo(json.dumps([item.model_dump(mode="json") for item in items], indent=2, ensure_ascii=False))
        return
    if not items:
        typer.echo("No hay programaciones.")
        return
    for item in items:
        typer.echo(_schedule_line(item))
    active = sum(1 for item in items if item.activo)
    runs = sum(item.total_ejecuciones for item in items)
    typer.echo(f"Total: {len(items)} · Activas: {active} · Ejecuciones: {runs}")


@app.command("schedule")
def schedule(
    nombre: str = typer.Option(..., help="Nombre de la programación."),
    empresa: Optional[str] = typer.Option(None, help="ID de empresa (por defecto todas)."),
    frecuencia: str = typer.Option("monthly", help="daily, weekly o monthly."),
    hora: str = typer.Option("08:00", help="Hora de ejecución HH:MM."),
    modulo: List[str] = typer.Option(
        ["facturas_emitidas", "facturas_recibidas"], "--modulo", help="Módulo a descargar (repetible)."
    ),
    formato: List[str] = typer.Option(["xml", "pdf"], "--formato", help="Formato (repetible)."),
    periodo_relativo: str = typer.Option("previous", help="previous (mes anterior) o current (mes actual)."),
    dia_semana: Optional[int] = typer.Option(None, help="Día de la semana para weekly (0 = lunes)."),
    dia_mes: Optional[int] = typer.Option(None, help="Día del mes para monthly (1-28, -1 = último)."),
) -> None:
    """Create a recurring download run by the backend."""
    config, _, logger = _bootstrap()
    try:
        request = ScheduleRequest(
            nombre=nombre,
            empresa_id=empresa,
            frecuencia=frecuencia,
            hora=hora,
            modulos=modulo,
            formatos=formato,
            periodo_relativo=periodo_relativo,
            dia_semana=dia_semana,
            dia_mes=dia_mes,
        )
    except ValidationError as exc:
        _abort(f"Datos inválidos: {exc}")
    api = build_api(config, logger)
    try:
        created = api.create_schedule(request)
    except (HttpClientError, ValueError) as exc:
        _abort(error_message(exc, "Error al crear"))
    typer.echo("Programación creada.")
    if created is not None:
        typer.echo(_schedule_line(created))


def _run_schedule_action(schedule_id: str, action: str, success: str, failure: str) -> None:
    config, _, logger = _bootstrap()
    api = build_api(config, logger)
    try:
        getattr(api, action)(schedule_id)
    except (HttpClientError, ValueError) as exc:
        _abort(error_message(exc, failure))
    typer.echo(success)


@app.command("schedule-toggle")
def schedule_toggle(schedule_id: str = typer.Argument(..., help="ID de la programación.")) -> None:
    """Pause an active schedule or resume a paused one."""
    _run_schedule_action(schedule_id, "toggle_schedule", "Estado actualizado.", "Error al cambiar estado")


@app.command("schedule-run")
def schedule_run(schedule_id: str = typer.Argument(..., help="ID de la programación.")) -> None:
    """Start a scheduled download now."""
    _run_schedule_action(
        schedule_id,
        "run_schedule",
        "Descarga iniciada. Revisa la sección de descargas.",
        "Error al ejecutar",
    )


@app.command("schedule-delete")
def schedule_delete(
    schedule_id: str = typer.Argument(..., help="ID de la programación."),
    yes: bool = typer.Option(False, "--yes", "-y", help="No pedir confirmación."),
) -> None:
    """Delete a scheduled download."""
    if not yes and not typer.confirm("¿Eliminar esta descarga programada?"):
        raise typer.Exit(code=1)
    _run_schedule_action(schedule_id, "delete_schedule", "Descarga programada eliminada.", "Error al eliminar")


@app.command("explain-error")
def explain_error(text: str = typer.Argument(..., help="Mensaje técnico de error.")) -> None:
    """Show how a raw job error is presented to the user."""
    error = classify(text)
    typer.echo(json.dumps(
        {"category": error.category.value, "headline": error.headline, "remedy": error.remedy},
        indent=2,
        ensure_ascii=False,
    ))


@app.command("files")
def files(job_id: str = typer.Argument(..., help="ID de la descarga completada.")) -> None:
    """List the per-module files of a finished download."""
    config, _, logger = _bootstrap()
    controller = _controller(config, logger)
    try:
        listed = asyncio.run(controller.files(job_id))
    except JobActionError as exc:
        _abort(str(exc))
    if not listed:
        typer.echo("No hay archivos disponibles.")
    for item in listed:
        typer.echo(f"{item.id} · {item.modulo} · {item.tipo_archivo.upper()} · {item.nombre} · {item.tamano_bytes} B")


@app.command("download-job")
def download_job(
    job_id: str = typer.Argument(..., help="ID de la descarga completada."),
    excel: bool = typer.Option(False, "--excel", help="Descargar el Excel detallado."),
    file_id: Optional[str] = typer.Option(None, "--file", help="Descargar un archivo específico."),
) -> None:
    """Save the archive, the detailed Excel or one file of a download."""
    config, state, logger = _bootstrap()
    controller = _controller(config, logger)

    async def _download() -> Path:
        if file_id is not None:
            for item in await controller.files(job_id):
                if item.id == file_id:
                    return await controller.download_file(item)
            raise JobActionError(f"Archivo no encontrado: {file_id}")
        await controller.poll()
        job = controller.find(job_id)
        if job is None:
            raise JobActionError(f"Descarga no encontrada: {job_id}")
        if excel:
            return await controller.download_excel(job)
        return await controller.download_archive(job)

    try:
        path = asyncio.run(_download())
    except JobActionError as exc:
        _abort(str(exc))
    typer.echo(str(path))


def _document_context(
    config: Config, state: State, logger: logging.Logger
) -> tuple[FilterStore, ComprobantesQuery, PortalApi, NotificationCenter]:
    api = build_api(config, logger)
    notifier = NotificationCenter(logger.getChild("notifications"))
    store = FilterStore(AddressBar(state.query), FilterState(page_size=config.default_page_size))
    query = ComprobantesQuery(
        api,
        store,
        notifier,
        debounce_sec=config.search_debounce_ms / 1000,
        download_dir=downloads_dir(),
        logger=logger.getChild("comprobantes"),
    )
    return store, query, api, notifier


def _print_page(page: ResultPage) -> None:
    if page.error:
        typer.secho(page.error, fg=typer.colors.RED)
        return
    plural = "s" if page.total != 1 else ""
    typer.echo(f"{page.total} comprobante{plural} encontrado{plural} · {page.range_label()}")
    for item in page.items:
        ruc, name = item.counterparty()
        amount = "-" if item.total is None else f"{item.moneda} {item.total:,.2f}"
        typer.echo(
            f"{item.id} · {item.tipo.replace('_', ' ')} · {item.serie}-{item.numero} · "
            f"{item.fecha_emision.date().isoformat()} · {ruc or '-'} {name or '-'} · {amount}"
        )
    if page.total_pages > 1:
        numbers = " ".join(
            "..." if n is None else (f"[{n}]" if n == page.filters.page else str(n))
            for n in page.page_numbers()
        )
        typer.echo(f"Páginas: {numbers}")


@app.command("docs")
def docs(
    search: Optional[str] = typer.Option(None, help="Buscar por serie, número, RUC."),
    empresa: Optional[str] = typer.Option(None, help="ID de empresa (__all__ para todas)."),
    desde: Optional[str] = typer.Option(None, help="Periodo desde (YYYY-MM)."),
    hasta: Optional[str] = typer.Option(None, help="Periodo hasta (YYYY-MM)."),
    tipo: Optional[str] = typer.Option(None, help="Tipo de comprobante."),
    direccion: Optional[str] = typer.Option(None, help="emitidas, recibidas o __all__."),
    sort: Optional[str] = typer.Option(None, help="Ordenar por columna (repetir invierte el orden)."),
    order: Optional[str] = typer.Option(None, help="Orden explícito: asc o desc."),
    page: Optional[int] = typer.Option(None, min=1, help="Página."),
    limit: Optional[int] = typer.Option(None, min=1, help="Comprobantes por página."),
    clear: bool = typer.Option(False, "--clear", help="Quitar todos los filtros."),
    as_json: bool = typer.Option(False, "--json", help="Salida JSON."),
) -> None:
    """List documents using the saved filters, optionally updating them."""
    config, state, logger = _bootstrap()
    store, query, _, _ = _document_context(config, state, logger)

    if clear:
        store.clear_filters()
    patch = {
        key: value
        for key, value in {
            "search": search,
            "company_id": empresa,
            "period_from": desde,
            "period_to": hasta,
            "document_type": tipo,
            "direction": direccion,
            "page_size": limit,
        }.items()
        if value is not None
    }
    try:
        if patch:
            store.set_filters(**patch)
        if sort is not None:
            store.toggle_sort(sort)
        if order is not None:
            store.set_filters(sort_order=order)
        if page is not None:
            store.set_filters(page=page)
    except ValueError as exc:
        _abort(str(exc))

    state.query = store.query
    save_state(state, state_path())

    result = asyncio.run(query.refresh())
    if as_json:
        typer.echo(json.dumps(
            {
                "query": store.query,
                "total": result.total,
                "items": [item.model_dump(mode="json") for item in result.items],
            },
            indent=2,
            ensure_ascii=False,
        ))
    else:
        typer.echo(f"Filtros: {store.query or '(por defecto)'} ({store.active_filters_count()} activos)")
        _print_page(result)
    if result.error:
        raise typer.Exit(code=1)


@app.command("batch-download")
def batch_download(
    ids: List[str] = typer.Argument(..., help="IDs de comprobantes de la página actual."),
    formato: str = typer.Option("all", help="xml, pdf o all."),
) -> None:
    """Download selected documents of the current page as one archive."""
    config, state, logger = _bootstrap()
    _, query, api, notifier = _document_context(config, state, logger)
    selection = SelectionManager(query, api, notifier, download_dir=downloads_dir(), logger=logger.getChild("selection"))

    async def _download() -> Path:
        await query.refresh()
        for item_id in ids:
            selection.toggle(item_id)
        return await selection.download_as(formato)

    try:
        path = asyncio.run(_download())
    except (DocumentActionError, ValueError) as exc:
        _abort(str(exc))
    typer.echo(str(path))


@app.command("export")
def export(
    ids: Optional[List[str]] = typer.Argument(None, help="Exportar solo estos IDs de la página actual."),
) -> None:
    """Export documents matching the saved filters (or a selection) to Excel."""
    config, state, logger = _bootstrap()
    _, query, api, notifier = _document_context(config, state, logger)
    selection = SelectionManager(query, api, notifier, download_dir=downloads_dir(), logger=logger.getChild("selection"))

    async def _export() -> Path:
        if not ids:
            return await query.export_excel()
        await query.refresh()
        for item_id in ids:
            selection.toggle(item_id)
        return await selection.export_selection()

    try:
        path = asyncio.run(_export())
    except (DocumentActionError, EmptySelectionError, ValueError) as exc:
        _abort(str(exc))
    typer.echo(str(path))
