"""Cached, debounced view of the paginated document listing.

Results are keyed by the canonical query string of the filters that
produced them. Free-text search is folded into the key only after a pause
in typing; every other change applies at once. When filters change while a
request is running, only the response for the most recently requested key
is displayed.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections import OrderedDict
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, Coroutine, NoReturn, Optional

from .api import DocumentsBackend
from .downloads import document_filename, export_filename, save_payload
from .filters import FilterState, FilterStore, encode
from .http_client import HttpClientError
from .models import Comprobante
from .notifications import NotificationCenter, error_message

DEFAULT_DEBOUNCE_SEC = 0.3
CACHE_SIZE = 50


class DocumentActionError(RuntimeError):
    """Raised when a download or export requested by the user fails."""


@dataclass(frozen=True, eq=False)
class ResultPage:
    """One fetched page. Compared by identity: a new fetch is a new page."""

    key: str
    filters: FilterState
    items: tuple[Comprobante, ...]
    total: int
    error: Optional[str] = None

    @property
    def ids(self) -> tuple[str, ...]:
        return tuple(item.id for item in self.items)

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.filters.page_size) if self.total else 0

    @property
    def has_next_page(self) -> bool:
        return self.filters.page < self.total_pages

    @property
    def has_prev_page(self) -> bool:
        return self.filters.page > 1

    def page_numbers(self) -> list[int | None]:
        return page_numbers(self.filters.page, self.total_pages)

    def range_label(self) -> str:
        if not self.total:
            return "Sin resultados"
        start = self.filters.offset + 1
        end = min(self.filters.page * self.filters.page_size, self.total)
        return f"Mostrando {start} - {end} de {self.total}"


def page_numbers(page: int, total_pages: int) -> list[int | None]:
    """Page buttons to render; ``None`` marks an ellipsis."""
    if total_pages <= 7:
        return list(range(1, total_pages + 1))
    pages: list[int | None] = [1]
    if page > 3:
        pages.append(None)
    pages.extend(range(max(2, page - 1), min(total_pages - 1, page + 1) + 1))
    if page < total_pages - 2:
        pages.append(None)
    pages.append(total_pages)
    return pages


PageListener = Callable[[ResultPage], None]


class ComprobantesQuery:
    def __init__(
        self,
        backend: DocumentsBackend,
        store: FilterStore,
        notifier: NotificationCenter,
        *,
        debounce_sec: float = DEFAULT_DEBOUNCE_SEC,
        cache_size: int = CACHE_SIZE,
        download_dir: Path | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._backend = backend
        self._store = store
        self._notifier = notifier
        self._debounce_sec = debounce_sec
        self._cache_size = cache_size
        self._download_dir = download_dir
        self._logger = logger or logging.getLogger("sunat_sync.comprobantes")
        self._cache: OrderedDict[str, ResultPage] = OrderedDict()
        self._inflight: dict[str, asyncio.Task[ResultPage]] = {}
        self._tasks: set[asyncio.Task[Any]] = set()
        self._current: ResultPage | None = None
        self._latest_key: str | None = None
        self._applied_search = store.filters.search
        self._seen = store.filters
        self._debounce: asyncio.TimerHandle | None = None
        self._listeners: list[PageListener] = []
        self._unsubscribe = store.subscribe(self._on_filters_changed)

    @property
    def current(self) -> ResultPage | None:
        return self._current

    @property
    def items(self) -> tuple[Comprobante, ...]:
        return self._current.items if self._current else ()

    @property
    def total(self) -> int:
        return self._current.total if self._current else 0

    @property
    def effective_filters(self) -> FilterState:
        """Filters from the address bar with the search applied so far."""
        return replace(self._store.filters, search=self._applied_search)

    @property
    def search_pending(self) -> bool:
        return self._debounce is not None

    def subscribe(self, listener: PageListener) -> None:
        self._listeners.append(listener)

    # Fetching

    async def refresh(self, force: bool = False) -> ResultPage:
        """Load the page for the current filters and display it if still wanted."""
        filters = self.effective_filters
        key = encode(filters, self._store.defaults)
        self._latest_key = key
        if force:
            self._cache.pop(key, None)
        page = await self._load(key, filters)
        if key == self._latest_key:
            self._show(page)
        else:
            self._logger.debug("Respuesta descartada para %s (actual: %s)", key, self._latest_key)
        return page

    async def refetch(self) -> ResultPage:
        return await self.refresh(force=True)

    def invalidate(self) -> None:
        self._cache.clear()

    async def settle(self) -> None:
        """Wait for the background fetches started by filter changes."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def close(self) -> None:
        self._unsubscribe()
        if self._debounce is not None:
            self._debounce.cancel()
            self._debounce = None
        for task in list(self._tasks):
            task.cancel()

    async def _load(self, key: str, filters: FilterState) -> ResultPage:
        cached = self._cache.get(key)
        if cached is not None:
            self._cache.move_to_end(key)
            return cached
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._fetch(key, filters))
            self._inflight[key] = task
            task.add_done_callback(lambda _: self._inflight.pop(key, None))
        return await asyncio.shield(task)

    async def _fetch(self, key: str, filters: FilterState) -> ResultPage:
        try:
            data = await asyncio.to_thread(self._backend.list_documents, filters)
        except (HttpClientError, ValueError) as exc:
            self._logger.warning("Error al cargar comprobantes (%s): %s", key or "-", exc)
            return ResultPage(key, filters, (), 0, error=error_message(exc, "Error al cargar comprobantes"))
        page = ResultPage(key, filters, tuple(data.items), data.total)
        self._cache[key] = page
        self._cache.move_to_end(key)
        while len(self._cache) > self._cache_size:
            self._cache.popitem(last=False)
        return page

    def _show(self, page: ResultPage) -> None:
        if page is self._current:
            return
        self._current = page
        if page.error:
            self._notifier.error(page.error)
        for listener in list(self._listeners):
            listener(page)

    # Filter changes

    def _on_filters_changed(self, filters: FilterState) -> None:
        previous, self._seen = self._seen, filters
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._applied_search = filters.search
            return
        if self._debounce is not None:
            self._debounce.cancel()
            self._debounce = None
        if filters.search != self._applied_search:
            self._debounce = loop.call_later(self._debounce_sec, self._apply_search)
        if replace(previous, search=filters.search) != filters:
            self._spawn(self.refresh())

    def _apply_search(self) -> None:
        self._debounce = None
        self._applied_search = self._store.filters.search
        self._spawn(self.refresh())

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # Files

    async def download_document(self, document: Comprobante, kind: str = "xml") -> Path:
        """Save the XML or PDF of one document as ``{serie}-{numero}.{kind}``."""
        failure = f"Error al descargar {kind.upper()}"
        try:
            payload = await asyncio.to_thread(self._backend.download_document, document.id, kind)
        except (HttpClientError, ValueError) as exc:
            self._fail(exc, failure)
        return self._save(document_filename(document, kind), payload)

    async def export_excel(self) -> Path:
        """Export every document matching the current filters (all pages)."""
        try:
            payload = await asyncio.to_thread(self._backend.export_documents, self.effective_filters)
        except (HttpClientError, ValueError) as exc:
            self._fail(exc, "Error al exportar")
        path = self._save(export_filename("comprobantes"), payload)
        self._notifier.success("Excel exportado correctamente")
        return path

    def _save(self, filename: str, payload: Any) -> Path:
        if self._download_dir is None:
            self._reject("No hay directorio de descargas configurado")
        try:
            return save_payload(self._download_dir, filename, payload)
        except OSError as exc:
            self._fail(exc, f"No se pudo guardar {filename}")

    def _reject(self, message: str) -> NoReturn:
        self._notifier.error(message)
        raise DocumentActionError(message)

    def _fail(self, exc: Exception, fallback: str) -> NoReturn:
        message = error_message(exc, fallback)
        self._notifier.error(message)
        raise DocumentActionError(message) from exc
