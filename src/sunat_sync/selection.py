"""Selection of rows on the current result page and batch file operations."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, NoReturn

from .api import BATCH_FORMATS, DocumentsBackend
from .comprobantes import ComprobantesQuery, DocumentActionError, ResultPage
from .downloads import batch_filename, export_filename, save_payload
from .http_client import HttpClientError
from .notifications import NotificationCenter, error_message


class EmptySelectionError(ValueError):
    """Raised when a batch operation runs with nothing selected."""


class SelectionManager:
    """Tracks selected ids of the page currently displayed by a query.

    The selection empties whenever the query shows a different page, so a
    batch operation never includes rows the user can no longer see.
    """

    def __init__(
        self,
        query: ComprobantesQuery,
        backend: DocumentsBackend,
        notifier: NotificationCenter,
        *,
        download_dir: Path | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._query = query
        self._backend = backend
        self._notifier = notifier
        self._download_dir = download_dir
        self._logger = logger or logging.getLogger("sunat_sync.selection")
        self._selected: set[str] = set()
        self._busy = False
        query.subscribe(self._on_page_changed)

    @property
    def selected_ids(self) -> frozenset[str]:
        return frozenset(self._selected)

    @property
    def count(self) -> int:
        return len(self._selected)

    @property
    def is_busy(self) -> bool:
        return self._busy

    @property
    def all_selected(self) -> bool:
        ids = self._visible_ids()
        return bool(ids) and all(item_id in self._selected for item_id in ids)

    @property
    def some_selected(self) -> bool:
        return any(item_id in self._selected for item_id in self._visible_ids())

    def toggle(self, item_id: str) -> None:
        if item_id not in self._visible_ids():
            raise ValueError(f"El comprobante {item_id} no está en la página actual")
        if item_id in self._selected:
            self._selected.discard(item_id)
        else:
            self._selected.add(item_id)

    def toggle_all(self) -> None:
        if self.all_selected:
            self._selected.clear()
        else:
            self._selected = set(self._visible_ids())

    def clear(self) -> None:
        self._selected.clear()

    def label(self) -> str:
        plural = "s" if self.count != 1 else ""
        return f"{self.count} comprobante{plural} seleccionado{plural}"

    async def download_as(self, formato: str) -> Path:
        """Download the selection as one archive (``xml``, ``pdf`` or ``all``)."""
        if formato not in BATCH_FORMATS:
            raise ValueError(f"Formato no soportado: {formato}")
        ids = self._require_selection()
        payload = await self._single_request(
            self._backend.batch_download, ids, formato, failure="Error al descargar"
        )
        path = self._save(batch_filename(), payload)
        self._notifier.success(f"{len(ids)} comprobantes descargados")
        return path

    async def export_selection(self) -> Path:
        """Export the selected rows to one Excel file."""
        ids = self._require_selection()
        payload = await self._single_request(
            self._backend.export_selection, ids, failure="Error al exportar"
        )
        path = self._save(export_filename("comprobantes_seleccion"), payload)
        self._notifier.success("Selección exportada correctamente")
        return path

    def _visible_ids(self) -> tuple[str, ...]:
        page = self._query.current
        return page.ids if page else ()

    def _on_page_changed(self, page: ResultPage) -> None:
        if self._selected:
            self._logger.debug("Página cambiada (%s); se limpia la selección", page.key or "-")
        self._selected.clear()

    def _require_selection(self) -> list[str]:
        if not self._selected:
            message = "No hay comprobantes seleccionados"
            self._notifier.error(message)
            raise EmptySelectionError(message)
        return sorted(self._selected)

    async def _single_request(self, call: Callable[..., Any], *args: Any, failure: str) -> Any:
        if self._busy:
            self._reject("Ya hay una descarga en curso")
        self._busy = True
        try:
            return await asyncio.to_thread(call, *args)
        except (HttpClientError, ValueError) as exc:
            message = error_message(exc, failure)
            self._notifier.error(message)
            raise DocumentActionError(message) from exc
        finally:
            self._busy = False

    def _save(self, filename: str, payload: Any) -> Path:
        if self._download_dir is None:
            self._reject("No hay directorio de descargas configurado")
        try:
            return save_payload(self._download_dir, filename, payload)
        except OSError as exc:
            message = f"No se pudo guardar {filename}"
            self._notifier.error(message)
            raise DocumentActionError(message) from exc

    def _reject(self, message: str) -> NoReturn:
        self._notifier.error(message)
        raise DocumentActionError(message)
