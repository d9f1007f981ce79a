"""Document-list filters and their query-string form.

The query string is the single source of truth for what the document list
shows. Readers decode a snapshot; writers send a patch that is merged and
re-encoded. Encoding is canonical: fields equal to their default are left
out, so ``decode(encode(f)) == f`` and the default filters encode to "".

Wire names are fixed to keep shared URLs stable:

    search <-> search       company_id <-> empresa   period_from <-> desde
    period_to <-> hasta     document_type <-> tipo   direction <-> direccion
    sort_field <-> sort     sort_order <-> order     page <-> page
    page_size <-> limit
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from typing import Any, Callable, Mapping
from urllib.parse import parse_qs, urlencode

ALL = "__all__"
SORT_ORDERS = ("asc", "desc")
PAGE_SIZES = (10, 25, 50, 100)
DEFAULT_PAGE_SIZE = 50

DOCUMENT_TYPES: dict[str, str] = {
    ALL: "Todos los tipos",
    "factura": "Facturas",
    "boleta": "Boletas",
    "nota_credito": "Notas de Crédito",
    "nota_debito": "Notas de Débito",
    "guia": "Guías",
    "retencion": "Retenciones",
    "percepcion": "Percepciones",
}

DIRECTIONS: dict[str, str] = {
    ALL: "Todas",
    "emitidas": "Emitidas",
    "recibidas": "Recibidas",
}


@dataclass(frozen=True)
class FilterState:
    search: str = ""
    company_id: str = ALL
    period_from: str = ""
    period_to: str = ""
    document_type: str = ALL
    direction: str = ALL
    sort_field: str = "fecha"
    sort_order: str = "desc"
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


DEFAULT_FILTERS = FilterState()

WIRE_NAMES: dict[str, str] = {
    "search": "search",
    "company_id": "empresa",
    "period_from": "desde",
    "period_to": "hasta",
    "document_type": "tipo",
    "direction": "direccion",
    "sort_field": "sort",
    "sort_order": "order",
    "page": "page",
    "page_size": "limit",
}

_FIELD_NAMES = tuple(f.name for f in fields(FilterState))
_INT_FIELDS = ("page", "page_size")
_NON_FILTER_FIELDS = ("page", "page_size", "sort_field", "sort_order")


def encode(filters: FilterState, defaults: FilterState = DEFAULT_FILTERS) -> str:
    """Return the canonical minimal query string for ``filters``."""
    pairs: list[tuple[str, str]] = []
    for name in _FIELD_NAMES:
        value = getattr(filters, name)
        if value == getattr(defaults, name) or value == "":
            continue
        pairs.append((WIRE_NAMES[name], str(value)))
    return urlencode(pairs)


def decode(query: str, defaults: FilterState = DEFAULT_FILTERS) -> FilterState:
    """Parse a query string; missing or invalid values fall back to defaults."""
    parsed = parse_qs(query.lstrip("?"), keep_blank_values=True)
    values: dict[str, Any] = {}
    for name in _FIELD_NAMES:
        raw_values = parsed.get(WIRE_NAMES[name])
        if not raw_values or raw_values[0] == "":
            continue
        raw = raw_values[0]
        if name in _INT_FIELDS:
            number = _positive_int(raw)
            if number is not None:
                values[name] = number
        elif name == "sort_order":
            if raw in SORT_ORDERS:
                values[name] = raw
        else:
            values[name] = raw
    return replace(defaults, **values)


def _positive_int(raw: str) -> int | None:
    try:
        number = int(raw)
    except ValueError:
        return None
    return number if number >= 1 else None


def apply_patch(
    filters: FilterState,
    patch: Mapping[str, Any],
    defaults: FilterState = DEFAULT_FILTERS,
) -> FilterState:
    """Merge ``patch`` into ``filters``; page goes back to 1 unless the patch sets it.

    Empty strings mean "back to the default". Values the query string could
    not carry (pages below 1, unknown sort orders) are rejected.
    """
    unknown = set(patch) - set(_FIELD_NAMES)
    if unknown:
        raise ValueError(f"Campos de filtro desconocidos: {', '.join(sorted(unknown))}")
    values: dict[str, Any] = {}
    for name, value in patch.items():
        if value == "":
            values[name] = getattr(defaults, name)
        elif name in _INT_FIELDS:
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ValueError(f"Valor inválido para {WIRE_NAMES[name]}: {value!r}")
            values[name] = value
        elif name == "sort_order" and value not in SORT_ORDERS:
            raise ValueError(f"Orden inválido: {value!r} (use asc o desc)")
        else:
            values[name] = value
    merged = replace(filters, **values)
    if "page" not in patch:
        merged = replace(merged, page=1)
    return merged


def active_filters_count(filters: FilterState, defaults: FilterState = DEFAULT_FILTERS) -> int:
    """Number of narrowing filters in effect (pagination and sorting excluded)."""
    count = 0
    for name in _FIELD_NAMES:
        if name in _NON_FILTER_FIELDS:
            continue
        value = getattr(filters, name)
        if value and value != getattr(defaults, name):
            count += 1
    return count


def backend_params(filters: FilterState) -> dict[str, str | int]:
    """Translate filters to the listing endpoint's query parameters.

    The "all" sentinel is never sent; the page becomes a skip offset.
    """
    params: dict[str, str | int] = {}
    if filters.company_id and filters.company_id != ALL:
        params["empresa_id"] = filters.company_id
    if filters.period_from:
        params["periodo"] = filters.period_from
    if filters.period_to:
        params["periodo_hasta"] = filters.period_to
    if filters.document_type and filters.document_type != ALL:
        params["tipo"] = filters.document_type
    if filters.direction and filters.direction != ALL:
        params["direccion"] = filters.direction
    if filters.search:
        params["search"] = filters.search
    params["sort_by"] = filters.sort_field
    params["sort_order"] = filters.sort_order
    params["skip"] = filters.offset
    params["limit"] = filters.page_size
    return params


def export_params(filters: FilterState) -> dict[str, str | int]:
    """Backend parameters for a full export: same scope, no paging or sorting."""
    params = backend_params(filters)
    for key in ("sort_by", "sort_order", "skip", "limit"):
        params.pop(key, None)
    return params


class AddressBar:
    """Holds the current query string of the document list.

    ``replace`` swaps the current entry (typing, paging); ``push`` adds a
    history entry (navigations the user may want to go back to).
    """

    def __init__(self, query: str = "") -> None:
        self._history: list[str] = [query.lstrip("?")]

    @property
    def query(self) -> str:
        return self._history[-1]

    @property
    def history(self) -> tuple[str, ...]:
        return tuple(self._history)

    def replace(self, query: str) -> None:
        self._history[-1] = query.lstrip("?")

    def push(self, query: str) -> None:
        self._history.append(query.lstrip("?"))

    def back(self) -> str:
        if len(self._history) > 1:
            self._history.pop()
        return self.query


FilterListener = Callable[[FilterState], None]


class FilterStore:
    """Reads and writes filters through an :class:`AddressBar`.

    No copy of the filters is kept here: every read decodes the bar.
    """

    def __init__(
        self,
        bar: AddressBar,
        defaults: FilterState = DEFAULT_FILTERS,
        logger: logging.Logger | None = None,
    ) -> None:
        self._bar = bar
        self._defaults = defaults
        self._listeners: list[FilterListener] = []
        self._logger = logger or logging.getLogger("sunat_sync.filters")

    @property
    def bar(self) -> AddressBar:
        return self._bar

    @property
    def defaults(self) -> FilterState:
        return self._defaults

    @property
    def filters(self) -> FilterState:
        return decode(self._bar.query, self._defaults)

    @property
    def query(self) -> str:
        return self._bar.query

    def subscribe(self, listener: FilterListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_filters(self, **patch: Any) -> FilterState:
        """Apply a partial update and replace the bar with the canonical query."""
        updated = apply_patch(self.filters, patch, self._defaults)
        return self._write(encode(updated, self._defaults))

    def clear_filters(self) -> FilterState:
        return self._write("")

    def toggle_sort(self, field: str) -> FilterState:
        """Same column flips the order; a new column starts descending."""
        current = self.filters
        if current.sort_field == field:
            order = "asc" if current.sort_order == "desc" else "desc"
            return self.set_filters(sort_order=order)
        return self.set_filters(sort_field=field, sort_order="desc")

    def active_filters_count(self) -> int:
        return active_filters_count(self.filters, self._defaults)

    def _write(self, query: str) -> FilterState:
        if query == self._bar.query:
            return self.filters
        self._bar.replace(query)
        snapshot = self.filters
        self._logger.debug("Filtros actualizados: %s", query or "(por defecto)")
        for listener in list(self._listeners):
            listener(snapshot)
        return snapshot
