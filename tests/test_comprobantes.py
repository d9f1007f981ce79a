import asyncio
import threading
from pathlib import Path

import pytest

from conftest import FakeDocumentsBackend, make_document
from sunat_sync.comprobantes import ComprobantesQuery, DocumentActionError, ResultPage, page_numbers
from sunat_sync.filters import AddressBar, FilterState, FilterStore


def _query(backend, notifier, query: str = "", **kwargs) -> tuple[FilterStore, ComprobantesQuery]:
    store = FilterStore(AddressBar(query))
    return store, ComprobantesQuery(backend, store, notifier, **kwargs)


async def _wait_for(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


def test_refresh_loads_current_filters(notifier) -> None:
    backend = FakeDocumentsBackend(total=120)
    store, query = _query(backend, notifier, "tipo=boleta&page=2")

    page = asyncio.run(query.refresh())

    assert query.current is page
    assert page.key == "tipo=boleta&page=2"
    assert backend.calls == [FilterState(document_type="boleta", page=2)]
    assert page.ids[0] == "boleta-50"
    assert page.range_label() == "Mostrando 51 - 100 de 120"


def test_same_key_is_served_from_cache(notifier) -> None:
    backend = FakeDocumentsBackend()
    store, query = _query(backend, notifier)

    async def scenario() -> tuple[ResultPage, ResultPage]:
        first = await query.refresh()
        store.set_filters(page=2)
        await query.settle()
        store.set_filters(page=1)
        await query.settle()
        return first, query.current

    first, shown = asyncio.run(scenario())

    assert len(backend.calls) == 2
    assert shown is first


def test_concurrent_requests_for_one_key_share_a_fetch(notifier) -> None:
    backend = FakeDocumentsBackend()
    _, query = _query(backend, notifier)

    async def scenario():
        return await asyncio.gather(query.refresh(), query.refresh())

    first, second = asyncio.run(scenario())

    assert first is second
    assert len(backend.calls) == 1


def test_refetch_bypasses_cache(notifier) -> None:
    backend = FakeDocumentsBackend()
    _, query = _query(backend, notifier)

    async def scenario():
        first = await query.refresh()
        second = await query.refetch()
        return first, second

    first, second = asyncio.run(scenario())

    assert first is not second
    assert len(backend.calls) == 2
    assert query.current is second


def test_cache_evicts_least_recently_used(notifier) -> None:
    backend = FakeDocumentsBackend()
    store, query = _query(backend, notifier, cache_size=2)

    async def scenario() -> None:
        await query.refresh()
        for page in (2, 3, 1):
            store.set_filters(page=page)
            await query.settle()

    asyncio.run(scenario())

    assert [filters.page for filters in backend.calls] == [1, 2, 3, 1]


def test_slow_stale_response_is_not_displayed(notifier) -> None:
    backend = FakeDocumentsBackend()
    gate = threading.Event()
    backend.gates["boleta"] = gate
    store, query = _query(backend, notifier)
    shown: list[str] = []
    query.subscribe(lambda page: shown.append(page.key))

    async def scenario() -> None:
        store.set_filters(document_type="boleta")
        await asyncio.sleep(0)
        store.set_filters(document_type="factura")
        await _wait_for(lambda: query.current is not None)
        gate.set()
        await query.settle()

    try:
        asyncio.run(scenario())
    finally:
        gate.set()

    assert sorted(filters.document_type for filters in backend.calls) == ["boleta", "factura"]
    assert shown == ["tipo=factura"]
    assert query.current.key == "tipo=factura"


def test_search_is_debounced(notifier) -> None:
    backend = FakeDocumentsBackend()
    store, query = _query(backend, notifier, debounce_sec=0.05)

    async def scenario() -> None:
        for text in ("F", "F0", "F00", "F001"):
            store.set_filters(search=text)
        assert query.search_pending
        assert query.effective_filters.search == ""
        await _wait_for(lambda: not query.search_pending)
        await query.settle()

    asyncio.run(scenario())

    assert [filters.search for filters in backend.calls] == ["F001"]
    assert query.current.key == "search=F001"


def test_non_search_changes_apply_immediately(notifier) -> None:
    backend = FakeDocumentsBackend()
    store, query = _query(backend, notifier, debounce_sec=10)

    async def scenario() -> None:
        store.set_filters(direction="recibidas")
        await query.settle()

    asyncio.run(scenario())

    assert backend.calls == [FilterState(direction="recibidas")]


def test_other_changes_do_not_wait_for_pending_search(notifier) -> None:
    backend = FakeDocumentsBackend()
    store, query = _query(backend, notifier, debounce_sec=10)

    async def scenario() -> None:
        store.set_filters(search="F")
        store.set_filters(document_type="boleta")
        await query.settle()
        assert query.search_pending
        query.close()

    asyncio.run(scenario())

    assert backend.calls == [FilterState(document_type="boleta")]
    assert query.current.key == "tipo=boleta"


def test_search_reverted_before_delay_does_not_fetch(notifier) -> None:
    backend = FakeDocumentsBackend()
    store, query = _query(backend, notifier, debounce_sec=0.05)

    async def scenario() -> None:
        store.set_filters(search="F")
        store.set_filters(search="")
        assert not query.search_pending
        await asyncio.sleep(0.1)
        await query.settle()

    asyncio.run(scenario())

    assert backend.calls == []
    assert query.current is None


def test_failed_fetch_shows_error_and_is_not_cached(notifier, server_error) -> None:
    backend = FakeDocumentsBackend()
    backend.error = server_error
    _, query = _query(backend, notifier)

    page = asyncio.run(query.refresh())

    assert page.error == "Servicio no disponible"
    assert page.items == ()
    assert [item.message for item in notifier.errors] == ["Servicio no disponible"]

    backend.error = None
    recovered = asyncio.run(query.refresh())

    assert recovered.error is None
    assert len(backend.calls) == 2


def test_download_document_saves_named_file(notifier, tmp_path: Path) -> None:
    backend = FakeDocumentsBackend()
    _, query = _query(backend, notifier, download_dir=tmp_path)

    path = asyncio.run(query.download_document(make_document("d1", 123), "xml"))

    assert path == tmp_path / "F001-123.xml"
    assert path.read_bytes() == b"<Invoice/>"


def test_download_document_failure_notifies(notifier, tmp_path: Path, server_error) -> None:
    backend = FakeDocumentsBackend()
    backend.error = server_error
    _, query = _query(backend, notifier, download_dir=tmp_path)

    with pytest.raises(DocumentActionError, match="Servicio no disponible"):
        asyncio.run(query.download_document(make_document("d1"), "pdf"))
    assert len(notifier.errors) == 1


def test_export_uses_effective_filters(notifier, tmp_path: Path) -> None:
    backend = FakeDocumentsBackend()
    _, query = _query(backend, notifier, "tipo=boleta&page=3", download_dir=tmp_path)

    path = asyncio.run(query.export_excel())

    assert path.name.startswith("comprobantes_") and path.suffix == ".xlsx"
    assert backend.batch_calls == [("export", FilterState(document_type="boleta", page=3))]
    assert notifier.items[-1].message == "Excel exportado correctamente"


def test_export_with_unreadable_response_notifies(notifier, tmp_path: Path) -> None:
    backend = FakeDocumentsBackend()
    backend.error = ValueError("Expecting value: line 1 column 1 (char 0)")
    _, query = _query(backend, notifier, download_dir=tmp_path)

    with pytest.raises(DocumentActionError, match="Error al exportar"):
        asyncio.run(query.export_excel())
    assert [item.message for item in notifier.errors] == ["Error al exportar"]


def test_result_page_pagination_helpers() -> None:
    items = tuple(make_document(f"d{n}", n) for n in range(5))
    page = ResultPage("page=2&limit=10", FilterState(page=2, page_size=10), items, 25)

    assert page.total_pages == 3
    assert page.has_next_page and page.has_prev_page
    assert page.range_label() == "Mostrando 11 - 20 de 25"
    assert ResultPage("", FilterState(), (), 0).range_label() == "Sin resultados"


@pytest.mark.parametrize(
    ("page", "total_pages", "expected"),
    [
        (1, 5, [1, 2, 3, 4, 5]),
        (1, 10, [1, 2, None, 10]),
        (5, 10, [1, None, 4, 5, 6, None, 10]),
        (10, 10, [1, None, 9, 10]),
        (1, 0, []),
    ],
)
def test_page_numbers(page: int, total_pages: int, expected: list) -> None:
    assert page_numbers(page, total_pages) == expected
