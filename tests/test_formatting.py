from datetime import datetime, timedelta, timezone

import pytest

from sunat_sync.formatting import (
    format_frequency,
    format_local,
    format_modules,
    format_next_run,
    format_period,
    format_time_ago,
    state_label,
)
from sunat_sync.models import JobState

NOW = datetime(2024, 4, 10, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    ("delta", "expected"),
    [
        (timedelta(seconds=30), "Ahora"),
        (timedelta(minutes=5), "Hace 5 min"),
        (timedelta(hours=3), "Hace 3h"),
        (timedelta(hours=30), "Ayer"),
        (timedelta(days=4), "Hace 4 días"),
    ],
)
def test_format_time_ago(delta: timedelta, expected: str) -> None:
    assert format_time_ago(NOW - delta, now=NOW) == expected


def test_time_ago_treats_naive_timestamps_as_utc() -> None:
    naive = datetime(2024, 4, 10, 11, 50)
    assert format_time_ago(naive, now=NOW) == "Hace 10 min"


def test_format_modules_truncates() -> None:
    assert format_modules([]) == ""
    assert format_modules(["facturas_emitidas"]) == "Facturas Emitidas"
    assert (
        format_modules(["facturas_emitidas", "boletas_emitidas", "guias_remision_emitidas", "otro"])
        == "Facturas Emitidas, Boletas Emitidas, +2 más"
    )


@pytest.mark.parametrize(
    ("periodo", "expected"),
    [("2024-03", "Mar 2024"), ("2023-12", "Dic 2023"), ("2024-13", "2024-13"), ("marzo", "marzo")],
)
def test_format_period(periodo: str, expected: str) -> None:
    assert format_period(periodo) == expected


def test_format_local_uses_given_zone() -> None:
    lima = timezone(timedelta(hours=-5))
    assert format_local(datetime(2024, 4, 1, 10, 0), lima) == "01/04 05:00"


def test_state_label() -> None:
    assert state_label(JobState.CANCELLED) == "Cancelado"


def test_schedule_labels() -> None:
    lima = timezone(timedelta(hours=-5))

    assert format_frequency("weekly") == "Semanal"
    assert format_frequency("hourly") == "hourly"
    assert format_next_run(None) == "No programada"
    assert format_next_run(datetime(2024, 4, 1, 13, 0), lima) == "01/04 08:00"
