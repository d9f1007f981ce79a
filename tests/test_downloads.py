from datetime import date, datetime, timezone
from pathlib import Path

from conftest import make_document, make_job
from sunat_sync.downloads import (
    batch_filename,
    document_filename,
    export_filename,
    job_archive_filename,
    job_excel_filename,
    safe_filename,
    save_payload,
)
from sunat_sync.http_client import BinaryResponse


def test_document_and_export_names() -> None:
    assert document_filename(make_document("d", 42), "pdf") == "F001-42.pdf"
    assert export_filename("comprobantes", date(2024, 3, 5)) == "comprobantes_2024-03-05.xlsx"


def test_batch_name_uses_milliseconds() -> None:
    moment = datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert batch_filename(moment) == f"comprobantes_{int(moment.timestamp() * 1000)}.zip"


def test_job_archive_extension_follows_content_type() -> None:
    job = make_job("c", "completed")

    assert job_archive_filename(job, "application/zip") == "20123456789_2024-03.zip"
    assert job_archive_filename(job, "application/vnd.ms-excel") == "20123456789_2024-03.xlsx"
    assert job_excel_filename(job) == "20123456789_2024-03_detallado.xlsx"


def test_safe_filename_strips_path_parts() -> None:
    assert safe_filename("../etc/passwd") == "etc_passwd"
    assert safe_filename("///") == "archivo"


def test_save_payload_creates_directory(tmp_path: Path) -> None:
    target = tmp_path / "nested" / "downloads"

    path = save_payload(target, "F001-1.xml", BinaryResponse(b"<a/>", "application/xml"))

    assert path == target / "F001-1.xml"
    assert path.read_bytes() == b"<a/>"
