from sunat_sync.config import default_config
from sunat_sync.http_client import HttpClientError
from sunat_sync.notifications import NotificationCenter, error_message
from sunat_sync.session import Session


def test_notifications_are_dismissable() -> None:
    center = NotificationCenter()
    received = []
    center.subscribe(received.append)

    ok = center.success("Descarga iniciada")
    failed = center.error("Error al cancelar")
    center.dismiss(ok.id)

    assert center.items == (failed,)
    assert center.errors == (failed,)
    assert [item.level for item in received] == ["success", "error"]

    center.clear()
    assert center.items == ()


def test_error_message_prefers_backend_detail() -> None:
    with_detail = HttpClientError("POST failed", status_code=400, detail="Periodo inválido")
    without_detail = HttpClientError("POST failed", status_code=500)

    assert error_message(with_detail, "Error al crear descarga") == "Periodo inválido"
    assert error_message(without_detail, "Error al crear descarga") == "Error al crear descarga"
    assert error_message(OSError("disk full"), "No se pudo guardar") == "No se pudo guardar"


def test_session_reads_token_from_configured_env(monkeypatch) -> None:
    config = default_config()
    monkeypatch.setenv(config.token_env, "abc123")

    session = Session.from_env(config)

    assert session.base_url == "http://localhost:4003/api/v1"
    assert session.auth_headers() == {"Authorization": "Bearer abc123"}


def test_session_without_token(monkeypatch) -> None:
    config = default_config()
    monkeypatch.delenv(config.token_env, raising=False)

    assert Session.from_env(config).auth_headers() == {}
