from datetime import datetime, timezone
from pathlib import Path

from sunat_sync.cli import init_project, validate_config_state
from sunat_sync.config import default_config, load_config, save_config
from sunat_sync.paths import config_path, data_dir, downloads_dir, state_path
from sunat_sync.state import default_state, load_state, save_state


def test_init_creates_files(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("SUNAT_SYNC_ROOT", str(tmp_path))

    init_project()

    assert config_path().exists()
    assert state_path().exists()
    assert (data_dir() / "logs").exists()
    assert downloads_dir().exists()


def test_init_keeps_existing_config(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("SUNAT_SYNC_ROOT", str(tmp_path))
    config = default_config().model_copy(update={"api_base_url": "https://portal.example.com/api/v1"})
    save_config(config, config_path())

    init_project()

    assert load_config(config_path()).api_base_url == "https://portal.example.com/api/v1"


def test_validate_config_ok(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("SUNAT_SYNC_ROOT", str(tmp_path))
    state_path().parent.mkdir(parents=True, exist_ok=True)

    save_config(default_config(), config_path())
    save_state(default_state(), state_path())

    config, state = validate_config_state(config_path(), state_path())
    assert config.user_agent == "sunat_sync/0.1"
    assert config.search_debounce_ms == 300
    assert state.schema_version == 1
    assert state.query == ""


def test_state_round_trips_poll_time(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("SUNAT_SYNC_ROOT", str(tmp_path))
    init_project()
    state = load_state(state_path())
    state.query = "tipo=boleta"
    state.last_poll_at = datetime(2024, 4, 1, 10, 0, tzinfo=timezone.utc)

    save_state(state, state_path())

    reloaded = load_state(state_path())
    assert reloaded.query == "tipo=boleta"
    assert reloaded.last_poll_at == datetime(2024, 4, 1, 10, 0, tzinfo=timezone.utc)
