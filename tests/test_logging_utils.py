import logging
from logging.handlers import RotatingFileHandler

from sunat_sync.logging_utils import SafeRotatingFileHandler, setup_logging


def test_safe_rotating_file_handler_swallows_permission_error(monkeypatch, tmp_path):
    log_path = tmp_path / "app.log"
    handler = SafeRotatingFileHandler(log_path, maxBytes=1, backupCount=1, encoding="utf-8")
    logger = logging.getLogger("test.safe.rotate")
    logger.handlers.clear()
    logger.setLevel(logging.INFO)
    logger.addHandler(handler)

    def broken_rollover(self):
        raise PermissionError("locked")

    monkeypatch.setattr(RotatingFileHandler, "doRollover", broken_rollover)

    logger.info("message")

    assert log_path.exists()
    handler.close()


def test_setup_logging_writes_to_rotating_file(tmp_path):
    logger = setup_logging(tmp_path / "logs")

    logger.getChild("jobs").warning("No se pudo actualizar la lista de descargas")
    for handler in logger.handlers:
        handler.flush()

    content = (tmp_path / "logs" / "sunat_sync.log").read_text(encoding="utf-8")
    assert "| WARNING | sunat_sync.jobs | No se pudo actualizar" in content
    assert len(logger.handlers) == 2
    assert any(isinstance(handler, SafeRotatingFileHandler) for handler in logger.handlers)
