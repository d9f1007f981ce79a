"""Logging configuration for sunat_sync."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path


class SafeRotatingFileHandler(RotatingFileHandler):
    """Rotating handler that keeps writing when the rollover fails.

    On Windows the log file may be held open by another process; a failed
    rename must not turn a log call into an exception for the caller.
    """

    def shouldRollover(self, record: logging.LogRecord) -> int:  # noqa: N802
        try:
            return super().shouldRollover(record)
        except OSError:
            return 0

    def doRollover(self) -> None:  # noqa: N802
        try:
            super().doRollover()
        except OSError:
            if self.stream is None:
                self.stream = self._open()


def setup_logging(log_dir: Path, level: int = logging.INFO) -> logging.Logger:
    """Configure logging to console and rotating file."""
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / "sunat_sync.log"

    logger = logging.getLogger("sunat_sync")
    logger.setLevel(level)
    logger.handlers.clear()
    logger.propagate = False

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    file_handler = SafeRotatingFileHandler(
        log_path,
        maxBytes=1_000_000,
        backupCount=3,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)

    logger.addHandler(console_handler)
    logger.addHandler(file_handler)

    return logger
