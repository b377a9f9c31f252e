"""Run log file and console progress output.

Every run appends to its own `deploy_<YYYYmmdd_HHMMSS>.log`. Errors are also
echoed to stderr; everything else goes to the file only, console progress is
printed separately by `StepPrinter`.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path


LOGGER_NAME = "vps_deploy"
LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
SEPARATOR = "-" * 57

logger = logging.getLogger(LOGGER_NAME)


class RunLogFormatter(logging.Formatter):
    """Renders WARNING as WARN to match the `[LEVEL]` vocabulary of the log."""

    def format(self, record: logging.LogRecord) -> str:
        original = record.levelname
        if record.levelno == logging.WARNING:
            record.levelname = "WARN"
        try:
            return super().format(record)
        finally:
            record.levelname = original


def build_log_path(*, log_dir: Path, started_at: datetime) -> Path:
    return log_dir / f"deploy_{started_at.strftime('%Y%m%d_%H%M%S')}.log"


def configure_run_logging(*, log_dir: Path, started_at: datetime | None = None) -> Path:
    """Attach the run's file handler (and the stderr error echo) to the deploy logger."""
    started_at = started_at or datetime.now()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = build_log_path(log_dir=log_dir, started_at=started_at)

    formatter = RunLogFormatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)

    error_handler = logging.StreamHandler(sys.stderr)
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(formatter)

    close_run_logging()
    logger.addHandler(file_handler)
    logger.addHandler(error_handler)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return log_path


def close_run_logging() -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def log_separator() -> None:
    logger.info(SEPARATOR)


class StepPrinter:
    """Numbered, colored console progress in the `[vps-deploy]` style."""

    step_color = "\033[95m"
    color_reset = "\033[0m"

    def __init__(self, *, prefix: str = "[vps-deploy]"):
        self.prefix = prefix
        self.step_number = 0

    def step(self, message: str, *, icon: str = "🚀") -> None:
        self.step_number += 1
        print(f"{self.step_color}{self.prefix} {icon} Step {self.step_number}: {message}{self.color_reset}")
        logger.info(message)

    def info(self, message: str, *, icon: str = "ℹ️") -> None:
        print(f"{self.prefix} {icon} {message}")

    def warn(self, message: str) -> None:
        print(f"{self.prefix} ⚠️ {message}")
        logger.warning(message)
