"""Logging handlers and Rollbar error reporting."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

import rollbar
from flask import Flask
from rollbar.logger import RollbarHandler

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_ROLLBAR_ENABLED = False

# Pass as `extra=` when the exception was already sent with report_exception().
REPORTED = {"rollbar_reported": True}


class _SkipReported(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return not getattr(record, "rollbar_reported", False)


def _file_handler(path: str, level: int, project_root: Path) -> logging.Handler:
    log_path = Path(path)
    if not log_path.is_absolute():
        log_path = project_root / log_path
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_path)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def init_rollbar(app: Flask) -> bool:
    """Initialise Rollbar when ``ROLLBAR_TOKEN`` is configured."""
    global _ROLLBAR_ENABLED
    token = app.config.get("ROLLBAR_TOKEN")
    if not token:
        return False
    rollbar.init(
        token,
        environment=app.config.get("ENV", "production"),
        code_version=app.config.get("COMMIT_ID") or None,
        root=str(Path(app.root_path).parent),
        allow_logging_basic_config=False,
    )
    _ROLLBAR_ENABLED = True
    return True


def report_exception(extra_data: Optional[dict] = None, request=None) -> None:
    """Send the exception being handled to Rollbar, if enabled."""
    if _ROLLBAR_ENABLED:
        rollbar.report_exc_info(sys.exc_info(), request=request, extra_data=extra_data)


def configure_logging(app: Flask) -> None:
    level_name = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    project_root = Path(app.root_path).parent

    root_logger = logging.getLogger("wecarry")
    root_logger.setLevel(level)
    # create_app may run many times in one process (tests).
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    stream = logging.StreamHandler()
    stream.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(stream)

    if app.config.get("LOG_FILE"):
        root_logger.addHandler(_file_handler(app.config["LOG_FILE"], level, project_root))
    if app.config.get("ERROR_LOG_FILE"):
        root_logger.addHandler(_file_handler(app.config["ERROR_LOG_FILE"], logging.ERROR, project_root))

    if init_rollbar(app):
        rollbar_handler = RollbarHandler()
        rollbar_handler.setLevel(logging.ERROR)
        rollbar_handler.addFilter(_SkipReported())
        root_logger.addHandler(rollbar_handler)
