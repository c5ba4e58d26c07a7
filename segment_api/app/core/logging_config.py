"""
Logging setup for the Segment API.

``setup_logging`` attaches handlers to the ``segment_api`` logger once and
sets levels on every call, so an app built with different settings (tests,
several ``create_app`` invocations) gets the level it asked for without
duplicating output.  Records still propagate, so handlers installed on the
root logger by the host process see them too.  Per-request access lines
from uvicorn are only shown when running at ``DEBUG``.
"""

import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

APP_LOGGER = "segment_api"
QUIET_LOGGERS = ("uvicorn.access",)


def resolve_level(level: str) -> int:
    """Map a level name to its number; unknown names fall back to ``INFO``."""
    value = logging.getLevelName(level.strip().upper())
    return value if isinstance(value, int) else logging.INFO


def setup_logging(level: str = "INFO", logfile: Optional[str] = None) -> None:
    """Configure the application loggers.

    Parameters
    ----------
    level : str
        Level name for ``segment_api.*`` loggers.  Case insensitive.
    logfile : Optional[str]
        Also write log records to this file.  Missing parent directories
        are created.  Ignored once handlers are installed.
    """
    numeric_level = resolve_level(level)
    app_logger = logging.getLogger(APP_LOGGER)

    if not app_logger.handlers:
        formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        app_logger.addHandler(console_handler)

        if logfile:
            log_path = Path(logfile).expanduser().resolve()
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path, encoding="utf-8")
            file_handler.setFormatter(formatter)
            app_logger.addHandler(file_handler)

    app_logger.setLevel(numeric_level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(
            logging.DEBUG if numeric_level <= logging.DEBUG else logging.WARNING
        )
