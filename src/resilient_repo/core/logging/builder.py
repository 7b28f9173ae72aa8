"""
Logging builder: build and apply a dictConfig configuration from Settings.

    setup_logging(get_settings())

Handlers:
  - console: always, at LOG_LEVEL
  - file + error_file: when LOG_TO_STDOUT is false and LOG_DIR is set
  - error_console: otherwise (structured ERROR+ output next to the console stream)

The repository layer logs retry attempts at INFO through the logger each
repository was given; set LOG_LEVEL=WARNING to hide them.
"""

from __future__ import annotations

import logging
import logging.config
from pathlib import Path

from resilient_repo.config.settings import Settings
from resilient_repo.utils.metadata import get_project_name

from .filters import CorrelationIdFilter, RedactFilter
from .formatters import ColorFormatter, JsonFormatter
from .handlers import (
    get_console_handler,
    get_error_console_handler,
    get_error_file_handler,
    get_file_handler,
)


def _writes_files(settings: Settings) -> bool:
    return (not settings.LOG_TO_STDOUT) and bool(settings.LOG_DIR)


def make_dict_config(settings: Settings) -> dict:
    """
    Build the dictConfig mapping for the given settings.

    The mapping includes:
      - formatters: "standard" (colored or plain text) and "json"
      - filters: "correlation_id", "redact"
      - handlers: see module docstring
      - loggers: root, resilient_repo, sqlalchemy.engine
    """
    formatters = {
        "standard": {
            "()": ColorFormatter if settings.LOG_FORMAT == "text" else logging.Formatter,
            "format": "%(asctime)s | %(levelname)s | %(name)s | %(correlation_id)s | %(message)s",
        },
        "json": {
            "()": JsonFormatter,
            "env": settings.ENV,
            "service": get_project_name(),
        },
    }

    filters = {
        "correlation_id": {"()": CorrelationIdFilter},
        "redact": {"()": RedactFilter},
    }

    handlers: dict[str, dict] = {"console": get_console_handler(settings)}

    if _writes_files(settings):
        handlers["file"] = get_file_handler(settings)
        handlers["error_file"] = get_error_file_handler(settings)
    else:
        handlers["error_console"] = get_error_console_handler(settings)

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "filters": filters,
        "handlers": handlers,
        "loggers": {
            "": {
                "handlers": list(handlers.keys()),
                "level": settings.LOG_LEVEL,
                "propagate": True,
            },
            "resilient_repo": {
                "level": settings.LOG_LEVEL,
                "propagate": True,
            },
            # SQL statements may contain parameter values; keep them off by default
            "sqlalchemy.engine": {
                "level": "DEBUG" if settings.ENABLE_SQL_LOGGING else "WARNING",
                "handlers": ["console"],
                "propagate": False,
            },
        },
    }


def setup_logging(settings: Settings) -> None:
    """
    Apply the logging configuration.

    Creates LOG_DIR when file logging is on, applies dictConfig, and adds a
    CorrelationIdFilter to the root logger so `%(correlation_id)s` is always set.
    """
    if _writes_files(settings):
        Path(settings.LOG_DIR).mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig(make_dict_config(settings))
    logging.getLogger().addFilter(CorrelationIdFilter())
