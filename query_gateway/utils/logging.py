"""
Logging setup for the query gateway.

The gateway, pool manager and CLI all log through stdlib loggers named after
their modules. `configure_logging` installs one stderr handler on the root
logger, either human-readable or JSON. In JSON mode the fields passed via
`extra=` (pool keys, audit fields, sanitized errors) become top-level keys.

Usage:
    from query_gateway.utils.logging import configure_logging, get_logger

    configure_logging(level="INFO", json_logs=True)
    log = get_logger(__name__)
    log.info("Pool opened", extra={"pool_key": "prod:orders"})
"""

from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Attributes every LogRecord carries; anything else arrived through `extra=`.
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime", "taskName"}

# psycopg_pool reports every connection it grows or prunes at INFO.
_DRIVER_LOGGERS = ("psycopg", "psycopg.pool")


def _json_formatter(record: logging.LogRecord) -> str:
    """Render a log record as one JSON line."""
    payload: Dict[str, Any] = {
        "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
        "level": record.levelname,
        "logger": record.name,
        "message": record.getMessage(),
    }
    if record.exc_info:
        payload["exc_info"] = logging.Formatter().formatException(record.exc_info)
    for key, value in record.__dict__.items():
        if key not in _RESERVED_ATTRS and key != "extra":
            payload[key] = value
    # Older call sites pass a single `extra` dict attribute.
    if isinstance(getattr(record, "extra", None), dict):
        payload.update(record.extra)
    return json.dumps(payload, default=str)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        return _json_formatter(record)


def configure_logging(
    level: str = "INFO",
    json_logs: bool = False,
    force: bool = True,
) -> None:
    """
    Configure root logging for the gateway process.

    Parameters
    ----------
    level : str
        Root level name, e.g. "DEBUG" or "WARNING". Driver loggers never go
        below WARNING unless `level` is DEBUG.
    json_logs : bool
        One JSON object per line instead of the console format.
    force : bool
        Replace handlers that are already installed on the root logger. With
        False, an embedding application's logging setup is left untouched.
    """
    if not force and logging.getLogger().handlers:
        return

    level = level.upper()
    driver_level = "DEBUG" if level == "DEBUG" else "WARNING"

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "console": {
                    "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
                "json": {"()": JsonFormatter},
            },
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "formatter": "json" if json_logs else "console",
                    "stream": "ext://sys.stderr",
                }
            },
            "loggers": {name: {"level": driver_level} for name in _DRIVER_LOGGERS},
            "root": {"handlers": ["stderr"], "level": level},
        }
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger", "JsonFormatter"]
