"""Logging configuration.

Configures the root logger from settings. Modules log through
``logging.getLogger(__name__)`` and never configure handlers themselves.
"""

import json
import logging
import sys
import traceback
from datetime import UTC, datetime

from app.core.config import LogFormatEnum, settings

_RESERVED_ATTRS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
    "exc_info",
    "exc_text",
    "stack_info",
    "message",
}


class JsonFormatter(logging.Formatter):
    """Formatter that renders each record as one JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info),
            }

        extra = {key: value for key, value in record.__dict__.items() if key not in _RESERVED_ATTRS}
        if extra:
            log_data["extra"] = extra

        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging(level: str | None = None, log_format: LogFormatEnum | None = None) -> None:
    """Configure the root logger once for the process."""
    level = level or settings.log_level.value
    log_format = log_format or settings.log_format

    handler = logging.StreamHandler(sys.stdout)
    if log_format == LogFormatEnum.json:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)-8s %(name)s: %(message)s")
        )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # Redis and httpx are chatty at DEBUG
    logging.getLogger("httpx").setLevel(max(logging.INFO, root.level))
    logging.getLogger("redis").setLevel(max(logging.INFO, root.level))
