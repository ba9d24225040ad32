"""Logging configuration for the command line and workflow entry points.

Human-readable lines for interactive runs, JSON lines for log collection.
Migration and check messages can carry the table, constraint and store
operation they concern (passed through ``extra=``); the JSON formatter
emits them as top-level keys so a failed migration can be filtered by table.

Security Impact:
    - Query parameters and credentials are never part of log messages
    - Log levels prevent information disclosure
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO

HUMAN_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Record attributes set through logger.<level>(..., extra={...})
CONTEXT_FIELDS = ("table", "constraint", "operation")

# Chatty libraries kept at WARNING regardless of the application level
QUIET_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool")


class StructuredFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }

        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_data[field] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(use_json: bool = False, log_level: str = "INFO", stream: Optional[TextIO] = None) -> None:
    """Configure the root logger.

    Parameters:
        use_json: Emit JSON lines instead of human-readable lines
        log_level: Logging level name; unknown names fall back to INFO
        stream: Destination, stderr by default so report output on stdout stays clean
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(level)
    if use_json:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter(HUMAN_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
