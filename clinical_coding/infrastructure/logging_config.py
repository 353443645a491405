"""Structured logging configuration.

JSON lines for production and a readable text format for development, used
by the API server, the dead-letter worker and the CLI.

Records are correlated through ``extra=`` fields: the API tags each request
with ``request_id``, ``principal`` and ``endpoint``; the reconciler and the
dead-letter path tag their records with the episode, query, dead letter or
queue message they concern. Both formatters render whichever of these are
present.

Security Impact:
    - Narrative text and response bodies are never passed to loggers
    - Only identifiers travel as correlation fields
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Correlation fields, in output order
CONTEXT_FIELDS = (
    "request_id",
    "principal",
    "endpoint",
    "episode_id",
    "query_id",
    "dead_letter_id",
    "message_id",
)

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

QUIET_LOGGERS = ("uvicorn", "uvicorn.access", "fastapi", "httpx")


def log_context(record: logging.LogRecord) -> Dict[str, Any]:
    """Correlation fields set on the record, skipping empty ones."""
    context = {}
    for field in CONTEXT_FIELDS:
        value = getattr(record, field, None)
        if value is not None and value != "":
            context[field] = value
    return context


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }
        log_data.update(log_context(record))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ContextFormatter(logging.Formatter):
    """Text formatter appending correlation fields as ``[key=value ...]``."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = log_context(record)
        if not context:
            return line
        pairs = " ".join(f"{key}={value}" for key, value in context.items())
        # Keep any traceback after the context
        head, sep, tail = line.partition("\n")
        return f"{head} [{pairs}]{sep}{tail}"


def setup_logging(use_json: bool = False, log_level: str = "INFO", stream: Optional[Any] = None):
    """Setup application logging.

    Parameters:
        use_json: Use JSON formatting (for production)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        stream: Destination stream (stdout by default)
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(level)
    if use_json:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(ContextFormatter(TEXT_FORMAT, datefmt=DATE_FORMAT))
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
