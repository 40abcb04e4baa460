"""Structured JSON logging with build_id support."""
from __future__ import annotations

import contextlib
import contextvars
import json
import logging
from datetime import datetime, timezone
from typing import Any, Iterator

# Context variable for the build currently being executed
build_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "build_id", default=""
)


class JSONFormatter(logging.Formatter):
    """Custom JSON log formatter."""

    def __init__(self, service_name: str = "unknown") -> None:
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service_name": self.service_name,
            "logger": record.name,
            "build_id": build_id_var.get(""),
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = str(record.exc_info[1])
        return json.dumps(log_entry)


def setup_logging(service_name: str, level: str = "INFO") -> logging.Logger:
    """Configure structured JSON logging for the pipeline.

    Handlers are attached to the ``src`` logger so every module logger
    (``logging.getLogger(__name__)``) inherits them.

    Args:
        service_name: Name written into every log entry.
        level: Log level string (e.g. "INFO", "DEBUG").

    Returns:
        Configured logger instance.
    """
    logger = logging.getLogger("src")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Remove existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter(service_name=service_name))
    logger.addHandler(handler)

    return logger


@contextlib.contextmanager
def build_context(build_number: int | str) -> Iterator[str]:
    """Tag every log record emitted inside the block with *build_number*."""
    token = build_id_var.set(str(build_number))
    try:
        yield str(build_number)
    finally:
        build_id_var.reset(token)
