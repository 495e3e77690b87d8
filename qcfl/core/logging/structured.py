"""Structured logging configuration.

Features:
- JSON formatted logs for aggregation
- Per-evaluation user and feature context
- Plain text fallback for local development
"""

from __future__ import annotations

import json
import logging
import sys
import traceback
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from qcfl.core.config import get_settings

# Context variables for evaluation tracking
user_id_var: ContextVar[Optional[str]] = ContextVar("user_id", default=None)
feature_var: ContextVar[Optional[str]] = ContextVar("feature", default=None)


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(
        self,
        service_name: str = "qcfl",
        environment: str = "development",
        include_stack_trace: bool = True,
    ):
        super().__init__()
        self.service_name = service_name
        self.environment = environment
        self.include_stack_trace = include_stack_trace

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "environment": self.environment,
        }

        if user_id := user_id_var.get():
            log_entry["user_id"] = user_id
        if feature := feature_var.get():
            log_entry["feature"] = feature

        if hasattr(record, "extra_fields"):
            log_entry["extra"] = record.extra_fields

        if record.exc_info and self.include_stack_trace:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "stacktrace": traceback.format_exception(*record.exc_info),
            }

        return json.dumps(log_entry, default=str)


def setup_logging(
    level: Union[int, str, None] = None,
    json_output: Optional[bool] = None,
    service_name: str = "qcfl",
    environment: Optional[str] = None,
) -> None:
    """Configure root logging for applications embedding the flag engine.

    Arguments left as None are taken from LOG_LEVEL, LOG_JSON and
    FEATURE_FLAG_ENVIRONMENT.
    """
    settings = get_settings()
    if level is None:
        level = settings.LOG_LEVEL
    if json_output is None:
        json_output = settings.LOG_JSON
    if environment is None:
        environment = settings.FEATURE_FLAG_ENVIRONMENT

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)

    if json_output:
        formatter: logging.Formatter = StructuredFormatter(
            service_name=service_name,
            environment=environment,
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)
