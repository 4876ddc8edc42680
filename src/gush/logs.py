# logs.py
"""Logging setup for the CLI, the workers and the API."""
from __future__ import annotations

import logging
import sys
from typing import Any, Dict

from pythonjsonlogger.json import JsonFormatter


class WorkflowContextFilter(logging.Filter):
    """Make workflow_id / job always present so formats can reference them."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "workflow_id"):
            record.workflow_id = None
        if not hasattr(record, "job"):
            record.job = None
        return True


class GushJsonFormatter(JsonFormatter):
    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["thread"] = record.threadName
        # drop empty context fields
        for key in ("workflow_id", "job"):
            if log_record.get(key) is None:
                log_record.pop(key, None)


def setup_logging(debug: bool = False, json_output: bool = False) -> None:
    """Install one stderr handler on the `gush` logger."""
    handler = logging.StreamHandler(sys.stderr)
    if json_output:
        handler.setFormatter(GushJsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        ))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)-7s [%(threadName)s] %(name)s: %(message)s",
        ))
    handler.addFilter(WorkflowContextFilter())

    logger = logging.getLogger("gush")
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    logger.propagate = False
