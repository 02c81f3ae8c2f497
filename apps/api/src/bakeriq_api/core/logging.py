from __future__ import annotations

import json
import logging
import sys
from logging import LogRecord
from typing import Any, Dict, TextIO

from loguru import logger
from opentelemetry import trace


_RESERVED_LOG_RECORD_ATTRS = frozenset(vars(LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}

# Chatty third-party loggers held at WARNING.
_QUIET_LOGGERS = ("uvicorn.access", "apscheduler.executors.default", "botocore", "sqlalchemy.engine")


class InterceptHandler(logging.Handler):
    """Bridge standard logging records into Loguru with structured context."""

    def emit(self, record: LogRecord) -> None:  # pragma: no cover - bridging glue
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        try:
            message = record.getMessage()
        except Exception:  # pragma: no cover - safety against malformed format strings
            message = record.msg if isinstance(record.msg, str) else str(record.msg)

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_LOG_RECORD_ATTRS and not key.startswith("otel")
        }

        safe_message = message.replace("{", "{{").replace("}", "}}")

        bound_logger = logger.bind(**extra) if extra else logger
        bound_logger.opt(depth=6, exception=record.exc_info).log(level, safe_message)


def build_log_payload(record: Dict[str, Any], metadata: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten a loguru record into the JSON shape shipped to the log pipeline."""

    span = trace.get_current_span()
    span_context = span.get_span_context() if span else None

    payload: Dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name.lower(),
        "message": record["message"],
        "logger": record["name"],
        "service": metadata.get("service_name", "unknown"),
        "environment": metadata.get("environment", "unknown"),
        "version": metadata.get("version", "unknown"),
    }

    if span_context and span_context.is_valid:
        payload["trace_id"] = f"{span_context.trace_id:032x}"
        payload["span_id"] = f"{span_context.span_id:016x}"

    if record["exception"] is not None:
        exc_type = record["exception"].type
        payload["exception"] = exc_type.__name__ if exc_type else None

    if record["extra"]:
        payload.update(record["extra"])

    return payload


def configure_logging(
    *,
    service_name: str,
    environment: str,
    version: str,
    level: str = "INFO",
    stream: TextIO | None = None,
) -> None:
    """Configure Loguru + stdlib logging with structured JSON output."""

    metadata = {"service_name": service_name, "environment": environment, "version": version}
    sink = stream or sys.stdout

    def _write(message: "logger.Message") -> None:
        sink.write(json.dumps(build_log_payload(message.record, metadata), default=str) + "\n")

    logger.remove()
    logger.add(_write, level=level, backtrace=False, diagnose=False)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


__all__ = ["InterceptHandler", "build_log_payload", "configure_logging"]
