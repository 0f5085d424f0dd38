"""
Structured logging for snipsync.

- structlog configuration with JSON/console rendering
- operation_id binding via contextvars
- sensitive data redaction (tokens never reach the log sink)
- emit_event(): one structured line per business event
"""
from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional

import structlog

SCHEMA_VERSION = "1.0"

LOGGER = logging.getLogger(__name__)

_SENSITIVE_KEYS = {"token", "password", "secret", "authorization", "cookie", "set-cookie"}


def _redact_sensitive(logger, method, event_dict: Dict[str, Any]):
    for key in list(event_dict.keys()):
        if any(s in str(key).lower() for s in _SENSITIVE_KEYS):
            event_dict[key] = "[REDACTED]"
    return event_dict


def _add_schema_version(logger, method, event_dict: Dict[str, Any]):
    event_dict.setdefault("schema_version", SCHEMA_VERSION)
    return event_dict


def _choose_renderer(log_format: str):
    if (log_format or "").lower().strip() == "console":
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def setup_structlog_logging(min_level: str | int = "INFO", log_format: str = "json") -> None:
    level = logging.getLevelName(min_level) if isinstance(min_level, str) else int(min_level)

    if not logging.getLogger().handlers:
        logging.basicConfig(level=level, handlers=[logging.StreamHandler()])
    else:
        logging.getLogger().setLevel(level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _redact_sensitive,
            _add_schema_version,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _choose_renderer(log_format),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


def generate_operation_id() -> str:
    return str(uuid.uuid4())[:8]


def bind_operation(operation: str, operation_id: Optional[str] = None) -> str:
    """Bind the current command name and a short id to every later log line."""
    op_id = operation_id or generate_operation_id()
    structlog.contextvars.bind_contextvars(operation=operation, operation_id=op_id)
    return op_id


def clear_operation() -> None:
    structlog.contextvars.unbind_contextvars("operation", "operation_id")


def emit_event(event: str, severity: str = "info", **fields: Any) -> None:
    logger = structlog.get_logger()
    fields.setdefault("event", event)
    if severity in {"error", "critical"}:
        logger.error(**fields)
    elif severity in {"warn", "warning"}:
        logger.warning(**fields)
    elif severity == "debug":
        logger.debug(**fields)
    else:
        logger.info(**fields)
