"""
Structured logging configuration.

JSON logs in production, plain text in development. Both formats carry the
ambient context bound with `log_context` (request id, user id, Stripe event
id, reconciliation actor) so a webhook delivery or a reconciliation run can be
followed across services.

Usage:
    with log_context(stripe_event_id=event_id):
        logger.info("Stripe event processed")

    logger.info("Run finished", extra={"extra_fields": {"checked": 3}})
"""
import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator

from core.config import settings

_context: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})

# Fields shown in text mode, in this order; JSON mode emits everything.
TEXT_CONTEXT_FIELDS = ("request_id", "user_id", "stripe_event_id", "actor")


@contextmanager
def log_context(**fields: Any) -> Iterator[Dict[str, Any]]:
    """Bind fields to every record logged inside the block (nests; None values are dropped)."""
    merged = {**_context.get(), **{k: v for k, v in fields.items() if v is not None}}
    token = _context.set(merged)
    try:
        yield merged
    finally:
        _context.reset(token)


def current_log_context() -> Dict[str, Any]:
    return dict(_context.get())


class ContextFilter(logging.Filter):
    """Copy the bound context onto each record as `record.context`."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.context = _context.get()
        return True


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "environment": settings.ENVIRONMENT,
            "module": record.module,
            "line": record.lineno,
        }
        log_data.update(getattr(record, "context", None) or {})

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Per-call fields passed as extra={"extra_fields": {...}} win over context.
        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class ContextTextFormatter(logging.Formatter):
    """Human-readable lines with the key context ids appended."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = getattr(record, "context", None) or {}
        tags = " ".join(f"{name}={context[name]}" for name in TEXT_CONTEXT_FIELDS if name in context)
        return f"{line} [{tags}]" if tags else line


def setup_logging():
    """
    Configure application-wide logging.

    Uses JSON format in production, text format in development.
    """
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    if settings.LOG_FORMAT == "json" or settings.ENVIRONMENT == "production":
        formatter = JSONFormatter()
    else:
        formatter = ContextTextFormatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(ContextFilter())
    root_logger.addHandler(console_handler)

    # Quiet the chatty clients; webhook and reconciliation logs say what matters.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("stripe").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return root_logger
