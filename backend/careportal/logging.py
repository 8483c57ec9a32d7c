"""Logging configuration for the application."""

from __future__ import annotations

import contextvars
import logging

from careportal.config import settings

request_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "request_id",
    default=None,
)


class RequestIdFilter(logging.Filter):
    """Attach request_id from contextvars to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = getattr(record, "request_id", None) or request_id_var.get() or "-"
        return True


def configure_logging() -> None:
    """Configure structured logging for the service."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s request_id=%(request_id)s",
    )
    for handler in logging.getLogger().handlers:
        handler.addFilter(RequestIdFilter())
