"""
Structured logging with correlation IDs for remediation cycles.

Every log line emitted inside a cycle carries the ``cycle_id``; lines emitted
by an attempt also carry the ``resource_id`` and ``attempt_id``. Context
variables are copied into each asyncio task, so concurrent attempts in the
same batch keep their own values.
"""

import contextvars
import logging
import json
from typing import Any, Optional
from datetime import datetime, timezone

CONTEXT_FIELDS = ('cycle_id', 'resource_id', 'attempt_id')

remediation_context: contextvars.ContextVar[dict] = contextvars.ContextVar(
    'remediation_context', default={}
)


class ContextualLogger(logging.LoggerAdapter):
    """
    Logger adapter that injects correlation IDs into log records.

    Usage:
        logger = get_logger(__name__)
        with LoggingContext(cycle_id='c-1', resource_id='orders-api'):
            logger.info("Applying fix")
    """

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        """Inject context variables into log extra fields."""
        ctx = remediation_context.get({})
        extra = kwargs.get('extra', {})

        extra.update({key: ctx.get(key) for key in CONTEXT_FIELDS})
        extra = {k: v for k, v in extra.items() if v is not None}

        kwargs['extra'] = extra
        return msg, kwargs


class JSONFormatter(logging.Formatter):
    """JSON formatter including remediation correlation IDs."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        ctx = remediation_context.get({})
        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None) or ctx.get(key)
            if value is not None:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def get_logger(name: str) -> ContextualLogger:
    """
    Get a contextual logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        ContextualLogger instance
    """
    return ContextualLogger(logging.getLogger(name), {})


def set_context(**kwargs: Any) -> contextvars.Token:
    """
    Add values to the current remediation context.

    Returns:
        Token to reset context later
    """
    current = remediation_context.get({}).copy()
    current.update(kwargs)
    return remediation_context.set(current)


def get_context() -> dict:
    """Get current remediation context."""
    return remediation_context.get({}).copy()


def clear_context() -> None:
    """Clear remediation context."""
    remediation_context.set({})


class LoggingContext:
    """
    Context manager for setting logging context.

    Usage:
        with LoggingContext(cycle_id='c-1'):
            logger.info("Starting cycle")  # Includes cycle_id
    """

    def __init__(self, **kwargs: Any):
        self.kwargs = kwargs
        self.token: Optional[contextvars.Token] = None

    def __enter__(self):
        self.token = set_context(**self.kwargs)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.token:
            remediation_context.reset(self.token)
        return False
