"""
Structured logging for the procurement ledger

Every engine request runs inside a LogOperation. The outermost operation
opens a request scope with its own correlation id, so a PO transition, the
reservations it made and the notifications it sent share one id in the log.

Business rejections (insufficient budget, invalid transition) are logged as
warnings without a stack trace. A broken ledger invariant is logged at
critical. Anything else is an error.

Fun fact: Double-entry bookkeeping spread through Venice partly because a
second, independent record made fraud traceable. A correlation id is the same
idea: one thread you can pull to find every entry a request touched.
"""

import contextvars
import logging
import os
import secrets
import sys
import time
from typing import Any

import structlog

from procurement_ledger.kernel.errors import InvariantViolation, LedgerError

_correlation_id: contextvars.ContextVar[str] = contextvars.ContextVar(
    "procurement_correlation_id", default=""
)

# Personal data and money never reach the log verbatim
SENSITIVE_FIELDS = frozenset(
    {
        "actor_id",
        "requester_id",
        "approved_by",
        "display_name",
        "merchant_name",
        "amount",
        "total",
        "file_ref",
    }
)
REDACTED = "***REDACTED***"


def generate_correlation_id() -> str:
    """22 URL-safe characters (128 random bits)"""
    return secrets.token_urlsafe(16)


def get_correlation_id() -> str:
    """Current request's correlation id, starting a new one if none is set"""
    cid = _correlation_id.get()
    if not cid:
        cid = generate_correlation_id()
        _correlation_id.set(cid)
    return cid


def set_correlation_id(correlation_id: str) -> None:
    """Adopt a caller-supplied id (e.g. from an HTTP header)"""
    _correlation_id.set(correlation_id)


def _add_correlation_id(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    event_dict["correlation_id"] = get_correlation_id()
    return event_dict


def _redact_event(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    return redact_context(event_dict)


def configure_logging(
    *,
    json_output: bool = False,
    log_level: str = "INFO",
) -> None:
    """
    Configure structlog on top of the stdlib logging module

    Args:
        json_output: One JSON object per line (production) instead of the
                     coloured console renderer (development)
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
    """
    level = getattr(logging, log_level.upper())

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    logging.getLogger().setLevel(level)

    # Flask's request log is noise next to ledger events
    logging.getLogger("werkzeug").setLevel(logging.WARNING)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _add_correlation_id,
        _redact_event,
    ]

    if json_output:
        renderers: list[structlog.types.Processor] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(sort_keys=True),
        ]
    else:
        renderers = [
            structlog.processors.ExceptionRenderer(),
            structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()),
        ]

    structlog.configure(
        processors=shared_processors + renderers,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def is_production() -> bool:
    """ENVIRONMENT=production (any case); unset means development"""
    return os.getenv("ENVIRONMENT", "development").lower() == "production"


def redact_context(context: dict[str, Any]) -> dict[str, Any]:
    """
    Mask sensitive fields in a log context

    Args:
        context: Key/value pairs about to be logged

    Returns:
        New dictionary with SENSITIVE_FIELDS replaced by a marker

    Example:
        >>> redact_context({"actor_id": "alice", "po_id": "po-1"})
        {'actor_id': '***REDACTED***', 'po_id': 'po-1'}
    """
    return {k: REDACTED if k in SENSITIVE_FIELDS else v for k, v in context.items()}


class LogOperation:
    """
    Time and log one engine request

    Entering the outermost LogOperation of a thread opens a request scope:
    a fresh correlation id is issued and dropped again on exit. Nested
    operations reuse the id of the request they belong to.
    """

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger,
        operation: str,
        **context: Any,
    ) -> None:
        """
        Args:
            logger: Module logger
            operation: Operation name (e.g. "transition_po", "apply_transfer")
            **context: Identifiers of what the operation touches
        """
        self.logger = logger
        self.operation = operation
        self.context = context
        self.start_time: float = 0.0
        self._scope_token: contextvars.Token[str] | None = None

    def __enter__(self) -> "LogOperation":
        if not _correlation_id.get():
            self._scope_token = _correlation_id.set(generate_correlation_id())
        self.start_time = time.perf_counter()
        self.logger.debug(f"{self.operation} started", operation=self.operation, **self.context)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        duration_ms = round((time.perf_counter() - self.start_time) * 1000, 2)
        fields = {"operation": self.operation, "duration_ms": duration_ms, **self.context}

        try:
            if exc_type is None:
                self.logger.info(f"{self.operation} completed", **fields)
            elif issubclass(exc_type, InvariantViolation):
                self.logger.critical(
                    f"{self.operation} broke a ledger invariant",
                    error=str(exc_val),
                    exc_info=True,
                    **fields,
                )
            elif issubclass(exc_type, LedgerError):
                self.logger.warning(
                    f"{self.operation} rejected",
                    error_type=exc_type.__name__,
                    error=str(exc_val),
                    **fields,
                )
            else:
                self.logger.error(
                    f"{self.operation} failed",
                    error_type=exc_type.__name__,
                    error=str(exc_val),
                    exc_info=not is_production(),
                    **fields,
                )
        finally:
            if self._scope_token is not None:
                _correlation_id.reset(self._scope_token)
                self._scope_token = None
