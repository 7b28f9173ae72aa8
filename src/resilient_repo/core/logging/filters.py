"""
Logging filters

Correlation id filter and helpers, plus a redaction filter.

A correlation id ties together every log line produced while serving one unit of
work (a job, a request handled by the caller, a batch). It lives in a
`contextvars.ContextVar`, so it follows the work across `await` boundaries and
into tasks created from that context, which is where retry entries of the
repository layer are emitted.

Usage:
    token = set_correlation_id("job-42")
    try:
        await repo.save(entity)      # every entry carries correlation_id="job-42"
    finally:
        reset_correlation_id(token)

Records logged outside any unit of work get the sentinel "-" so formatters that
reference `%(correlation_id)s` never fail.
"""

import contextvars
import logging
from logging import LogRecord

_correlation_id_ctx: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)


def set_correlation_id(correlation_id: str | None) -> contextvars.Token:
    """
    Set the correlation id for the current context.

    Returns:
        token: pass it to reset_correlation_id() to restore the previous value.
    """
    return _correlation_id_ctx.set(correlation_id)


def reset_correlation_id(token: contextvars.Token) -> None:
    _correlation_id_ctx.reset(token)


def get_correlation_id() -> str | None:
    return _correlation_id_ctx.get()


class CorrelationIdFilter(logging.Filter):
    """
    Guarantees every LogRecord has a `correlation_id` attribute.

    Precedence: an explicit `extra={"correlation_id": ...}`, then the contextvar,
    then "-". Never drops a record.
    """

    def filter(self, record: LogRecord) -> bool:
        record.correlation_id = (
            getattr(record, "correlation_id", None) or get_correlation_id() or "-"
        )
        return True


class RedactFilter(logging.Filter):
    """Masks `extra` attributes whose name looks like a credential."""

    SENSITIVE = {"password", "secret", "token", "access_token", "refresh_token", "authorization", "dsn"}
    MASK = "***REDACTED***"

    def filter(self, record: LogRecord) -> bool:
        for key in list(record.__dict__):
            if key.lower() in self.SENSITIVE:
                record.__dict__[key] = self.MASK
        return True
