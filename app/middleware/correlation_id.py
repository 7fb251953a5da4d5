"""
Correlation ID middleware for request tracing.

Reads X-Correlation-ID from the incoming request or generates a UUID, keeps it in a
contextvar for the request's lifetime (including the per-event tasks of a webhook
batch, which inherit the context) and stamps it on log records.
"""

import logging
import uuid
from contextvars import ContextVar
from typing import Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

HEADER_CORRELATION_ID = "X-Correlation-ID"
MAX_CORRELATION_ID_LENGTH = 128

_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> str | None:
    return _correlation_id_var.get()


class CorrelationIdFilter(logging.Filter):
    """Adds `correlation_id` to every record so formats can reference it."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = _correlation_id_var.get() or "-"
        return True


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable):
        incoming = (request.headers.get(HEADER_CORRELATION_ID) or "").strip()
        cid = incoming if 0 < len(incoming) <= MAX_CORRELATION_ID_LENGTH else str(uuid.uuid4())
        token = _correlation_id_var.set(cid)
        try:
            response = await call_next(request)
        finally:
            _correlation_id_var.reset(token)
        # Echo back so clients can correlate
        response.headers[HEADER_CORRELATION_ID] = cid
        return response
