"""
Request Correlation.

Every HTTP request carries an ``X-Request-ID`` so a QR scan can be traced
from issuance through consumption and the first guarded cart call. A
caller-supplied id is reused when it looks like an id; anything else
(too long, control characters, spaces) is replaced, since the value ends
up verbatim in log lines.
"""

import re
import uuid
from contextvars import ContextVar
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_ID_HEADER = "X-Request-ID"

_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._:-]{1,64}$")

# Task-local, read by CorrelationIdFilter
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def accept_request_id(candidate: str | None) -> str:
    """Return ``candidate`` if it is a safe id, else a fresh UUID4."""
    if candidate and _REQUEST_ID_PATTERN.match(candidate):
        return candidate
    return str(uuid.uuid4())


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Binds the request id to the context and echoes it on the response."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = accept_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id

        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class CorrelationIdFilter:
    """Logging filter stamping ``record.request_id`` ("-" outside a request)."""

    def filter(self, record) -> bool:
        record.request_id = request_id_var.get() or "-"
        return True
