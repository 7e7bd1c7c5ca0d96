"""Request correlation, access logging and error rendering."""

import time

from fastapi import Request
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

from .core.exceptions import (
    AuthenticationFailed,
    AwsInfraException,
    InternalError,
    ServiceUnavailable,
)
from .observability import (
    CORRELATION_HEADER,
    REQUEST_ID_HEADER,
    generate_correlation_id,
    set_correlation_id,
)

RETRY_AFTER_SECONDS = "5"


def error_response(exc: AwsInfraException) -> JSONResponse:
    """Render ``exc`` as the shared error body with its status headers."""
    headers = {}
    if isinstance(exc, AuthenticationFailed):
        headers["WWW-Authenticate"] = "Bearer"
    elif isinstance(exc, ServiceUnavailable):
        headers["Retry-After"] = RETRY_AFTER_SECONDS
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


def _outcome(status_code: int) -> str:
    if status_code < 400:
        return "success"
    if status_code < 500:
        return "client_error"
    return "server_error"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Assigns a correlation id to every request and writes one log record
    per request with its outcome and timing.

    Unexpected exceptions from handlers are rendered here as 500 ``internal``
    so the response still carries the correlation id.
    """

    async def dispatch(self, request: Request, call_next):
        correlation_id = (
            request.headers.get(CORRELATION_HEADER)
            or request.headers.get(REQUEST_ID_HEADER)
            or generate_correlation_id()
        )
        set_correlation_id(correlation_id)

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(f"Unhandled error on {request.method} {request.url.path}")
            response = error_response(InternalError())

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers[CORRELATION_HEADER] = correlation_id
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} "
            f"{_outcome(response.status_code)} ({duration_ms:.1f}ms)"
        )
        return response
