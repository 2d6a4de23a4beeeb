"""ASGI middleware for the scan API.

Registered in create_app() after CORS and SlowAPI:
  RequestIdMiddleware        reuses or generates X-Request-ID, binds it to
                             a ContextVar and logs one access line
  SecurityHeadersMiddleware  adds the headers in SECURITY_HEADERS

``_request_id_var`` is the single source of truth for the current request
ID; app.core.logging reads it so scan progress logged by the runner
carries the ID of the request that triggered it.
"""

import logging
import time
import uuid
from contextvars import ContextVar
from typing import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Responses are JSON only and list finding locations, including where
# secrets were found: no sniffing, no framing, no referrer (repository
# URLs appear in paths) and no shared caching.
SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cache-Control": "no-store",
}

_request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def get_request_id() -> str:
    """Return the current request's ID, or an empty string outside a request."""
    return _request_id_var.get()


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Propagate X-Request-ID.

    A client-supplied value is kept so a CI job can correlate its own logs
    with the scan it triggered; otherwise a UUID4 is generated. The ID is
    echoed on the response.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        token = _request_id_var.set(request_id)
        started = time.perf_counter()
        try:
            response = await call_next(request)
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.info(
                "%s %s -> %d (%.1fms)",
                request.method, request.url.path, response.status_code, elapsed_ms,
            )
        finally:
            _request_id_var.reset(token)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers[name] = value
        return response
