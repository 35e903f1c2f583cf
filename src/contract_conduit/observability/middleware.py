"""
contract_conduit.observability.middleware

HTTP middleware for request-scoped logging context.

Responsibilities:
- Generate/propagate request IDs.
- Bind request metadata into structlog contextvars.
- Emit one access log line per `/api` request with status and duration.
"""

from __future__ import annotations

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

log = structlog.get_logger("contract_conduit.http")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    - Ensures every request has a request id
    - Binds request-scoped contextvars for structured logs
    - Logs API requests at a level derived from the response status
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        # Prefer a caller-provided request id for trace continuity; otherwise generate one.
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            path=request.url.path,
            method=request.method,
        )
        started = time.perf_counter()
        try:
            response: Response = await call_next(request)
            if request.url.path.startswith("/api"):
                _log_access(request, response.status_code, started)
        finally:
            structlog.contextvars.clear_contextvars()

        response.headers["x-request-id"] = request_id
        return response


def _log_access(request: Request, status_code: int, started: float) -> None:
    duration_ms = round((time.perf_counter() - started) * 1000, 1)
    fields = {
        "status_code": status_code,
        "duration_ms": duration_ms,
        "user_agent": request.headers.get("user-agent"),
    }
    if status_code >= 500:
        log.error("request_failed", **fields)
    elif status_code >= 400:
        log.warning("request_client_error", **fields)
    else:
        log.info("request_completed", **fields)


# --- Module Notes -----------------------------------------------------------
# Health probes are not under /api and are deliberately left out of access logs.
