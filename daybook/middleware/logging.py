"""
Daybook Backend: Access Logging Middleware
===========================================

What:  One `daybook.access` line per API request.
How:   Written once the response is ready:

    POST /api/entries 201 12.4ms [a1b2c3d4]
    GET /api/entries/abc 404 1.0ms [a1b2c3d4]

       Server errors log at ERROR, client errors at WARNING, the rest at INFO.
       Structured fields (request_id, method, route, status, duration_ms)
       go into `extra` for JSON log handlers.

Never logged: query strings, request or response bodies, or client
addresses. Bodies and query strings can carry passwords, reset tokens and
journal text.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from daybook.middleware.request_id import request_id_var

access_logger = logging.getLogger("daybook.access")

# Probed by supervisors every few seconds
QUIET_PATHS = frozenset({"/health", "/docs", "/redoc", "/openapi.json"})


def level_for_status(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        route = request.url.path
        if route in QUIET_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 1)

        rid = request_id_var.get("")
        access_logger.log(
            level_for_status(response.status_code),
            "%s %s %d %.1fms [%s]",
            request.method,
            route,
            response.status_code,
            elapsed_ms,
            rid,
            extra={
                "request_id": rid,
                "method": request.method,
                "route": route,
                "status": response.status_code,
                "duration_ms": elapsed_ms,
            },
        )
        return response
