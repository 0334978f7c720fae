from __future__ import annotations

import time
import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from powgate.telemetry.logging import get_logger
from powgate.telemetry.metrics import api_request_duration_seconds, api_requests_total


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        # Bind a trace id for everything logged while handling this request
        trace_id = uuid.uuid4().hex
        structlog.contextvars.bind_contextvars(trace_id=trace_id)
        logger = get_logger()

        method = request.method.upper()

        t0 = time.perf_counter()
        status_code = 500
        result_str = "error"
        try:
            response = await call_next(request)
            status_code = response.status_code
            result_str = "ok" if status_code < 400 else "error"
            return response
        finally:
            dt = time.perf_counter() - t0
            # Path template if the router matched one
            route = request.scope.get("route")
            endpoint = getattr(route, "path", None) or request.url.path
            api_requests_total.labels(method=method, endpoint=endpoint, status=str(status_code)).inc()
            api_request_duration_seconds.labels(endpoint=endpoint).observe(dt)
            logger.info(
                "request",
                action=f"{method} {endpoint}",
                duration_ms=round(dt * 1000.0, 3),
                result=result_str,
                status=status_code,
            )
            structlog.contextvars.unbind_contextvars("trace_id")
