"""
Request middleware: correlation ids, caller context and timing.

The gateway authenticates callers and forwards X-User-Id / X-User-Role.
Both are bound to the log context together with the side of the
marketplace (pooling or rental) the path addresses, so booking and trip
events can be traced back to the rider or operator who caused them.
"""

import re
import time
import uuid
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
import structlog

from ridemarket.core.logging import bind_request_context, get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
SLOW_REQUEST_MS = 1000.0

_SERVICE_SEGMENT = re.compile(r"/(pooling|rental)(?:/|$)")


def service_side(path: str) -> Optional[str]:
    """Return "pooling" or "rental" when the path addresses one side, else None."""
    match = _SERVICE_SEGMENT.search(path)
    return match.group(1) if match else None


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        # Reuse the gateway's id so its access log and ours correlate
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:8]
        started = time.perf_counter()

        structlog.contextvars.clear_contextvars()
        bind_request_context(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            user_id=request.headers.get("X-User-Id"),
            role=request.headers.get("X-User-Role"),
            service_type=service_side(request.url.path),
        )

        try:
            response = await call_next(request)
        except Exception:
            logger.exception("request_failed", duration_ms=_elapsed_ms(started))
            raise

        duration_ms = _elapsed_ms(started)
        if response.status_code >= 500 or duration_ms >= SLOW_REQUEST_MS:
            logger.warning("request_completed", status_code=response.status_code, duration_ms=duration_ms)
        else:
            logger.info("request_completed", status_code=response.status_code, duration_ms=duration_ms)

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms}ms"
        return response
