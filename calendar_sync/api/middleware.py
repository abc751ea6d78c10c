"""
FastAPI middleware for logging and request tracking.
"""

import logging
import time
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs every request with a request ID and its duration.

    An incoming X-Request-ID is reused so calls from the scheduling app can
    be correlated; otherwise a short ID is generated. The ID and the
    elapsed time are returned as X-Request-ID and X-Response-Time.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        req_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
        user_id = request.headers.get("X-User-ID", "")

        logger.info(
            f"[{req_id}] {request.method} {request.url.path}",
            extra={
                "request_id": req_id,
                "method": request.method,
                "path": request.url.path,
                "user_id": user_id,
            },
        )

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            elapsed = time.perf_counter() - start_time
            logger.error(
                f"[{req_id}] Request failed after {elapsed:.2f}s: {e}",
                extra={"request_id": req_id, "elapsed_ms": elapsed * 1000},
                exc_info=True,
            )
            raise

        elapsed = time.perf_counter() - start_time
        logger.info(
            f"[{req_id}] {response.status_code} in {elapsed:.2f}s",
            extra={
                "request_id": req_id,
                "status_code": response.status_code,
                "elapsed_ms": elapsed * 1000,
            },
        )

        response.headers["X-Request-ID"] = req_id
        response.headers["X-Response-Time"] = f"{elapsed:.3f}s"
        return response
