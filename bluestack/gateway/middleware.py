"""FastAPI middleware for the Bluestack edge application.

Assigns request IDs, logs every request, enforces the request timeout and
turns unhandled exceptions into 500 responses.
"""

import asyncio
import logging
import time
import uuid
from typing import Callable, Optional

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from bluestack.core.logging_config import bind_request_id, log_with_context, reset_request_id

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def client_address(request: Request) -> str:
    """Best-effort client address, honoring X-Forwarded-For and X-Real-IP."""
    if forwarded := request.headers.get("x-forwarded-for"):
        return forwarded.split(",")[0].strip()
    if real_ip := request.headers.get("x-real-ip"):
        return real_ip.strip()
    if request.client:
        return request.client.host
    return ""


class EdgeMiddleware(BaseHTTPMiddleware):
    """Request ID, access logging, timeout and recovery for every request."""

    def __init__(
        self,
        app: ASGIApp,
        *,
        request_timeout: Optional[float] = 60.0,
    ):
        """Initialize edge middleware.

        Args:
            app: ASGI application
            request_timeout: Seconds before answering 504; None disables it
        """
        super().__init__(app)
        self.request_timeout = request_timeout

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process a request through the edge middleware."""
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        token = bind_request_id(request_id)
        request.state.request_id = request_id
        start = time.perf_counter()

        try:
            try:
                if self.request_timeout:
                    response = await asyncio.wait_for(call_next(request), timeout=self.request_timeout)
                else:
                    response = await call_next(request)
            except asyncio.TimeoutError:
                logger.warning(f"Request timed out after {self.request_timeout}s: {request.method} {request.url.path}")
                response = JSONResponse(
                    status_code=status.HTTP_504_GATEWAY_TIMEOUT,
                    content={"error": {"code": "OperationTimedOut", "message": "The operation timed out"}},
                )
            except Exception:
                logger.error(
                    f"Unhandled exception while serving {request.method} {request.url.path}",
                    exc_info=True,
                )
                response = JSONResponse(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                    content={"error": {"code": "InternalError", "message": "Internal server error"}},
                )

            response.headers[REQUEST_ID_HEADER] = request_id

            log_with_context(
                logger,
                logging.INFO,
                "request completed",
                method=request.method,
                path=request.url.path,
                query=request.url.query,
                status=response.status_code,
                latency_ms=int((time.perf_counter() - start) * 1000),
                remote_addr=client_address(request),
            )
            return response
        finally:
            reset_request_id(token)
