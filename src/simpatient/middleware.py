"""
HTTP middleware for SimPatient.
"""

import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from simpatient.logger import get_logger

logger = get_logger(__name__)

QUIET_PATHS = ("/health", "/ready")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log all requests with timing information.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()
        client = request.client.host if request.client else "unknown"

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(f"Request failed: {request.method} {request.url.path}: {e}")
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000
        message = (
            f"{request.method} {request.url.path} from {client} -> "
            f"{response.status_code} in {duration_ms:.2f}ms"
        )
        if request.url.path in QUIET_PATHS:
            logger.debug(message)
        else:
            logger.info(message)

        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"
        return response
