"""
Health check and monitoring endpoints.
"""

import time
from datetime import datetime, timezone

from starlette.requests import Request
from starlette.responses import JSONResponse

from simpatient.logger import get_logger

logger = get_logger(__name__)
start_time = time.time()


async def health_check(request: Request) -> JSONResponse:
    """
    Basic health check endpoint.

    Returns 200 while the process is serving, with the live session count.
    """
    lifecycle = getattr(request.app.state, "lifecycle", None)
    sweeper = getattr(request.app.state, "sweeper", None)

    return JSONResponse(
        {
            "status": "ok",
            "active_sessions": lifecycle.active_sessions if lifecycle else 0,
            "sweeper": sweeper.get_status() if sweeper else None,
            "uptime_seconds": int(time.time() - start_time),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    )


async def readiness_check(request: Request) -> JSONResponse:
    """
    Readiness check - verifies the case database is reachable.

    Returns 200 if the service is ready to accept requests, 503 otherwise.
    """
    checks = {}

    cases = getattr(request.app.state, "cases", None)
    if cases is None or not hasattr(cases, "ping"):
        checks["database"] = "not configured"
    else:
        try:
            cases.ping()
            checks["database"] = "ok"
        except Exception as e:
            logger.warning(f"Readiness check failed: {e}")
            checks["database"] = f"error: {e}"

    sweeper = getattr(request.app.state, "sweeper", None)
    checks["sweeper"] = "ok" if sweeper and sweeper.running else "stopped"

    all_ok = all(status in ("ok", "not configured") for status in checks.values())

    return JSONResponse(
        {
            "status": "ready" if all_ok else "not ready",
            "checks": checks,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
        status_code=200 if all_ok else 503,
    )
