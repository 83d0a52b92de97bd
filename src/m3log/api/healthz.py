"""
Health check endpoints.

- /healthz: Liveness probe (always 200 if service alive)
- /readyz: Readiness probe (200 only if storage reachable, disk OK, sweeper running)
"""

from datetime import datetime, timezone
from typing import Any, Dict

import structlog
from fastapi import APIRouter, Request, Response, status

from .. import __version__

logger = structlog.get_logger(__name__)

router = APIRouter()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get(
    "/healthz",
    status_code=200,
    summary="Liveness probe",
)
async def liveness_check() -> Dict[str, Any]:
    """
    Liveness probe - always returns 200 if service is alive.
    """
    return {
        "status": "alive",
        "timestamp": _now(),
        "service": "m3log",
        "version": __version__,
    }


@router.get(
    "/readyz",
    summary="Readiness probe",
    description="""
    Returns 200 only if all dependencies are healthy:
    - Log database answers queries
    - Data directory has free disk space
    - Retention sweeper is running (when enabled)

    Returns 503 Service Unavailable otherwise.
    """,
)
async def readiness_check(request: Request, response: Response) -> Dict[str, Any]:
    health_checker = getattr(request.app.state, 'health_checker', None)

    if not health_checker:
        logger.warning("Health checker not initialized")
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {
            "status": "not_ready",
            "reason": "health_checker_not_initialized",
            "timestamp": _now(),
        }

    health_status = await health_checker.check_all()

    if health_status.is_healthy:
        response.status_code = status.HTTP_200_OK
        return {
            "status": "ready",
            "timestamp": _now(),
            "checks": health_status.checks,
        }

    response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return {
        "status": "not_ready",
        "timestamp": _now(),
        "checks": health_status.checks,
        "failed_checks": health_status.failed_checks,
    }
