"""Health check endpoints for monitoring and deployment verification."""

import time
from typing import Any, Awaitable, Callable

from fastapi import APIRouter, Response, status

from src.core.stripe import stripe_configuration_status
from src.core.supabase import check_database_connection
from src.schemas.common import CheckResult, HealthResponse, HealthStatus, ReadinessResponse

router = APIRouter(tags=["health"])


async def _payments_check() -> dict[str, Any]:
    return stripe_configuration_status()


READINESS_CHECKS: dict[str, Callable[[], Awaitable[dict[str, Any]]]] = {
    "database": check_database_connection,
    "payments": _payments_check,
}


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Liveness check",
    description="Returns 200 while the process is serving requests. Touches no dependency.",
)
async def health_check() -> HealthResponse:
    """Return basic health status."""
    return HealthResponse(status=HealthStatus.HEALTHY)


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    responses={
        200: {"description": "Database reachable and payments configured"},
        503: {"description": "A dependency is unavailable"},
    },
    summary="Readiness check",
    description="Checks the database and the Stripe configuration. Used by readiness checks.",
)
async def readiness_check(response: Response) -> ReadinessResponse:
    """Run every readiness check and report each one.

    An instance without Stripe keys can still serve coupon previews, but it
    would reject every webhook, so it is not ready to take traffic.

    Args:
        response: FastAPI response object for setting status code.

    Returns:
        ReadinessResponse: Overall status and per-check results.
    """
    checks: list[CheckResult] = []
    for name, check in READINESS_CHECKS.items():
        start = time.perf_counter()
        result = await check()
        checks.append(
            CheckResult(
                name=name,
                healthy=result["healthy"],
                latency_ms=round((time.perf_counter() - start) * 1000, 2),
                error=result.get("error"),
            )
        )

    if all(c.healthy for c in checks):
        return ReadinessResponse(status=HealthStatus.HEALTHY, checks=checks)

    response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(status=HealthStatus.UNHEALTHY, checks=checks)
