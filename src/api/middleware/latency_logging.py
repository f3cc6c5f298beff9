"""Request latency logging middleware."""

import logging
import time
from typing import Callable

from fastapi import Request, Response

logger = logging.getLogger(__name__)

SLOW_REQUEST_THRESHOLD_MS = 1000
VERY_SLOW_REQUEST_THRESHOLD_MS = 3000
HEALTH_PATHS = frozenset({"/health", "/health/ready"})
WEBHOOK_PATH_PREFIX = "/api/v1/webhooks/"


def _level_for(path: str, status_code: int, latency_ms: float) -> int:
    """Pick the log level for a finished request."""
    if path in HEALTH_PATHS:
        return logging.DEBUG
    if status_code >= 500 or latency_ms > VERY_SLOW_REQUEST_THRESHOLD_MS:
        return logging.ERROR
    # Rejected webhooks mean a wrong signing secret or a forged request.
    if status_code >= 400 and path.startswith(WEBHOOK_PATH_PREFIX):
        return logging.ERROR
    if status_code >= 400 or latency_ms > SLOW_REQUEST_THRESHOLD_MS:
        return logging.WARNING
    return logging.INFO


async def latency_logging_middleware(request: Request, call_next: Callable) -> Response:
    """Log method, path, status and latency of every request.

    Args:
        request: The incoming request.
        call_next: The next middleware/handler in the chain.

    Returns:
        Response: The response from the handler.
    """
    start = time.perf_counter()
    status_code = 500

    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        latency_ms = (time.perf_counter() - start) * 1000
        path = request.url.path
        slow = " (slow)" if latency_ms > SLOW_REQUEST_THRESHOLD_MS else ""
        logger.log(
            _level_for(path, status_code, latency_ms),
            "%s %s - %d - %.2fms%s",
            request.method,
            path,
            status_code,
            latency_ms,
            slow,
        )
