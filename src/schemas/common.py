"""Shared response envelopes: health checks, webhook acks and errors."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

API_VERSION = "0.1.0"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class HealthResponse(BaseModel):
    """Liveness check body."""

    status: HealthStatus
    timestamp: datetime = Field(default_factory=_utcnow)
    version: str = API_VERSION


class CheckResult(BaseModel):
    """Outcome of one readiness check ("database", "payments")."""

    name: str
    healthy: bool
    latency_ms: float | None = Field(default=None, description="Time the check took")
    error: str | None = Field(default=None, description="Why the check failed, when it did")


class ReadinessResponse(BaseModel):
    """Readiness check body; UNHEALTHY when any check failed."""

    status: HealthStatus
    timestamp: datetime = Field(default_factory=_utcnow)
    checks: list[CheckResult] = Field(default_factory=list)


class WebhookAck(BaseModel):
    """Body returned to Stripe for every verified event, handled or not."""

    status: str = "received"


class ErrorDetail(BaseModel):
    """One problem behind an error, e.g. the coupon field that was rejected."""

    loc: list[str] | None = Field(default=None, description="Field path, when the error is tied to one")
    msg: str
    type: str = Field(description="Machine-readable reason, e.g. 'Expired' or 'UsageLimitExceeded'")

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "ErrorDetail":
        return cls(loc=raw.get("loc"), msg=raw.get("msg", str(raw)), type=raw.get("type", "error"))


class ErrorResponse(BaseModel):
    """Body of every error raised as an APIError or caught by the error middleware."""

    error: str = Field(description="Error category such as 'not_found' or 'coupon_rejected'")
    message: str
    details: list[ErrorDetail] | None = None
    request_id: str | None = None
    timestamp: datetime = Field(default_factory=_utcnow)

    @classmethod
    def from_exception(
        cls,
        error_type: str,
        message: str,
        details: list[dict[str, Any]] | None = None,
        request_id: str | None = None,
    ) -> "ErrorResponse":
        """Build the body from the parts an exception carries.

        Args:
            error_type: Error category.
            message: Message safe to show the customer.
            details: Raw detail dicts with optional 'loc', 'msg' and 'type'.
            request_id: Request ID for tracing, if one was assigned.

        Returns:
            ErrorResponse: Body ready for model_dump(mode="json").
        """
        return cls(
            error=error_type,
            message=message,
            details=[ErrorDetail.from_dict(d) for d in details] if details else None,
            request_id=request_id,
        )
