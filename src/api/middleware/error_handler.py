"""Error handling middleware that renders failures as ErrorResponse JSON."""

import logging
import traceback
from typing import Any, Callable

import stripe
from fastapi import Request, Response, status
from fastapi.responses import JSONResponse

from src.schemas.common import ErrorResponse
from src.services.discount_service import CouponRejection

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base exception for errors returned to the client as-is.

    Routes raise subclasses; the middleware turns them into an
    ErrorResponse with the subclass's status code and error type.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_type: str = "api_error"

    def __init__(self, message: str, details: list[dict[str, Any]] | None = None) -> None:
        """Initialize API error.

        Args:
            message: Human-readable error message.
            details: Optional per-field error details.
        """
        self.message = message
        self.details = details
        super().__init__(message)


class NotFoundError(APIError):
    """Order, workshop or coupon does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    error_type = "not_found"


class ConflictError(APIError):
    """Request conflicts with existing data, e.g. a taken coupon code."""

    status_code = status.HTTP_409_CONFLICT
    error_type = "conflict"


class CouponRejectedError(APIError):
    """A coupon entered with an order does not apply.

    The rejection kind travels in details[0].type so clients can branch on
    it while showing details[0].msg to the customer.
    """

    status_code = status.HTTP_400_BAD_REQUEST
    error_type = "coupon_rejected"

    def __init__(self, rejection: CouponRejection) -> None:
        self.rejection = rejection
        super().__init__(
            rejection.message,
            details=[{"loc": ["coupon_code"], "msg": rejection.message, "type": rejection.kind.value}],
        )


def create_error_response(
    error_type: str,
    message: str,
    status_code: int,
    details: list[dict[str, Any]] | None = None,
    request_id: str | None = None,
) -> JSONResponse:
    """Build the JSON response for an error.

    Returns:
        JSONResponse: ErrorResponse body with the given status code.
    """
    body = ErrorResponse.from_exception(
        error_type=error_type,
        message=message,
        details=details,
        request_id=request_id,
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", exclude_none=True),
    )


async def error_handler_middleware(request: Request, call_next: Callable[[Request], Any]) -> Response:
    """Render API errors, payment provider failures and crashes as JSON.

    - APIError subclasses keep their status code and message.
    - Stripe API failures become 502; the order they concern is untouched
      and the client may retry checkout.
    - Anything else is a 500 with a generic message. On the webhook route a
      500 makes Stripe redeliver the event, which is safe because every
      payment transition is conditional.

    Args:
        request: The incoming request.
        call_next: Next middleware or route handler.

    Returns:
        Response: The handler's response or an ErrorResponse.
    """
    request_id = request.headers.get("X-Request-ID")

    try:
        return await call_next(request)

    except APIError as e:
        logger.warning(
            "%s on %s %s: %s",
            e.error_type,
            request.method,
            request.url.path,
            e.message,
            extra={"request_id": request_id, "status_code": e.status_code},
        )
        return create_error_response(e.error_type, e.message, e.status_code, e.details, request_id)

    except stripe.StripeError as e:
        logger.error(
            "Stripe request failed on %s %s: %s (request id %s)",
            request.method,
            request.url.path,
            e.user_message or str(e),
            e.request_id,
            extra={"request_id": request_id},
        )
        return create_error_response(
            "payment_provider_error",
            "The payment provider is unavailable. Please try again.",
            status.HTTP_502_BAD_GATEWAY,
            request_id=request_id,
        )

    except Exception as e:
        logger.error(
            "Unhandled exception on %s %s: %s\n%s",
            request.method,
            request.url.path,
            str(e),
            traceback.format_exc(),
            extra={"request_id": request_id},
        )
        return create_error_response(
            "internal_error",
            "An unexpected error occurred",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            request_id=request_id,
        )
