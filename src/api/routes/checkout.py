"""Order intake and checkout API routes."""

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from src.api.deps import Checkout, Orders, Reconciler
from src.api.middleware.error_handler import CouponRejectedError, NotFoundError
from src.schemas.checkout import (
    AvailabilityResponse,
    BookingCreate,
    CheckoutSessionCreate,
    CheckoutSessionResponse,
    EnrollmentCreate,
    OrderResponse,
    OrderTypeParam,
    PaymentConfirmRequest,
    PaymentConfirmResponse,
)
from src.services.order_service import CouponNotApplicableError
from src.services.reconciler_service import ReconcileOutcome, resolve_order_reference

logger = logging.getLogger(__name__)

router = APIRouter(tags=["orders"])


@router.post(
    "/bookings",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create workshop booking",
    description="Creates a pending booking with its price and coupon discount frozen.",
)
async def create_booking(data: BookingCreate, orders: Orders) -> OrderResponse:
    """Create a pending workshop booking.

    Raises:
        HTTPException: 400 if the workshop is unknown or full.
        CouponRejectedError: If the coupon does not apply.
    """
    try:
        booking = await orders.create_booking(**data.model_dump())
    except CouponNotApplicableError as e:
        raise CouponRejectedError(e.rejection) from e
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    return OrderResponse(**booking)


@router.post(
    "/enrollments",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create school enrollment",
    description="Creates a pending school enrollment with its fees and coupon discount frozen.",
)
async def create_enrollment(data: EnrollmentCreate, orders: Orders) -> OrderResponse:
    """Create a pending school enrollment.

    Raises:
        CouponRejectedError: If the coupon does not apply.
    """
    try:
        enrollment = await orders.create_enrollment(**data.model_dump())
    except CouponNotApplicableError as e:
        raise CouponRejectedError(e.rejection) from e
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    return OrderResponse(**enrollment)


@router.get(
    "/workshops/{workshop_id}/availability",
    response_model=AvailabilityResponse,
    summary="Workshop availability",
)
async def get_availability(workshop_id: UUID, orders: Orders) -> AvailabilityResponse:
    """Return remaining seats for a workshop.

    Raises:
        NotFoundError: If the workshop does not exist.
    """
    availability = await orders.get_availability(workshop_id)
    if availability is None:
        raise NotFoundError("Workshop not found")
    return AvailabilityResponse(**availability)


@router.get(
    "/orders/{order_type}/{order_id}",
    response_model=OrderResponse,
    summary="Get order by ID",
)
async def get_order(order_type: OrderTypeParam, order_id: UUID, orders: Orders) -> OrderResponse:
    """Return a booking or enrollment, e.g. for the success page to poll.

    Raises:
        NotFoundError: If the order does not exist.
    """
    order = await orders.get_order(order_type, order_id)
    if not order:
        raise NotFoundError("Order not found")
    return OrderResponse(**order)


@router.post(
    "/checkout/session",
    response_model=CheckoutSessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Stripe Checkout Session",
    description="Opens a hosted Stripe Checkout Session for a pending booking or enrollment.",
)
async def create_checkout_session(
    data: CheckoutSessionCreate,
    checkout: Checkout,
    reconciler: Reconciler,
) -> CheckoutSessionResponse:
    """Create a Stripe Checkout Session for a pending order.

    The frontend should redirect to the returned checkout_url. Orders with
    nothing left to pay after discount are confirmed immediately instead.

    Raises:
        HTTPException: 400 if the order is missing or no longer awaiting payment.
    """
    try:
        result = await checkout.create_checkout_session(
            order_type=data.order_type,
            order_id=data.order_id,
            success_url=str(data.success_url) if data.success_url else None,
            cancel_url=str(data.cancel_url) if data.cancel_url else None,
        )

        if result["is_free"]:
            outcome = await reconciler.confirm_without_payment(data.order_type, data.order_id)
            logger.info("Free %s %s: %s", data.order_type, data.order_id, outcome.value)

    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e

    return CheckoutSessionResponse(**result)


@router.post(
    "/checkout/confirm",
    response_model=PaymentConfirmResponse,
    summary="Confirm payment from the success page",
    description=(
        "Reconciles a paid Checkout Session fetched from Stripe, for when the success "
        "page loads before the webhook arrives. Safe to call any number of times."
    ),
)
async def confirm_checkout_session(
    data: PaymentConfirmRequest,
    checkout: Checkout,
    reconciler: Reconciler,
) -> PaymentConfirmResponse:
    """Confirm the order behind a Checkout Session.

    The session goes through the same conditional transition as the
    webhook, so whichever arrives second is a duplicate.

    Raises:
        NotFoundError: If Stripe does not know the session or its order is missing.
        HTTPException: 400 if the session is unpaid or references no order.
    """
    try:
        session = await checkout.retrieve_session(data.session_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    if session is None:
        raise NotFoundError("Checkout session not found")

    if session.get("payment_status") != "paid":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Payment not completed")

    ref = resolve_order_reference(session)
    if ref is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Checkout session does not reference an order",
        )
    order_type, order_id = ref

    outcome = await reconciler.handle_checkout_completed(session)
    order = await reconciler.orders.get_order(order_type, order_id)
    if outcome == ReconcileOutcome.ORDER_NOT_FOUND or order is None:
        raise NotFoundError("Order not found")

    logger.info("Success page confirmation for %s %s: %s", order_type, order_id, outcome.value)
    return PaymentConfirmResponse(outcome=outcome.value, order_type=order_type, order=OrderResponse(**order))
