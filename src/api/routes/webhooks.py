"""Webhook API routes for external service integrations."""

import logging

from fastapi import APIRouter, HTTPException, Request, status

from src.api.deps import Checkout, Reconciler
from src.schemas.common import WebhookAck

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post(
    "/stripe",
    response_model=WebhookAck,
    status_code=status.HTTP_200_OK,
    summary="Handle Stripe webhooks",
    description="Receives and reconciles Stripe webhook events. Requires valid signature.",
)
async def stripe_webhook(
    request: Request,
    checkout: Checkout,
    reconciler: Reconciler,
) -> WebhookAck:
    """Handle Stripe webhook events.

    The signature is verified before any business logic runs; nothing is
    read or written for an unverified payload.

    Handles:
    - checkout.session.completed / async_payment_succeeded: confirms the order
    - checkout.session.expired: cancels the unpaid order
    - checkout.session.async_payment_failed / payment_intent.payment_failed:
      cancels the unpaid order

    Duplicates, unknown event types and events for unknown orders are
    acknowledged with 200 so Stripe does not retry them.

    Args:
        request: FastAPI request object for reading raw body and headers.
        checkout: Checkout adapter (signature verification).
        reconciler: Payment reconciler.

    Returns:
        WebhookAck: Acknowledgment message.

    Raises:
        HTTPException: 400 if the signature header is missing or invalid.
    """
    payload = await request.body()

    sig_header = request.headers.get("stripe-signature")
    if not sig_header:
        logger.error("Missing Stripe-Signature header in webhook request")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing Stripe-Signature header",
        )

    try:
        event = checkout.verify_webhook_signature(payload, sig_header)
    except ValueError as e:
        logger.error("Rejected webhook: %s", str(e))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        ) from e

    event_type = event.get("type", "")
    logger.info("Processing Stripe webhook event %s: %s", event.get("id"), event_type)

    outcome = await reconciler.handle_event(event)
    logger.info("Processed %s: %s", event_type, outcome.value)

    return WebhookAck()
