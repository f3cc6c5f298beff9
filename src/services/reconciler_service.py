"""Payment event reconciler.

Turns verified Stripe webhook events into the single authoritative state
transition for a booking or enrollment, then applies the side effects of
that transition (coupon usage, customer enrichment, confirmation email).

Stripe delivers events at least once and in no particular order. Every
transition is a conditional update that only matches orders still awaiting
payment, and only the call that wins the update applies side effects, so a
duplicate or concurrent delivery is acknowledged without doing anything. The
one exception is the coupon usage write, which is retried on redelivery until
it lands because the database function records each order at most once.
"""

import logging
from enum import Enum
from typing import Any
from uuid import UUID

from src.models.order import PaymentConfirmation
from src.services.coupon_service import CouponLedger
from src.services.email_service import EmailService
from src.services.order_service import OrderService

logger = logging.getLogger(__name__)

COMPLETION_EVENTS = frozenset(
    {
        "checkout.session.completed",
        "checkout.session.async_payment_succeeded",
    }
)

# Event type -> reason recorded in logs
CANCELLATION_EVENTS: dict[str, str] = {
    "checkout.session.expired": "checkout session expired",
    "checkout.session.async_payment_failed": "payment failed",
    "payment_intent.payment_failed": "payment failed",
}

METADATA_ORDER_TYPES: dict[str, str] = {
    "workshop_booking": "booking",
    "school_enrollment": "enrollment",
}


class ReconcileOutcome(str, Enum):
    """Result of reconciling one event. Every outcome is acknowledged to Stripe."""

    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    ORDER_NOT_FOUND = "order_not_found"
    UNHANDLED = "unhandled"


def _stripe_id(value: Any) -> str | None:
    """Return the id of a Stripe reference that may be expanded."""
    if isinstance(value, dict):
        return value.get("id")
    return value or None


def resolve_order_reference(obj: dict[str, Any]) -> tuple[str, str] | None:
    """Extract (order_type, order_id) from a session or payment intent.

    Sessions created before the "type" discriminator existed carry only a
    booking_id and are treated as workshop bookings.

    Returns:
        tuple | None: The order reference, or None if metadata is unusable.
    """
    metadata = obj.get("metadata") or {}
    order_type = METADATA_ORDER_TYPES.get(metadata.get("type") or "workshop_booking")
    if order_type is None:
        logger.warning("Unknown order type %r in metadata of %s", metadata.get("type"), obj.get("id"))
        return None

    order_id = metadata.get("order_id") or metadata.get(f"{order_type}_id")
    if not order_id:
        logger.warning("Webhook missing order_id in metadata: %s", obj.get("id"))
        return None

    # Order ids are uuid columns; anything else would fail in the database.
    try:
        order_id = str(UUID(str(order_id)))
    except ValueError:
        logger.warning("Malformed order_id %r in metadata of %s", order_id, obj.get("id"))
        return None

    return order_type, order_id


def _paid(order: dict[str, Any] | None) -> bool:
    return bool(order) and order.get("payment_status") == "paid" and order.get("status") != "cancelled"


def _discount_from_metadata(metadata: dict[str, Any]) -> tuple[str | None, int]:
    coupon_id = metadata.get("coupon_id") or None
    try:
        discount_amount = int(metadata.get("discount_amount") or 0)
    except (TypeError, ValueError):
        logger.warning("Malformed discount_amount in metadata: %r", metadata.get("discount_amount"))
        discount_amount = 0
    return coupon_id, discount_amount


class PaymentReconciler:
    """Single writer for payment-driven order transitions."""

    def __init__(
        self,
        order_service: OrderService | None = None,
        coupon_ledger: CouponLedger | None = None,
        email_service: EmailService | None = None,
    ) -> None:
        """Initialize reconciler.

        Args:
            order_service: Order aggregate service.
            coupon_ledger: Coupon ledger (defaults to one sharing the order service's client).
            email_service: Notification dispatcher.
        """
        self.orders = order_service or OrderService()
        self.coupons = coupon_ledger or self.orders.coupon_ledger
        self.email = email_service or EmailService()

    async def handle_event(self, event: dict[str, Any]) -> ReconcileOutcome:
        """Reconcile one verified Stripe event.

        Args:
            event: Verified Stripe event payload.

        Returns:
            ReconcileOutcome: What happened. Never raises for bad or unknown
                business data; only infrastructure failures propagate.
        """
        event_type = event.get("type", "")
        obj = (event.get("data") or {}).get("object") or {}

        if event_type in COMPLETION_EVENTS:
            return await self.handle_checkout_completed(obj)

        if event_type in CANCELLATION_EVENTS:
            return await self.handle_payment_not_completed(obj, CANCELLATION_EVENTS[event_type])

        logger.info("Unhandled webhook event type: %s", event_type)
        return ReconcileOutcome.UNHANDLED

    async def handle_checkout_completed(self, session: dict[str, Any]) -> ReconcileOutcome:
        """Confirm the order behind a completed checkout session.

        Args:
            session: Stripe Checkout Session object.

        Returns:
            ReconcileOutcome: CONFIRMED if this call applied the transition.
        """
        if session.get("payment_status") != "paid":
            logger.info("Payment not completed for session: %s", session.get("id"))
            return ReconcileOutcome.IGNORED

        ref = resolve_order_reference(session)
        if ref is None:
            return ReconcileOutcome.IGNORED
        order_type, order_id = ref

        coupon_id, discount_amount = _discount_from_metadata(session.get("metadata") or {})
        correlation: PaymentConfirmation = {
            "stripe_session_id": session.get("id"),
            "stripe_payment_intent_id": _stripe_id(session.get("payment_intent")),
            "stripe_subscription_id": _stripe_id(session.get("subscription")),
        }

        return await self._confirm(
            order_type,
            order_id,
            correlation,
            coupon_id=coupon_id,
            discount_amount=discount_amount,
            stripe_customer_id=_stripe_id(session.get("customer")),
        )

    async def confirm_without_payment(self, order_type: str, order_id: UUID | str) -> ReconcileOutcome:
        """Confirm an order whose payable amount is zero.

        Fully discounted orders never reach Stripe, so there is no event to
        reconcile; they go through the same confirmation path directly.

        Raises:
            ValueError: If the order is missing or has something to pay.
        """
        order = await self.orders.get_order(order_type, order_id)
        if not order:
            raise ValueError("Order not found")
        if order["total_amount"] != 0:
            raise ValueError("Order has an outstanding amount")

        return await self._confirm(
            order_type,
            str(order_id),
            {},
            coupon_id=order.get("coupon_id"),
            discount_amount=order.get("discount_amount", 0),
        )

    async def _confirm(
        self,
        order_type: str,
        order_id: str,
        correlation: PaymentConfirmation,
        coupon_id: str | None = None,
        discount_amount: int = 0,
        stripe_customer_id: str | None = None,
    ) -> ReconcileOutcome:
        """Apply the confirmation transition and its side effects.

        A failed coupon usage write is noted on the order and re-raised after
        the other side effects ran, so the event is delivered again. That
        delivery loses the transition and retries only the usage write, which
        the database function ignores if it already landed.
        """
        order = await self.orders.confirm_payment(order_type, order_id, correlation)
        if order is None:
            existing = await self.orders.get_order(order_type, order_id)
            outcome = self._explain_lost_transition(order_type, order_id, existing, "confirmation")
            if _paid(existing) and coupon_id and discount_amount > 0:
                await self._record_coupon_usage(order_type, existing, coupon_id, discount_amount)
            return outcome

        logger.info("%s %s confirmed and marked paid", order_type.capitalize(), order_id)

        usage_error: Exception | None = None
        if coupon_id and discount_amount > 0:
            try:
                await self._record_coupon_usage(order_type, order, coupon_id, discount_amount)
            except Exception as e:
                logger.error("Failed to record coupon %s usage for %s %s: %s", coupon_id, order_type, order_id, str(e))
                await self.orders.append_system_note(
                    order_type, order_id, f"coupon usage not recorded ({coupon_id}): {e}"
                )
                usage_error = e

        if stripe_customer_id and order.get("customer_id"):
            try:
                await self.orders.set_provider_customer_id(order["customer_id"], stripe_customer_id)
            except Exception as e:
                logger.error("Failed to store Stripe customer %s: %s", stripe_customer_id, str(e))

        await self._notify(order_type, order)

        if usage_error is not None:
            raise usage_error
        return ReconcileOutcome.CONFIRMED

    async def _record_coupon_usage(
        self, order_type: str, order: dict[str, Any], coupon_id: str, discount_amount: int
    ) -> None:
        await self.coupons.record_usage(
            coupon_id, order_type, order["id"], order.get("customer_id"), discount_amount
        )

    async def handle_payment_not_completed(self, obj: dict[str, Any], reason: str) -> ReconcileOutcome:
        """Cancel the order behind an expired session or failed payment.

        Args:
            obj: Stripe Checkout Session or PaymentIntent object.
            reason: Why the payment did not complete (for logs).

        Returns:
            ReconcileOutcome: CANCELLED if this call applied the transition.
        """
        ref = resolve_order_reference(obj)
        if ref is None:
            return ReconcileOutcome.IGNORED
        order_type, order_id = ref

        order = await self.orders.cancel_unpaid(order_type, order_id)
        if order is None:
            existing = await self.orders.get_order(order_type, order_id)
            return self._explain_lost_transition(order_type, order_id, existing, "cancellation")

        logger.info("%s %s cancelled due to %s", order_type.capitalize(), order_id, reason)
        return ReconcileOutcome.CANCELLED

    def _explain_lost_transition(
        self, order_type: str, order_id: str, existing: dict[str, Any] | None, transition: str
    ) -> ReconcileOutcome:
        """Classify an event whose conditional update matched no row."""
        if existing is None:
            logger.warning("%s %s referenced by webhook does not exist", order_type.capitalize(), order_id)
            return ReconcileOutcome.ORDER_NOT_FOUND

        if transition == "confirmation" and existing.get("status") == "cancelled":
            # Paid after cancellation: needs a manual refund or rebooking decision.
            logger.warning(
                "Payment completed for cancelled %s %s (payment_status=%s); left unchanged",
                order_type,
                order_id,
                existing.get("payment_status"),
            )
        else:
            logger.info(
                "Skipping %s for %s %s already %s/%s",
                transition,
                order_type,
                order_id,
                existing.get("status"),
                existing.get("payment_status"),
            )
        return ReconcileOutcome.DUPLICATE

    async def _notify(self, order_type: str, order: dict[str, Any]) -> None:
        """Send the confirmation email; failures become order notes."""
        try:
            result = await self._send_confirmation(order_type, order)
        except Exception as e:
            result = {"success": False, "error": str(e)}

        if not result.get("success"):
            logger.error(
                "Confirmation email failed for %s %s: %s", order_type, order["id"], result.get("error")
            )
            await self.orders.append_system_note(
                order_type, order["id"], f"confirmation email failed: {result.get('error')}"
            )

    async def _send_confirmation(self, order_type: str, order: dict[str, Any]) -> dict[str, Any]:
        customer = await self.orders.get_customer(order["customer_id"])
        if not customer:
            return {"success": False, "error": "customer not found"}

        if order_type == "enrollment":
            return await self.email.send_enrollment_confirmation(
                to_email=customer["email"],
                parent_name=customer["name"],
                student_name=order.get("student_name", ""),
                class_name=order.get("class_name", ""),
                monthly_fee=order.get("monthly_fee", 0),
                total_amount=order.get("total_amount", 0),
            )

        workshop = await self.orders.get_workshop(order["workshop_id"])
        if not workshop:
            return {"success": False, "error": "workshop not found"}

        return await self.email.send_booking_confirmation(
            to_email=customer["email"],
            customer_name=customer["name"],
            workshop_title=workshop["title"],
            event_date=order.get("booking_date") or workshop.get("event_date"),
            event_time=order.get("booking_time") or workshop.get("event_time"),
            location=workshop.get("location"),
            participants=order.get("participants", 1),
            total_amount=order.get("total_amount", 0),
        )
