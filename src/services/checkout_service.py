"""Stripe Checkout session adapter and webhook signature verification."""

import json
import logging
from typing import Any
from uuid import UUID

import stripe

from src.core.config import get_settings
from src.core.stripe import get_stripe
from src.models.order import ORDER_TYPE_METADATA
from src.services.order_service import OrderService

logger = logging.getLogger(__name__)


class CheckoutService:
    """Service for opening hosted Stripe Checkout sessions for orders."""

    def __init__(self, order_service: OrderService | None = None) -> None:
        """Initialize checkout service with clients.

        Args:
            order_service: Optional order service for testing.
        """
        self.stripe = get_stripe()
        self.settings = get_settings()
        self._order_service = order_service

    @property
    def order_service(self) -> OrderService:
        """Get order service."""
        if self._order_service is None:
            self._order_service = OrderService()
        return self._order_service

    def _session_metadata(self, order_type: str, order: dict[str, Any]) -> dict[str, str]:
        """Build metadata carried by the session and its payment intent.

        The coupon id and discount are the values frozen on the order, so the
        reconciler records exactly what was charged even if the coupon has
        changed since.
        """
        metadata = {
            "order_id": str(order["id"]),
            "type": ORDER_TYPE_METADATA[order_type],
            f"{order_type}_id": str(order["id"]),
        }
        if order.get("coupon_id") and order.get("discount_amount", 0) > 0:
            metadata["coupon_id"] = str(order["coupon_id"])
            metadata["discount_amount"] = str(order["discount_amount"])
        return metadata

    async def _line_items(self, order_type: str, order: dict[str, Any]) -> list[dict[str, Any]]:
        currency = self.settings.checkout_currency

        if order_type == "booking":
            workshop = await self.order_service.get_workshop(order["workshop_id"])
            if not workshop:
                raise ValueError("Workshop not found")
            return [
                {
                    "price_data": {
                        "currency": currency,
                        "product_data": {
                            "name": workshop["title"],
                            "description": f"{workshop.get('description') or workshop['title']} ({order['participants']}名)",
                        },
                        "unit_amount": order["gross_amount"],
                    },
                    "quantity": 1,
                }
            ]

        items = [
            {
                "price_data": {
                    "currency": currency,
                    "product_data": {"name": "スクール入会金", "description": "初回のみ・システム登録料含む"},
                    "unit_amount": order["registration_fee"],
                },
                "quantity": 1,
            }
        ]
        # Free creation class: first month is free
        if order["class_type"] == "basic":
            items.append(
                {
                    "price_data": {
                        "currency": currency,
                        "product_data": {"name": f"{order['class_name']} 月謝", "description": "初月分"},
                        "unit_amount": order["monthly_fee"],
                    },
                    "quantity": 1,
                }
            )
        return items

    def _default_urls(self, order_type: str, order: dict[str, Any]) -> tuple[str, str]:
        base = self.settings.frontend_url.rstrip("/")
        if order_type == "booking":
            return (
                f"{base}/success?session_id={{CHECKOUT_SESSION_ID}}",
                f"{base}/workshops/{order['workshop_id']}",
            )
        return (
            f"{base}/school/success?session_id={{CHECKOUT_SESSION_ID}}",
            f"{base}/school/apply?class={order['class_type']}",
        )

    async def create_checkout_session(
        self,
        order_type: str,
        order_id: UUID,
        success_url: str | None = None,
        cancel_url: str | None = None,
    ) -> dict[str, Any]:
        """Open a Stripe Checkout Session for a pending order.

        Amounts, coupon and customer are read from the stored order, never
        from the client.

        Args:
            order_type: "booking" or "enrollment".
            order_id: The pending order's UUID.
            success_url: Optional redirect after payment.
            cancel_url: Optional redirect if the user abandons checkout.

        Returns:
            dict: Contains checkout_url, order_id, stripe_session_id, is_free.
                is_free orders have nothing to charge and no session.

        Raises:
            ValueError: If the order is missing or not awaiting payment, or Stripe not configured.
            stripe.StripeError: If the Stripe API call fails.
        """
        order = await self.order_service.get_order(order_type, order_id)
        if not order:
            raise ValueError("Order not found")

        if order["status"] != "pending" or order["payment_status"] != "pending":
            raise ValueError("Order is no longer awaiting payment")

        if order["total_amount"] == 0:
            return {
                "checkout_url": success_url or self._default_urls(order_type, order)[0],
                "order_id": UUID(str(order["id"])),
                "stripe_session_id": None,
                "is_free": True,
            }

        if order["total_amount"] < self.settings.stripe_minimum_charge:
            raise ValueError("Order total is below the minimum card payment")

        if not self.settings.stripe_secret_key:
            raise ValueError("Stripe is not configured. Please set STRIPE_SECRET_KEY environment variable.")

        customer = await self.order_service.get_customer(order["customer_id"])
        default_success, default_cancel = self._default_urls(order_type, order)
        metadata = self._session_metadata(order_type, order)

        checkout_params: dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": await self._line_items(order_type, order),
            "success_url": success_url or default_success,
            "cancel_url": cancel_url or default_cancel,
            "metadata": metadata,
            "payment_intent_data": {"metadata": metadata},
            "customer_creation": "always",
            "locale": "ja",
        }
        if customer:
            checkout_params["customer_email"] = customer["email"]

        try:
            if order["discount_amount"] > 0:
                discount_coupon = self.stripe.Coupon.create(
                    amount_off=order["discount_amount"],
                    currency=self.settings.checkout_currency,
                    duration="once",
                    name="クーポン割引",
                )
                checkout_params["discounts"] = [{"coupon": discount_coupon.id}]

            stripe_session = self.stripe.checkout.Session.create(**checkout_params)

        except stripe.StripeError as e:
            # Order stays pending; the client may retry checkout.
            logger.error("Stripe error creating checkout session for %s %s: %s", order_type, order_id, str(e))
            raise

        await self.order_service.record_checkout_session(order_type, order_id, stripe_session.id)
        logger.info("Opened checkout session %s for %s %s", stripe_session.id, order_type, order_id)

        return {
            "checkout_url": stripe_session.url,
            "order_id": UUID(str(order["id"])),
            "stripe_session_id": stripe_session.id,
            "is_free": False,
        }

    async def retrieve_session(self, session_id: str) -> dict[str, Any] | None:
        """Fetch a Checkout Session from Stripe.

        The success page uses this when it arrives before the webhook.

        Args:
            session_id: Stripe Checkout Session ID.

        Returns:
            dict | None: The session, or None if Stripe does not know it.

        Raises:
            ValueError: If Stripe is not configured.
            stripe.StripeError: If the Stripe API call fails for another reason.
        """
        if not self.settings.stripe_secret_key:
            raise ValueError("Stripe is not configured. Please set STRIPE_SECRET_KEY environment variable.")

        try:
            session = self.stripe.checkout.Session.retrieve(session_id)
        except stripe.InvalidRequestError as e:
            logger.warning("Checkout session %s not found: %s", session_id, str(e))
            return None

        return dict(session)

    def verify_webhook_signature(
        self, payload: bytes, sig_header: str
    ) -> dict[str, Any]:
        """Verify Stripe webhook signature and return the parsed event.

        Args:
            payload: Raw webhook payload bytes.
            sig_header: Stripe-Signature header value.

        Returns:
            dict: Verified Stripe event.

        Raises:
            ValueError: If signature is invalid, payload is malformed, or Stripe not configured.
        """
        if not self.settings.stripe_webhook_secret:
            raise ValueError("Stripe webhook secret is not configured. Please set STRIPE_WEBHOOK_SECRET environment variable.")

        try:
            text = payload.decode("utf-8")
            self.stripe.WebhookSignature.verify_header(
                text,
                sig_header,
                self.settings.stripe_webhook_secret,
                self.settings.stripe_webhook_tolerance,
            )
        except stripe.SignatureVerificationError as e:
            logger.warning("Invalid webhook signature: %s", str(e))
            raise ValueError("Invalid webhook signature") from e
        except UnicodeDecodeError as e:
            raise ValueError("Webhook payload is not valid UTF-8") from e

        try:
            event = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValueError("Webhook payload is not valid JSON") from e

        if not isinstance(event, dict):
            raise ValueError("Webhook payload is not an event object")
        return event
