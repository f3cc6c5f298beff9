"""Order aggregate service for workshop bookings and school enrollments."""

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from supabase import Client

from src.core.config import get_settings
from src.core.supabase import get_supabase_client
from src.models.coupon import SCHOOL_PRODUCT_SCOPE
from src.models.order import ORDER_TABLES, PaymentConfirmation
from src.services.coupon_service import CouponLedger
from src.services.discount_service import CouponRejection

logger = logging.getLogger(__name__)

# Display names for the school classes
SCHOOL_CLASS_NAMES: dict[str, str] = {
    "free": "自由創作クラス（教室開放）",
    "basic": "基本実践クラス（授業＋作品作り）",
}


class CouponNotApplicableError(ValueError):
    """Raised when an order is created with a coupon that does not apply."""

    def __init__(self, rejection: CouponRejection) -> None:
        self.rejection = rejection
        super().__init__(rejection.message)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def table_for(order_type: str) -> str:
    """Map an order type to its table name.

    Raises:
        ValueError: If the order type is unknown.
    """
    try:
        return ORDER_TABLES[order_type]
    except KeyError:
        raise ValueError(f"Unknown order type: {order_type}") from None


class OrderService:
    """Service for creating orders and applying payment state transitions.

    Payment transitions are single conditional updates: the row only changes
    if its payment_status is still "pending", and the caller learns whether it
    won the transition from the returned rows. This is the idempotency guard
    for duplicate or concurrent webhook deliveries.
    """

    def __init__(
        self,
        client: Client | None = None,
        coupon_ledger: CouponLedger | None = None,
    ) -> None:
        """Initialize order service.

        Args:
            client: Optional Supabase client (defaults to the process singleton).
            coupon_ledger: Optional coupon ledger for testing.
        """
        self.client = client or get_supabase_client()
        self.settings = get_settings()
        self.coupon_ledger = coupon_ledger or CouponLedger(self.client)

    async def upsert_customer(
        self,
        email: str,
        name: str,
        phone: str | None = None,
    ) -> dict[str, Any]:
        """Create or update a customer keyed by email.

        Args:
            email: Customer email (unique, lower-cased).
            name: Customer name.
            phone: Optional phone number.

        Returns:
            dict: The customer row.
        """
        data: dict[str, Any] = {"email": email.strip().lower(), "name": name}
        if phone:
            data["phone"] = phone

        response = self.client.table("customers").upsert(data, on_conflict="email").execute()
        return response.data[0]

    async def get_customer(self, customer_id: UUID | str) -> dict[str, Any] | None:
        """Get a customer by ID."""
        response = (
            self.client.table("customers")
            .select("*")
            .eq("id", str(customer_id))
            .maybe_single()
            .execute()
        )

        return response.data if response and response.data else None

    async def set_provider_customer_id(
        self, customer_id: UUID | str, stripe_customer_id: str
    ) -> bool:
        """Attach the Stripe customer id to a customer that has none yet.

        Returns:
            bool: True if the customer was updated.
        """
        response = (
            self.client.table("customers")
            .update({"stripe_customer_id": stripe_customer_id, "updated_at": _now()})
            .eq("id", str(customer_id))
            .is_("stripe_customer_id", "null")
            .execute()
        )

        return bool(response.data)

    async def get_workshop(self, workshop_id: UUID | str) -> dict[str, Any] | None:
        """Get a workshop by ID."""
        response = (
            self.client.table("workshops")
            .select("*")
            .eq("id", str(workshop_id))
            .maybe_single()
            .execute()
        )

        return response.data if response and response.data else None

    async def get_availability(self, workshop_id: UUID | str) -> dict[str, Any] | None:
        """Compute remaining capacity for a workshop.

        Cancelled bookings and failed payments do not hold seats; pending
        bookings do until their checkout session expires.

        Args:
            workshop_id: The workshop's UUID.

        Returns:
            dict | None: Capacity figures, or None if the workshop does not exist.
        """
        workshop = await self.get_workshop(workshop_id)
        if not workshop:
            return None

        response = (
            self.client.table("bookings")
            .select("participants")
            .eq("workshop_id", str(workshop_id))
            .neq("status", "cancelled")
            .in_("payment_status", ["pending", "paid"])
            .execute()
        )

        booked = sum(row.get("participants", 0) for row in response.data or [])
        manual = workshop.get("manual_participants") or 0
        total = booked + manual
        available = workshop["max_participants"] - total

        return {
            "max_participants": workshop["max_participants"],
            "booked_participants": booked,
            "manual_participants": manual,
            "total_participants": total,
            "available_spots": max(0, available),
            "is_full": available <= 0,
        }

    async def _apply_coupon(
        self,
        coupon_code: str | None,
        amount: int,
        product_id: str,
        customer_id: str,
    ) -> tuple[str | None, int]:
        if not coupon_code:
            return None, 0

        result = await self.coupon_ledger.validate_coupon(
            coupon_code, amount, product_id=product_id, customer_id=customer_id
        )
        if not result.valid:
            raise CouponNotApplicableError(result)

        # A total of 0 is confirmed without payment; 1..minimum-1 cannot be charged at all.
        minimum = self.settings.stripe_minimum_charge
        if 0 < result.final_amount < minimum:
            raise ValueError(
                f"Discounted total of {result.final_amount} is below the minimum card payment of {minimum}"
            )

        return str(result.coupon["id"]), result.discount_amount

    async def create_booking(
        self,
        workshop_id: UUID,
        customer_email: str,
        customer_name: str,
        participants: int,
        customer_phone: str | None = None,
        booking_date: str | None = None,
        booking_time: str | None = None,
        notes: str | None = None,
        coupon_code: str | None = None,
    ) -> dict[str, Any]:
        """Create a pending workshop booking.

        The monetary snapshot (gross, discount, net) and the coupon reference
        are computed here once and never recomputed afterwards.

        Args:
            workshop_id: Workshop being booked.
            customer_email: Customer email for the upsert.
            customer_name: Customer name.
            participants: Number of seats.
            customer_phone: Optional phone number.
            booking_date: Optional chosen date.
            booking_time: Optional chosen time.
            notes: Optional customer note.
            coupon_code: Optional coupon code.

        Returns:
            dict: The created booking row.

        Raises:
            ValueError: If the workshop is missing or has no capacity left.
            CouponNotApplicableError: If the coupon does not apply.
        """
        availability = await self.get_availability(workshop_id)
        if availability is None:
            raise ValueError("Workshop not found")
        if participants > availability["available_spots"]:
            raise ValueError("Not enough seats available for this workshop")

        workshop = await self.get_workshop(workshop_id)
        gross_amount = int(workshop["price"]) * participants
        customer = await self.upsert_customer(customer_email, customer_name, customer_phone)

        coupon_id, discount_amount = await self._apply_coupon(
            coupon_code, gross_amount, str(workshop_id), customer["id"]
        )

        row = {
            "workshop_id": str(workshop_id),
            "customer_id": customer["id"],
            "booking_date": booking_date,
            "booking_time": booking_time,
            "participants": participants,
            "gross_amount": gross_amount,
            "discount_amount": discount_amount,
            "total_amount": gross_amount - discount_amount,
            "coupon_id": coupon_id,
            "notes": notes,
            "system_notes": [],
            "status": "pending",
            "payment_status": "pending",
        }

        response = self.client.table("bookings").insert(row).execute()
        booking = response.data[0]
        logger.info(
            "Created booking %s for workshop %s (total=%d, discount=%d)",
            booking["id"],
            workshop_id,
            booking["total_amount"],
            discount_amount,
        )
        return booking

    def school_class_pricing(self, class_type: str) -> dict[str, Any]:
        """Resolve fees for a school class.

        The free creation class charges the registration fee only (first
        month free); the basic class charges registration plus first month.

        Raises:
            ValueError: If the class type is unknown.
        """
        if class_type not in SCHOOL_CLASS_NAMES:
            raise ValueError(f"Unknown class type: {class_type}")

        monthly_fee = (
            self.settings.school_basic_monthly_fee
            if class_type == "basic"
            else self.settings.school_free_monthly_fee
        )
        registration_fee = self.settings.school_registration_fee
        gross_amount = registration_fee + (monthly_fee if class_type == "basic" else 0)

        return {
            "class_name": SCHOOL_CLASS_NAMES[class_type],
            "monthly_fee": monthly_fee,
            "registration_fee": registration_fee,
            "gross_amount": gross_amount,
        }

    async def create_enrollment(
        self,
        class_type: str,
        customer_email: str,
        parent_name: str,
        student_name: str,
        student_age: int | None = None,
        student_grade: str | None = None,
        customer_phone: str | None = None,
        notes: str | None = None,
        coupon_code: str | None = None,
    ) -> dict[str, Any]:
        """Create a pending school enrollment.

        Returns:
            dict: The created enrollment row.

        Raises:
            ValueError: If the class type is unknown.
            CouponNotApplicableError: If the coupon does not apply.
        """
        pricing = self.school_class_pricing(class_type)
        customer = await self.upsert_customer(customer_email, parent_name, customer_phone)

        coupon_id, discount_amount = await self._apply_coupon(
            coupon_code, pricing["gross_amount"], SCHOOL_PRODUCT_SCOPE, customer["id"]
        )

        row = {
            "class_type": class_type,
            "class_name": pricing["class_name"],
            "customer_id": customer["id"],
            "student_name": student_name,
            "student_age": student_age,
            "student_grade": student_grade,
            "monthly_fee": pricing["monthly_fee"],
            "registration_fee": pricing["registration_fee"],
            "gross_amount": pricing["gross_amount"],
            "discount_amount": discount_amount,
            "total_amount": pricing["gross_amount"] - discount_amount,
            "coupon_id": coupon_id,
            "notes": notes,
            "system_notes": [],
            "status": "pending",
            "payment_status": "pending",
        }

        response = self.client.table("school_enrollments").insert(row).execute()
        enrollment = response.data[0]
        logger.info(
            "Created enrollment %s for class %s (total=%d, discount=%d)",
            enrollment["id"],
            class_type,
            enrollment["total_amount"],
            discount_amount,
        )
        return enrollment

    async def get_order(self, order_type: str, order_id: UUID | str) -> dict[str, Any] | None:
        """Get a booking or enrollment by ID.

        Args:
            order_type: "booking" or "enrollment".
            order_id: The order's UUID.

        Returns:
            dict | None: The order row or None if not found.
        """
        response = (
            self.client.table(table_for(order_type))
            .select("*")
            .eq("id", str(order_id))
            .maybe_single()
            .execute()
        )

        return response.data if response and response.data else None

    async def record_checkout_session(
        self, order_type: str, order_id: UUID | str, stripe_session_id: str
    ) -> None:
        """Remember the hosted checkout session opened for a pending order."""
        (
            self.client.table(table_for(order_type))
            .update({"stripe_session_id": stripe_session_id, "updated_at": _now()})
            .eq("id", str(order_id))
            .eq("payment_status", "pending")
            .execute()
        )

    async def confirm_payment(
        self,
        order_type: str,
        order_id: UUID | str,
        correlation: PaymentConfirmation,
    ) -> dict[str, Any] | None:
        """Transition a pending order to confirmed/paid.

        Only matches rows whose payment is still pending and that were not
        cancelled, so a duplicate or late event never re-confirms an order and
        never overrides an administrative status change.

        Args:
            order_type: "booking" or "enrollment".
            order_id: The order's UUID.
            correlation: Provider ids to stamp on the order.

        Returns:
            dict | None: The updated row if this call won the transition.
        """
        update: dict[str, Any] = {
            "status": "confirmed",
            "payment_status": "paid",
            "updated_at": _now(),
        }
        update.update({k: v for k, v in correlation.items() if v})
        if order_type != "enrollment":
            update.pop("stripe_subscription_id", None)

        response = (
            self.client.table(table_for(order_type))
            .update(update)
            .eq("id", str(order_id))
            .eq("payment_status", "pending")
            .neq("status", "cancelled")
            .execute()
        )

        return response.data[0] if response.data else None

    async def cancel_unpaid(self, order_type: str, order_id: UUID | str) -> dict[str, Any] | None:
        """Transition a pending order to cancelled/failed.

        Returns:
            dict | None: The updated row if this call won the transition.
        """
        response = (
            self.client.table(table_for(order_type))
            .update({"status": "cancelled", "payment_status": "failed", "updated_at": _now()})
            .eq("id", str(order_id))
            .eq("status", "pending")
            .eq("payment_status", "pending")
            .execute()
        )

        return response.data[0] if response.data else None

    async def set_status(
        self,
        order_type: str,
        order_id: UUID | str,
        status: str,
        payment_status: str | None = None,
    ) -> dict[str, Any] | None:
        """Administrative status override, outside the payment state machine.

        Returns:
            dict | None: The updated row, or None if not found.
        """
        update: dict[str, Any] = {"status": status, "updated_at": _now()}
        if payment_status:
            update["payment_status"] = payment_status

        response = (
            self.client.table(table_for(order_type))
            .update(update)
            .eq("id", str(order_id))
            .execute()
        )

        if response.data:
            logger.info("Admin set %s %s status to %s", order_type, order_id, status)
            return response.data[0]
        return None

    async def append_system_note(self, order_type: str, order_id: UUID | str, note: str) -> None:
        """Append an operator-facing note to an order.

        Called only by the caller that won a transition, so the
        read-then-write here has a single writer per order.
        """
        order = await self.get_order(order_type, order_id)
        if not order:
            logger.warning("Cannot add note to missing %s %s", order_type, order_id)
            return

        notes = list(order.get("system_notes") or [])
        notes.append(f"{_now()} {note}")
        (
            self.client.table(table_for(order_type))
            .update({"system_notes": notes, "updated_at": _now()})
            .eq("id", str(order_id))
            .execute()
        )
