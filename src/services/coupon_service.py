"""Coupon ledger: coupon lookup, discount preview, and usage recording."""

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from supabase import Client, PostgrestAPIError

from src.core.supabase import get_supabase_client
from src.services.discount_service import CouponRejection, DiscountResult, evaluate_coupon

logger = logging.getLogger(__name__)

# Postgres SQLSTATE for a unique constraint violation
UNIQUE_VIOLATION = "23505"


def normalize_code(code: str) -> str:
    """Coupon codes are stored and matched upper-cased."""
    return code.strip().upper()


class CouponLedger:
    """Service for coupon definitions and usage accounting.

    Previewing a coupon (validate_coupon) is read-only. Usage is recorded
    only through record_usage, which the payment reconciler calls after it
    has won the confirmation transition for an order.
    """

    def __init__(self, client: Client | None = None) -> None:
        """Initialize coupon ledger.

        Args:
            client: Optional Supabase client (defaults to the process singleton).
        """
        self.client = client or get_supabase_client()

    async def get_coupon_by_code(self, code: str) -> dict[str, Any] | None:
        """Get a coupon by its code.

        Args:
            code: Coupon code in any case.

        Returns:
            dict | None: The coupon row or None if not found.
        """
        response = (
            self.client.table("coupons")
            .select("*")
            .eq("code", normalize_code(code))
            .maybe_single()
            .execute()
        )

        return response.data if response and response.data else None

    async def get_coupon(self, coupon_id: UUID | str) -> dict[str, Any] | None:
        """Get a coupon by ID."""
        response = (
            self.client.table("coupons")
            .select("*")
            .eq("id", str(coupon_id))
            .maybe_single()
            .execute()
        )

        return response.data if response and response.data else None

    async def count_usage_by_customer(self, coupon_id: UUID | str, customer_id: UUID | str) -> int:
        """Count recorded uses of a coupon by one customer.

        Args:
            coupon_id: The coupon's UUID.
            customer_id: The customer's UUID.

        Returns:
            int: Number of usage records for this pair.
        """
        response = (
            self.client.table("coupon_usage")
            .select("id", count="exact")
            .eq("coupon_id", str(coupon_id))
            .eq("customer_id", str(customer_id))
            .execute()
        )

        if response.count is not None:
            return response.count
        return len(response.data or [])

    async def validate_coupon(
        self,
        code: str,
        amount: int,
        product_id: str | None = None,
        customer_id: UUID | str | None = None,
        now: datetime | None = None,
    ) -> DiscountResult | CouponRejection:
        """Preview a coupon against an order amount.

        Never mutates the coupon or its usage records.

        Args:
            code: Coupon code entered by the customer.
            amount: Gross order amount.
            product_id: Workshop id, or "school" for enrollments.
            customer_id: Optional customer for the per-customer limit check.
            now: Evaluation time override.

        Returns:
            DiscountResult | CouponRejection: Preview result.
        """
        coupon = await self.get_coupon_by_code(code)

        usage_count = 0
        if coupon and customer_id and coupon.get("user_limit") is not None:
            usage_count = await self.count_usage_by_customer(coupon["id"], customer_id)

        result = evaluate_coupon(
            amount,
            coupon,
            product_id=product_id,
            customer_usage_count=usage_count,
            now=now,
        )

        if not result.valid:
            logger.info("Coupon %s rejected: %s", normalize_code(code), result.kind.value)
        return result

    async def record_usage(
        self,
        coupon_id: UUID | str,
        order_type: str,
        order_id: UUID | str,
        customer_id: UUID | str | None,
        discount_amount: int,
    ) -> int | None:
        """Append a usage record and increment the coupon's usage counter.

        Both writes happen inside the record_coupon_usage database function, so
        the counter is incremented atomically (usage_count = usage_count + 1)
        and never read back into application memory first.

        Args:
            coupon_id: The coupon's UUID.
            order_type: "booking" or "enrollment".
            order_id: The confirmed order's UUID.
            customer_id: The ordering customer's UUID.
            discount_amount: Discount granted on the order.

        Returns:
            int | None: The coupon's usage_count after the increment.
        """
        response = self.client.rpc(
            "record_coupon_usage",
            {
                "p_coupon_id": str(coupon_id),
                "p_order_type": order_type,
                "p_order_id": str(order_id),
                "p_customer_id": str(customer_id) if customer_id else None,
                "p_discount_amount": discount_amount,
            },
        ).execute()

        usage_count = response.data
        if isinstance(usage_count, list):
            usage_count = usage_count[0] if usage_count else None

        logger.info(
            "Recorded coupon %s usage for %s %s (usage_count=%s)",
            coupon_id,
            order_type,
            order_id,
            usage_count,
        )
        return usage_count

    async def list_usage(self, coupon_id: UUID | str) -> list[dict[str, Any]]:
        """List usage records for a coupon, newest first."""
        response = (
            self.client.table("coupon_usage")
            .select("*")
            .eq("coupon_id", str(coupon_id))
            .order("created_at", desc=True)
            .execute()
        )

        return response.data or []

    async def create_coupon(self, data: dict[str, Any]) -> dict[str, Any]:
        """Create a coupon definition.

        Args:
            data: Coupon fields (code is normalized before insert).

        Returns:
            dict: The created coupon row.

        Raises:
            ValueError: If the code is already taken.
        """
        code = normalize_code(data["code"])
        if await self.get_coupon_by_code(code):
            raise ValueError(f"Coupon code {code} already exists")

        row = {**data, "code": code, "usage_count": 0}
        try:
            response = self.client.table("coupons").insert(row).execute()
        except PostgrestAPIError as e:
            # Lost a race with a concurrent create of the same code
            if e.code == UNIQUE_VIOLATION:
                raise ValueError(f"Coupon code {code} already exists") from e
            raise
        logger.info("Created coupon %s", code)
        return response.data[0]

    async def deactivate_coupon(self, coupon_id: UUID | str) -> dict[str, Any] | None:
        """Deactivate a coupon. Coupons are never deleted so usage stays auditable.

        Args:
            coupon_id: The coupon's UUID.

        Returns:
            dict | None: Updated coupon row, or None if not found.
        """
        response = (
            self.client.table("coupons")
            .update({"is_active": False, "updated_at": datetime.now(timezone.utc).isoformat()})
            .eq("id", str(coupon_id))
            .execute()
        )

        if response.data:
            logger.info("Deactivated coupon %s", coupon_id)
            return response.data[0]
        return None
