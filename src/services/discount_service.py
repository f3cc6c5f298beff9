"""Coupon discount evaluation.

Pure functions only: nothing here reads from or writes to the database.
Previewing a discount never consumes the coupon; usage is recorded by the
payment reconciler once a payment is confirmed.
"""

from dataclasses import dataclass
from datetime import datetime, time, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Mapping


class CouponErrorKind(str, Enum):
    """Reasons a coupon cannot be applied to an order."""

    COUPON_NOT_FOUND = "CouponNotFound"
    COUPON_EXPIRED = "CouponExpired"
    COUPON_INACTIVE = "CouponInactive"
    BELOW_MINIMUM_AMOUNT = "BelowMinimumAmount"
    USAGE_LIMIT_EXCEEDED = "UsageLimitExceeded"
    USER_LIMIT_EXCEEDED = "UserLimitExceeded"
    PRODUCT_NOT_ELIGIBLE = "ProductNotEligible"


ERROR_MESSAGES: dict[CouponErrorKind, str] = {
    CouponErrorKind.COUPON_NOT_FOUND: "無効なクーポンコードです",
    CouponErrorKind.COUPON_EXPIRED: "このクーポンは有効期間外です",
    CouponErrorKind.COUPON_INACTIVE: "このクーポンは現在ご利用いただけません",
    CouponErrorKind.BELOW_MINIMUM_AMOUNT: "このクーポンは¥{minimum_amount:,}以上のご利用で使用可能です",
    CouponErrorKind.USAGE_LIMIT_EXCEEDED: "このクーポンは使用上限に達しました",
    CouponErrorKind.USER_LIMIT_EXCEEDED: "このクーポンの使用回数上限に達しています",
    CouponErrorKind.PRODUCT_NOT_ELIGIBLE: "このクーポンは対象外の商品です",
}


@dataclass(frozen=True)
class DiscountResult:
    """A coupon that applies, with the computed amounts."""

    coupon: Mapping[str, Any]
    order_amount: int
    discount_amount: int
    final_amount: int

    valid = True


@dataclass(frozen=True)
class CouponRejection:
    """A coupon that does not apply, with the reason."""

    kind: CouponErrorKind
    message: str

    valid = False


def rejection(kind: CouponErrorKind, **context: Any) -> CouponRejection:
    """Build a rejection with its user-facing message."""
    return CouponRejection(kind=kind, message=ERROR_MESSAGES[kind].format(**context))


def parse_timestamp(value: Any, *, end_of_day: bool = False) -> datetime | None:
    """Parse a database timestamp into an aware UTC datetime.

    Date-only values (``2025-08-31``) are read as the start of that day, or as
    the last instant of that day when ``end_of_day`` is set, so a coupon valid
    "until the 31st" can still be used on the 31st.

    Args:
        value: ISO-8601 string, date string, datetime, or None.
        end_of_day: Expand date-only values to 23:59:59.999999.

    Returns:
        datetime | None: Aware datetime, or None when value is empty.
    """
    if value in (None, ""):
        return None

    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value)
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        if len(text) == 10 and end_of_day:
            parsed = datetime.combine(parsed.date(), time.max)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def compute_discount(order_amount: int, discount_type: str, discount_value: int) -> int:
    """Compute the discount for an amount.

    Percentage discounts round half up to the nearest yen; both kinds are
    capped at the order amount so the payable amount never goes negative.

    Args:
        order_amount: Gross amount in the smallest currency unit.
        discount_type: "percentage" or "fixed_amount".
        discount_value: Percent (0-100) or fixed amount.

    Returns:
        int: Discount amount.
    """
    if discount_type == "percentage":
        raw = (Decimal(order_amount) * Decimal(discount_value) / Decimal(100)).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
        discount = int(raw)
    elif discount_type == "fixed_amount":
        discount = discount_value
    else:
        raise ValueError(f"Unknown discount type: {discount_type}")

    return max(0, min(discount, order_amount))


def is_product_eligible(coupon: Mapping[str, Any], product_id: str | None) -> bool:
    """Check the coupon's optional product scope.

    An empty or missing ``product_ids`` list means the coupon applies to
    every product. School enrollments use the ``school`` scope value.
    """
    scope = coupon.get("product_ids") or []
    if not scope:
        return True
    return product_id is not None and str(product_id) in {str(p) for p in scope}


def evaluate_coupon(
    order_amount: int,
    coupon: Mapping[str, Any] | None,
    *,
    product_id: str | None = None,
    customer_usage_count: int = 0,
    now: datetime | None = None,
) -> DiscountResult | CouponRejection:
    """Evaluate a coupon against an order amount.

    Args:
        order_amount: Gross order amount, must be positive.
        coupon: Coupon row, or None when the code did not resolve.
        product_id: Workshop id, or "school" for enrollments.
        customer_usage_count: Prior confirmed uses of this coupon by the customer.
        now: Evaluation time (defaults to current UTC time).

    Returns:
        DiscountResult | CouponRejection: The computed discount or the rejection reason.

    Raises:
        ValueError: If order_amount is not positive.
    """
    if order_amount <= 0:
        raise ValueError("order_amount must be positive")

    if coupon is None:
        return rejection(CouponErrorKind.COUPON_NOT_FOUND)

    if not coupon.get("is_active", False):
        return rejection(CouponErrorKind.COUPON_INACTIVE)

    now = now or datetime.now(timezone.utc)
    valid_from = parse_timestamp(coupon.get("valid_from"))
    valid_until = parse_timestamp(coupon.get("valid_until"), end_of_day=True)
    if (valid_from and now < valid_from) or (valid_until and now > valid_until):
        return rejection(CouponErrorKind.COUPON_EXPIRED)

    minimum_amount = coupon.get("minimum_amount")
    if minimum_amount and order_amount < minimum_amount:
        return rejection(CouponErrorKind.BELOW_MINIMUM_AMOUNT, minimum_amount=minimum_amount)

    if not is_product_eligible(coupon, product_id):
        return rejection(CouponErrorKind.PRODUCT_NOT_ELIGIBLE)

    usage_limit = coupon.get("usage_limit")
    if usage_limit is not None and coupon.get("usage_count", 0) >= usage_limit:
        return rejection(CouponErrorKind.USAGE_LIMIT_EXCEEDED)

    user_limit = coupon.get("user_limit")
    if user_limit is not None and customer_usage_count >= user_limit:
        return rejection(CouponErrorKind.USER_LIMIT_EXCEEDED)

    discount = compute_discount(order_amount, coupon["discount_type"], coupon["discount_value"])
    return DiscountResult(
        coupon=coupon,
        order_amount=order_amount,
        discount_amount=discount,
        final_amount=order_amount - discount,
    )

