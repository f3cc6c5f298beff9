"""Coupon model type definitions for database operations."""

from datetime import datetime
from typing import Literal, TypedDict
from uuid import UUID


DiscountType = Literal["percentage", "fixed_amount"]

# Scope value used in coupons.product_ids for school enrollments
SCHOOL_PRODUCT_SCOPE = "school"


class Coupon(TypedDict):
    """Coupons table row representation.

    usage_count is only ever incremented by the record_coupon_usage
    database function.
    """

    id: UUID
    code: str
    description: str | None
    discount_type: DiscountType
    discount_value: int
    minimum_amount: int | None
    usage_limit: int | None
    user_limit: int
    usage_count: int
    valid_from: datetime
    valid_until: datetime | None
    is_active: bool
    product_ids: list[str] | None
    created_at: datetime
    updated_at: datetime


class CouponCreate(TypedDict, total=False):
    """Data required to create a new coupon."""

    code: str
    description: str | None
    discount_type: DiscountType
    discount_value: int
    minimum_amount: int | None
    usage_limit: int | None
    user_limit: int
    valid_from: str
    valid_until: str | None
    is_active: bool
    product_ids: list[str] | None


class CouponUsage(TypedDict):
    """Coupon usage table row (append-only)."""

    id: UUID
    coupon_id: UUID
    order_type: str
    order_id: UUID
    customer_id: UUID | None
    discount_amount: int
    created_at: datetime
