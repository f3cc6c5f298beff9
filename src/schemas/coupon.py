"""Coupon Pydantic schemas for API request/response models."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


class CouponValidateRequest(BaseModel):
    """Schema for previewing a coupon via POST /coupons/validate."""

    code: str = Field(min_length=1, max_length=64, description="Coupon code")
    amount: int = Field(gt=0, description="Gross order amount")
    product_id: str | None = Field(default=None, description="Workshop id, or 'school' for enrollments")
    customer_id: UUID | None = Field(default=None, description="Customer for the per-customer limit")


class CouponSummary(BaseModel):
    """Public subset of a coupon."""

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: UUID
    code: str
    description: str | None = None
    discount_type: Literal["percentage", "fixed_amount"]
    discount_value: int


class CouponValidateResponse(BaseModel):
    """Coupon preview result; error_kind is set when valid is false."""

    valid: bool
    discount_amount: int | None = None
    final_amount: int | None = None
    coupon: CouponSummary | None = None
    error_kind: str | None = None
    message: str | None = None


class CouponCreateRequest(BaseModel):
    """Schema for creating a coupon via POST /admin/coupons."""

    code: str = Field(min_length=1, max_length=64)
    description: str | None = None
    discount_type: Literal["percentage", "fixed_amount"]
    discount_value: int = Field(gt=0)
    minimum_amount: int | None = Field(default=None, ge=0)
    usage_limit: int | None = Field(default=None, ge=1)
    user_limit: int = Field(default=1, ge=1)
    valid_from: datetime
    valid_until: datetime | None = None
    is_active: bool = True
    product_ids: list[str] | None = None

    @model_validator(mode="after")
    def check_value_and_window(self) -> "CouponCreateRequest":
        """Percentages are capped at 100 and the window must not be inverted."""
        if self.discount_type == "percentage" and self.discount_value > 100:
            raise ValueError("percentage discount cannot exceed 100")
        if self.valid_until and self.valid_until < self.valid_from:
            raise ValueError("valid_until must be after valid_from")
        return self


class CouponResponse(CouponSummary):
    """Full coupon as seen by admins."""

    minimum_amount: int | None = None
    usage_limit: int | None = None
    user_limit: int | None = None
    usage_count: int = 0
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    is_active: bool
    product_ids: list[str] | None = None


class CouponUsageResponse(BaseModel):
    """One coupon usage record."""

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: UUID
    coupon_id: UUID
    order_type: str
    order_id: UUID
    customer_id: UUID | None = None
    discount_amount: int
    created_at: datetime | None = None
