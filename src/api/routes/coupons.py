"""Coupon preview API routes."""

from fastapi import APIRouter

from src.api.deps import Coupons
from src.schemas.coupon import CouponSummary, CouponValidateRequest, CouponValidateResponse

router = APIRouter(prefix="/coupons", tags=["coupons"])


@router.post(
    "/validate",
    response_model=CouponValidateResponse,
    summary="Preview a coupon",
    description="Computes the discount a coupon would give. Never consumes the coupon.",
)
async def validate_coupon(data: CouponValidateRequest, coupons: Coupons) -> CouponValidateResponse:
    """Preview a coupon for an order amount.

    Rejections are returned with 200 and valid=false so the client can show
    the specific reason.
    """
    result = await coupons.validate_coupon(
        code=data.code,
        amount=data.amount,
        product_id=data.product_id,
        customer_id=data.customer_id,
    )

    if not result.valid:
        return CouponValidateResponse(
            valid=False,
            error_kind=result.kind.value,
            message=result.message,
        )

    return CouponValidateResponse(
        valid=True,
        discount_amount=result.discount_amount,
        final_amount=result.final_amount,
        coupon=CouponSummary.model_validate(dict(result.coupon)),
    )
