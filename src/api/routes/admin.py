"""Admin API routes for coupons and order status overrides."""

from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from src.api.deps import AdminAuth, Coupons, Orders
from src.api.middleware.error_handler import ConflictError, NotFoundError
from src.schemas.checkout import OrderResponse, OrderStatusUpdate, OrderTypeParam
from src.schemas.coupon import CouponCreateRequest, CouponResponse, CouponUsageResponse

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post(
    "/coupons",
    response_model=CouponResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create coupon",
)
async def create_coupon(data: CouponCreateRequest, coupons: Coupons, _: AdminAuth) -> CouponResponse:
    """Create a coupon definition.

    Raises:
        ConflictError: If the code already exists.
    """
    try:
        coupon = await coupons.create_coupon(data.model_dump(mode="json"))
    except ValueError as e:
        raise ConflictError(str(e)) from e
    return CouponResponse.model_validate(coupon)


@router.post(
    "/coupons/{coupon_id}/deactivate",
    response_model=CouponResponse,
    summary="Deactivate coupon",
    description="Stops a coupon from being applied. Usage history is kept.",
)
async def deactivate_coupon(coupon_id: UUID, coupons: Coupons, _: AdminAuth) -> CouponResponse:
    """Deactivate a coupon."""
    coupon = await coupons.deactivate_coupon(coupon_id)
    if not coupon:
        raise NotFoundError("Coupon not found")
    return CouponResponse.model_validate(coupon)


@router.get(
    "/coupons/{coupon_id}/usage",
    response_model=list[CouponUsageResponse],
    summary="List coupon usage",
)
async def list_coupon_usage(coupon_id: UUID, coupons: Coupons, _: AdminAuth) -> list[CouponUsageResponse]:
    """List usage records of a coupon for audit."""
    if not await coupons.get_coupon(coupon_id):
        raise NotFoundError("Coupon not found")
    return [CouponUsageResponse.model_validate(u) for u in await coupons.list_usage(coupon_id)]


@router.patch(
    "/orders/{order_type}/{order_id}/status",
    response_model=OrderResponse,
    summary="Override order status",
    description="Administrative status change outside the payment flow.",
)
async def set_order_status(
    order_type: OrderTypeParam,
    order_id: UUID,
    data: OrderStatusUpdate,
    orders: Orders,
    _: AdminAuth,
) -> OrderResponse:
    """Override an order's status.

    Raises:
        HTTPException: 400 for an unknown order type.
        NotFoundError: If the order does not exist.
    """
    try:
        order = await orders.set_status(order_type, order_id, data.status, data.payment_status)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    if not order:
        raise NotFoundError("Order not found")
    return OrderResponse(**order)
