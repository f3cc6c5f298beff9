"""Database model type definitions."""

from src.models.coupon import Coupon, CouponCreate, CouponUsage, DiscountType
from src.models.customer import Customer, CustomerUpsert, Workshop
from src.models.order import Booking, Enrollment, OrderStatus, OrderType, PaymentStatus

__all__ = [
    "Booking",
    "Coupon",
    "CouponCreate",
    "CouponUsage",
    "Customer",
    "CustomerUpsert",
    "DiscountType",
    "Enrollment",
    "OrderStatus",
    "OrderType",
    "PaymentStatus",
    "Workshop",
]
