"""Order model type definitions for database operations.

An order is either a workshop booking (``bookings`` table) or a school
enrollment (``school_enrollments`` table). Both share the same payment
lifecycle columns.
"""

from datetime import datetime
from typing import Literal, TypedDict
from uuid import UUID


# Order status enum values matching database enums
OrderStatus = Literal["pending", "confirmed", "cancelled"]
PaymentStatus = Literal["pending", "paid", "failed", "refunded"]
OrderType = Literal["booking", "enrollment"]
SchoolClassType = Literal["free", "basic"]

ORDER_TABLES: dict[str, str] = {
    "booking": "bookings",
    "enrollment": "school_enrollments",
}

# Subject discriminator written to checkout metadata under "type"
ORDER_TYPE_METADATA: dict[str, str] = {
    "booking": "workshop_booking",
    "enrollment": "school_enrollment",
}


class Booking(TypedDict):
    """Bookings table row representation."""

    id: UUID
    workshop_id: UUID
    customer_id: UUID
    booking_date: str | None
    booking_time: str | None
    participants: int
    gross_amount: int
    discount_amount: int
    total_amount: int
    coupon_id: UUID | None
    status: OrderStatus
    payment_status: PaymentStatus
    stripe_session_id: str | None
    stripe_payment_intent_id: str | None
    notes: str | None
    system_notes: list[str]
    created_at: datetime
    updated_at: datetime


class Enrollment(TypedDict):
    """School enrollments table row representation."""

    id: UUID
    class_type: SchoolClassType
    class_name: str
    customer_id: UUID
    student_name: str
    student_age: int | None
    student_grade: str | None
    monthly_fee: int
    registration_fee: int
    gross_amount: int
    discount_amount: int
    total_amount: int
    coupon_id: UUID | None
    status: OrderStatus
    payment_status: PaymentStatus
    stripe_session_id: str | None
    stripe_payment_intent_id: str | None
    stripe_subscription_id: str | None
    notes: str | None
    system_notes: list[str]
    created_at: datetime
    updated_at: datetime


class PaymentConfirmation(TypedDict, total=False):
    """Provider correlation ids stamped by the reconciler on confirmation."""

    stripe_session_id: str | None
    stripe_payment_intent_id: str | None
    stripe_subscription_id: str | None
