"""Order and checkout Pydantic schemas for API request/response models."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, HttpUrl


OrderTypeParam = Literal["booking", "enrollment"]
OrderStatus = Literal["pending", "confirmed", "cancelled"]
PaymentStatus = Literal["pending", "paid", "failed", "refunded"]


class BookingCreate(BaseModel):
    """Schema for creating a workshop booking via POST /bookings."""

    workshop_id: UUID = Field(description="Workshop to book")
    customer_email: EmailStr = Field(description="Customer email (used to upsert the customer)")
    customer_name: str = Field(min_length=1, max_length=200, description="Customer name")
    customer_phone: str | None = Field(default=None, max_length=50, description="Customer phone")
    participants: int = Field(ge=1, le=50, description="Number of participants")
    booking_date: str | None = Field(default=None, description="Chosen date (YYYY-MM-DD)")
    booking_time: str | None = Field(default=None, description="Chosen time (HH:MM)")
    notes: str | None = Field(default=None, max_length=2000, description="Customer note")
    coupon_code: str | None = Field(default=None, max_length=64, description="Coupon code to apply")


class EnrollmentCreate(BaseModel):
    """Schema for creating a school enrollment via POST /enrollments."""

    class_type: Literal["free", "basic"] = Field(description="School class")
    customer_email: EmailStr = Field(description="Parent email (used to upsert the customer)")
    parent_name: str = Field(min_length=1, max_length=200, description="Parent or guardian name")
    customer_phone: str | None = Field(default=None, max_length=50, description="Contact phone")
    student_name: str = Field(min_length=1, max_length=200, description="Student name")
    student_age: int | None = Field(default=None, ge=3, le=120, description="Student age")
    student_grade: str | None = Field(default=None, max_length=50, description="Student school grade")
    notes: str | None = Field(default=None, max_length=2000, description="Applicant note")
    coupon_code: str | None = Field(default=None, max_length=64, description="Coupon code to apply")


class OrderResponse(BaseModel):
    """Schema for booking and enrollment API responses."""

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: UUID = Field(description="Order unique identifier")
    customer_id: UUID = Field(description="Ordering customer")
    workshop_id: UUID | None = Field(default=None, description="Booked workshop (bookings)")
    participants: int | None = Field(default=None, description="Participants (bookings)")
    class_type: str | None = Field(default=None, description="School class (enrollments)")
    gross_amount: int = Field(description="Amount before discount")
    discount_amount: int = Field(default=0, description="Coupon discount")
    total_amount: int = Field(description="Payable amount")
    coupon_id: UUID | None = Field(default=None, description="Applied coupon")
    status: OrderStatus = Field(description="Order status")
    payment_status: PaymentStatus = Field(description="Payment status")
    created_at: datetime | None = Field(default=None, description="Creation timestamp")
    updated_at: datetime | None = Field(default=None, description="Last transition timestamp")


class AvailabilityResponse(BaseModel):
    """Remaining capacity of a workshop."""

    max_participants: int
    booked_participants: int
    manual_participants: int
    total_participants: int
    available_spots: int
    is_full: bool


class CheckoutSessionCreate(BaseModel):
    """Schema for creating a checkout session via POST /checkout/session."""

    order_type: OrderTypeParam = Field(description="Kind of order to pay for")
    order_id: UUID = Field(description="Pending order UUID")
    success_url: HttpUrl | None = Field(default=None, description="URL to redirect after successful checkout")
    cancel_url: HttpUrl | None = Field(default=None, description="URL to redirect if checkout is cancelled")


class CheckoutSessionResponse(BaseModel):
    """Schema for checkout session creation response."""

    checkout_url: str = Field(description="Stripe Checkout URL (or success URL for free orders)")
    order_id: UUID = Field(description="Order UUID")
    stripe_session_id: str | None = Field(default=None, description="Stripe Checkout Session ID")
    is_free: bool = Field(default=False, description="True if the order was confirmed without payment")


class OrderStatusUpdate(BaseModel):
    """Administrative status override."""

    status: OrderStatus = Field(description="New order status")
    payment_status: PaymentStatus | None = Field(default=None, description="Optional new payment status")


class PaymentConfirmRequest(BaseModel):
    """Schema for confirming a payment from the checkout success page."""

    session_id: str = Field(
        min_length=1,
        max_length=255,
        pattern=r"^cs_",
        description="Stripe Checkout Session ID from the success URL",
    )


class PaymentConfirmResponse(BaseModel):
    """Order state after a success-page confirmation."""

    outcome: str = Field(description="'confirmed' if this call confirmed the order, 'duplicate' if it was already")
    order_type: OrderTypeParam = Field(description="Kind of order the session paid for")
    order: OrderResponse = Field(description="The order as stored after confirmation")
