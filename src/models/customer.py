"""Customer and workshop model type definitions for database operations."""

from datetime import datetime
from typing import TypedDict
from uuid import UUID


class Customer(TypedDict):
    """Customers table row representation.

    Upserted by email when an order is created.
    """

    id: UUID
    email: str
    name: str
    phone: str | None
    stripe_customer_id: str | None
    created_at: datetime
    updated_at: datetime


class CustomerUpsert(TypedDict, total=False):
    """Data written when upserting a customer by email."""

    email: str
    name: str
    phone: str | None


class Workshop(TypedDict, total=False):
    """Workshops table row (read-only for this service)."""

    id: UUID
    title: str
    description: str | None
    price: int
    max_participants: int
    manual_participants: int | None
    event_date: str | None
    event_time: str | None
    location: str | None
