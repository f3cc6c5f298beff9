"""Pytest configuration and fixtures."""

import os
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_stripe_secret_key")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_webhook_secret")
os.environ.setdefault("STRIPE_PUBLISHABLE_KEY", "pk_test_stripe_publishable_key")
os.environ.setdefault("ADMIN_PASSWORD", "test-admin-password")

from tests.fakes import (  # noqa: E402
    BOOKING_ID,
    COUPON_ID,
    CUSTOMER_ID,
    WORKSHOP_ID,
    FakeSupabaseClient,
)


@pytest.fixture(scope="session")
def test_settings() -> Generator[Any, None, None]:
    """Provide test settings with cleared cache."""
    from src.core.config import get_settings

    get_settings.cache_clear()
    settings = get_settings()
    yield settings
    get_settings.cache_clear()


@pytest.fixture
def coupon_row() -> dict[str, Any]:
    """SUMMER10: 10% off, min 2000, 99 of 100 uses consumed, one per customer."""
    now = datetime.now(timezone.utc)
    return {
        "id": COUPON_ID,
        "code": "SUMMER10",
        "description": "Summer campaign",
        "discount_type": "percentage",
        "discount_value": 10,
        "minimum_amount": 2000,
        "usage_limit": 100,
        "user_limit": 1,
        "usage_count": 99,
        "valid_from": (now - timedelta(days=1)).isoformat(),
        "valid_until": (now + timedelta(days=30)).isoformat(),
        "is_active": True,
        "product_ids": None,
    }


@pytest.fixture
def fake_db(coupon_row: dict[str, Any]) -> FakeSupabaseClient:
    """In-memory database seeded with one workshop, customer, coupon and pending booking."""
    db = FakeSupabaseClient()
    db.add(
        "workshops",
        {
            "id": WORKSHOP_ID,
            "title": "3Dプリンター入門",
            "description": "はじめての3Dプリント",
            "price": 5000,
            "max_participants": 10,
            "manual_participants": 2,
            "event_date": "2025-08-23",
            "event_time": "13:00:00",
            "location": "3DLab 渋谷",
        },
    )
    db.add(
        "customers",
        {"id": CUSTOMER_ID, "email": "taro@example.com", "name": "山田太郎", "stripe_customer_id": None},
    )
    db.add("coupons", coupon_row)
    db.add(
        "bookings",
        {
            "id": BOOKING_ID,
            "workshop_id": WORKSHOP_ID,
            "customer_id": CUSTOMER_ID,
            "booking_date": None,
            "booking_time": None,
            "participants": 1,
            "gross_amount": 5000,
            "discount_amount": 500,
            "total_amount": 4500,
            "coupon_id": COUPON_ID,
            "status": "pending",
            "payment_status": "pending",
            "stripe_session_id": None,
            "stripe_payment_intent_id": None,
            "notes": None,
            "system_notes": [],
        },
    )
    return db


@pytest.fixture
def mock_email_service() -> MagicMock:
    """Email service whose sends succeed."""
    service = MagicMock()
    service.send_booking_confirmation = AsyncMock(return_value={"success": True, "email_id": "em_1"})
    service.send_enrollment_confirmation = AsyncMock(return_value={"success": True, "email_id": "em_2"})
    return service


@pytest.fixture
def order_service(fake_db: FakeSupabaseClient) -> Any:
    """Order service on the in-memory database."""
    from src.services.order_service import OrderService

    return OrderService(fake_db)


@pytest.fixture
def reconciler(order_service: Any, mock_email_service: MagicMock) -> Any:
    """Payment reconciler on the in-memory database."""
    from src.services.reconciler_service import PaymentReconciler

    return PaymentReconciler(
        order_service=order_service,
        coupon_ledger=order_service.coupon_ledger,
        email_service=mock_email_service,
    )


@pytest.fixture
def mock_stripe() -> MagicMock:
    """Stripe module double for session creation."""
    stripe_mock = MagicMock()
    session = MagicMock()
    session.id = "cs_test_123"
    session.url = "https://checkout.stripe.com/c/pay/cs_test_123"
    stripe_mock.checkout.Session.create.return_value = session
    stripe_mock.Coupon.create.return_value = MagicMock(id="co_test_123")
    return stripe_mock


@pytest.fixture
def client(
    fake_db: FakeSupabaseClient,
    order_service: Any,
    reconciler: Any,
) -> Generator[TestClient, None, None]:
    """Test client wired to the in-memory database and mocked email."""
    from src.api import deps
    from src.main import app
    from src.services.coupon_service import CouponLedger

    app.dependency_overrides[deps.get_order_service] = lambda: order_service
    app.dependency_overrides[deps.get_coupon_ledger] = lambda: CouponLedger(fake_db)
    app.dependency_overrides[deps.get_reconciler] = lambda: reconciler

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
