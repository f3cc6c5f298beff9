"""Integration tests for webhook API endpoints."""

from unittest.mock import MagicMock

from fastapi.testclient import TestClient
from httpx import Response

from tests.fakes import (
    BOOKING_ID,
    COUPON_ID,
    FakeSupabaseClient,
    completed_session,
    encode_event,
    make_event,
    sign_payload,
)

WEBHOOK_URL = "/api/v1/webhooks/stripe"


def post_event(client: TestClient, payload: bytes, signature: str | None = None) -> Response:
    headers = {"stripe-signature": signature if signature is not None else sign_payload(payload)}
    return client.post(WEBHOOK_URL, content=payload, headers=headers)


class TestStripeWebhook:
    """Tests for POST /api/v1/webhooks/stripe endpoint."""

    def test_handles_checkout_completed_event(
        self,
        client: TestClient,
        fake_db: FakeSupabaseClient,
        mock_email_service: MagicMock,
    ) -> None:
        """Test that checkout.session.completed confirms the order."""
        payload = encode_event(make_event("checkout.session.completed", completed_session()))

        response = post_event(client, payload)

        assert response.status_code == 200
        assert response.json()["status"] == "received"
        booking = fake_db.get("bookings", BOOKING_ID)
        assert booking["status"] == "confirmed"
        assert booking["payment_status"] == "paid"
        assert fake_db.get("coupons", COUPON_ID)["usage_count"] == 100
        mock_email_service.send_booking_confirmation.assert_awaited_once()

    def test_redelivery_is_acknowledged_once(
        self,
        client: TestClient,
        fake_db: FakeSupabaseClient,
        mock_email_service: MagicMock,
    ) -> None:
        """Test that a redelivered event returns 200 without repeating side effects."""
        payload = encode_event(make_event("checkout.session.completed", completed_session()))

        first = post_event(client, payload)
        second = post_event(client, payload)

        assert first.status_code == 200
        assert second.status_code == 200
        assert fake_db.get("coupons", COUPON_ID)["usage_count"] == 100
        assert len(fake_db.tables["coupon_usage"]) == 1
        mock_email_service.send_booking_confirmation.assert_awaited_once()

    def test_handles_checkout_expired_event(self, client: TestClient, fake_db: FakeSupabaseClient) -> None:
        """Test that checkout.session.expired cancels the pending order."""
        payload = encode_event(make_event("checkout.session.expired", completed_session()))

        response = post_event(client, payload)

        assert response.status_code == 200
        booking = fake_db.get("bookings", BOOKING_ID)
        assert booking["status"] == "cancelled"
        assert booking["payment_status"] == "failed"

    def test_rejects_invalid_signature(self, client: TestClient, fake_db: FakeSupabaseClient) -> None:
        """Test that a bad signature is 400 and touches nothing."""
        payload = encode_event(make_event("checkout.session.completed", completed_session()))

        response = post_event(client, payload, signature=sign_payload(payload, secret="whsec_wrong"))

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid signature"
        assert fake_db.statements == []
        assert fake_db.get("bookings", BOOKING_ID)["status"] == "pending"

    def test_rejects_missing_signature_header(self, client: TestClient, fake_db: FakeSupabaseClient) -> None:
        """Test that a request without Stripe-Signature is 400."""
        payload = encode_event(make_event("checkout.session.completed", completed_session()))

        response = client.post(WEBHOOK_URL, content=payload)

        assert response.status_code == 400
        assert "Missing Stripe-Signature" in response.json()["detail"]
        assert fake_db.statements == []

    def test_rejects_malformed_json(self, client: TestClient) -> None:
        """Test that a signed but malformed body is 400."""
        payload = b"{not json"

        response = post_event(client, payload)

        assert response.status_code == 400

    def test_unhandled_event_type_returns_200(self, client: TestClient, fake_db: FakeSupabaseClient) -> None:
        """Test that unrelated event types are acknowledged."""
        payload = encode_event(make_event("invoice.paid", {"id": "in_123"}))

        response = post_event(client, payload)

        assert response.status_code == 200
        assert fake_db.statements == []

    def test_unknown_order_returns_200(self, client: TestClient) -> None:
        """Test that events for orders we do not know are acknowledged."""
        payload = encode_event(
            make_event(
                "checkout.session.completed",
                completed_session(order_id="00000000-0000-0000-0000-000000000000"),
            )
        )

        response = post_event(client, payload)

        assert response.status_code == 200

    def test_database_failure_returns_500(self, client: TestClient, fake_db: FakeSupabaseClient) -> None:
        """Test that infrastructure errors surface as 500 so Stripe redelivers."""
        payload = encode_event(make_event("checkout.session.completed", completed_session()))
        fake_db.table = MagicMock(side_effect=ConnectionError("database unavailable"))

        response = post_event(client, payload)

        assert response.status_code == 500
        assert response.json()["error"] == "internal_error"

    def test_malformed_order_id_returns_200(self, client: TestClient, fake_db: FakeSupabaseClient) -> None:
        """Test that an order id that is not a UUID is acknowledged without a query."""
        payload = encode_event(make_event("checkout.session.completed", completed_session(order_id="not-a-uuid")))

        response = post_event(client, payload)

        assert response.status_code == 200
        assert fake_db.statements == []

    def test_failed_usage_write_is_retried_on_redelivery(
        self,
        client: TestClient,
        fake_db: FakeSupabaseClient,
        mock_email_service: MagicMock,
    ) -> None:
        """Test that a failed usage write returns 500 and the redelivery records it once."""
        payload = encode_event(make_event("checkout.session.completed", completed_session()))
        fake_db.rpc_error = RuntimeError("connection reset")

        first = post_event(client, payload)

        assert first.status_code == 500
        assert fake_db.get("bookings", BOOKING_ID)["payment_status"] == "paid"
        assert fake_db.get("coupons", COUPON_ID)["usage_count"] == 99

        fake_db.rpc_error = None
        second = post_event(client, payload)

        assert second.status_code == 200
        assert fake_db.get("coupons", COUPON_ID)["usage_count"] == 100
        assert len(fake_db.tables["coupon_usage"]) == 1
        mock_email_service.send_booking_confirmation.assert_awaited_once()
