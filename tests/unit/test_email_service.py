"""Unit tests for EmailService."""

from unittest.mock import MagicMock, patch

import pytest

from src.services.email_service import EmailService, format_event_date, format_event_time


@pytest.fixture
def mock_settings() -> MagicMock:
    """Create mock settings."""
    settings = MagicMock()
    settings.resend_api_key = "re_test_123"
    settings.email_from_address = "3DLab <noreply@3dlab.jp>"
    settings.notification_cc_list = ["staff@3dlab.jp"]
    return settings


@pytest.fixture
def email_service(mock_settings: MagicMock) -> EmailService:
    """Create EmailService with mocked settings."""
    with patch("src.services.email_service.get_settings", return_value=mock_settings):
        return EmailService()


class TestFormatting:
    """Tests for date and time labels."""

    def test_format_event_date(self) -> None:
        """Test Japanese date with weekday."""
        assert format_event_date("2025-08-23") == "2025年8月23日（土曜日）"

    def test_format_event_date_unset(self) -> None:
        """Test that a missing date reads as undecided."""
        assert format_event_date(None) == "未定"

    def test_format_event_date_unparseable(self) -> None:
        """Test that free-form dates pass through."""
        assert format_event_date("毎週土曜日") == "毎週土曜日"

    def test_format_event_time(self) -> None:
        """Test that seconds are trimmed."""
        assert format_event_time("13:00:00") == "13:00"
        assert format_event_time(None) == "未定"


class TestSendBookingConfirmation:
    """Tests for send_booking_confirmation."""

    @pytest.mark.asyncio
    @patch("src.services.email_service.resend")
    async def test_sends_with_staff_cc(self, mock_resend: MagicMock, email_service: EmailService) -> None:
        """Test that the confirmation goes to the customer with staff copied."""
        mock_resend.Emails.send.return_value = {"id": "em_123"}

        result = await email_service.send_booking_confirmation(
            to_email="taro@example.com",
            customer_name="山田太郎",
            workshop_title="3Dプリンター入門",
            event_date="2025-08-23",
            event_time="13:00:00",
            location="3DLab 渋谷",
            participants=2,
            total_amount=9000,
        )

        assert result == {"success": True, "email_id": "em_123"}
        params = mock_resend.Emails.send.call_args.args[0]
        assert params["to"] == ["taro@example.com"]
        assert params["cc"] == ["staff@3dlab.jp"]
        assert params["subject"] == "予約確認: 3Dプリンター入門"
        assert "¥9,000" in params["text"]
        assert "2名" in params["html"]

    @pytest.mark.asyncio
    @patch("src.services.email_service.resend")
    async def test_returns_error_on_failure(self, mock_resend: MagicMock, email_service: EmailService) -> None:
        """Test that provider errors are returned, not raised."""
        mock_resend.Emails.send.side_effect = Exception("invalid api key")

        result = await email_service.send_booking_confirmation(
            to_email="taro@example.com",
            customer_name="山田太郎",
            workshop_title="3Dプリンター入門",
        )

        assert result["success"] is False
        assert result["error"] == "invalid api key"


class TestSendEnrollmentConfirmation:
    """Tests for send_enrollment_confirmation."""

    @pytest.mark.asyncio
    @patch("src.services.email_service.resend")
    async def test_sends_enrollment_details(self, mock_resend: MagicMock, email_service: EmailService) -> None:
        """Test the enrollment confirmation content."""
        mock_resend.Emails.send.return_value = {"id": "em_456"}

        result = await email_service.send_enrollment_confirmation(
            to_email="parent@example.com",
            parent_name="鈴木一郎",
            student_name="鈴木次郎",
            class_name="基本実践クラス（授業＋作品作り）",
            monthly_fee=30000,
            total_amount=52000,
        )

        assert result["success"] is True
        params = mock_resend.Emails.send.call_args.args[0]
        assert "鈴木次郎" in params["text"]
        assert "¥52,000" in params["text"]
        assert "¥30,000" in params["text"]
