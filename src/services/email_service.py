"""Email service using Resend for transactional emails."""

import logging
from datetime import date
from typing import Any

import resend

from src.core.config import get_settings

logger = logging.getLogger(__name__)

WEEKDAYS_JA = ["月", "火", "水", "木", "金", "土", "日"]


def format_event_date(event_date: str | None) -> str:
    """Format an ISO date as a Japanese date string, or 未定 when unset."""
    if not event_date:
        return "未定"
    try:
        d = date.fromisoformat(event_date[:10])
    except ValueError:
        return event_date
    return f"{d.year}年{d.month}月{d.day}日（{WEEKDAYS_JA[d.weekday()]}曜日）"


def format_event_time(event_time: str | None) -> str:
    """Trim seconds from HH:MM:SS, or 未定 when unset."""
    return event_time[:5] if event_time else "未定"


class EmailService:
    """Service for sending transactional emails via Resend."""

    def __init__(self) -> None:
        """Initialize email service with Resend API key."""
        settings = get_settings()
        resend.api_key = settings.resend_api_key
        self.from_email = settings.email_from_address
        self.cc = settings.notification_cc_list

    def _send(self, to_email: str, subject: str, html: str, text: str) -> dict[str, Any]:
        params: dict[str, Any] = {
            "from": self.from_email,
            "to": [to_email],
            "subject": subject,
            "html": html,
            "text": text,
        }
        if self.cc:
            params["cc"] = self.cc

        try:
            response = resend.Emails.send(params)
            logger.info("Email '%s' sent to %s, id: %s", subject, to_email, response.get("id"))
            return {"success": True, "email_id": response.get("id")}

        except Exception as e:
            logger.error("Failed to send email '%s' to %s: %s", subject, to_email, str(e))
            return {"success": False, "error": str(e)}

    async def send_booking_confirmation(
        self,
        to_email: str,
        customer_name: str,
        workshop_title: str,
        event_date: str | None = None,
        event_time: str | None = None,
        location: str | None = None,
        participants: int = 1,
        total_amount: int = 0,
    ) -> dict[str, Any]:
        """Send a workshop booking confirmation.

        Args:
            to_email: Recipient email address.
            customer_name: Customer's name.
            workshop_title: Title of the booked workshop.
            event_date: ISO date of the workshop, if scheduled.
            event_time: Start time of the workshop, if scheduled.
            location: Venue, if known.
            participants: Number of seats booked.
            total_amount: Amount paid in yen.

        Returns:
            dict: {"success": bool, "email_id" | "error": ...}
        """
        date_label = format_event_date(event_date)
        time_label = format_event_time(event_time)
        location_label = location or "未定"

        html_content = f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>ワークショップ予約確認</title>
</head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background-color: #f4f4f4; padding: 20px; text-align: center;">
        <h1 style="margin: 0; font-size: 22px;">ワークショップ予約確認</h1>
    </div>
    <div style="padding: 20px;">
        <p>{customer_name} 様</p>
        <p>この度はワークショップにお申し込みいただき、誠にありがとうございます。</p>
        <p>以下の内容で予約を承りました。</p>
        <div style="background-color: #f9f9f9; padding: 15px; margin: 20px 0; border-left: 4px solid #4CAF50;">
            <p><strong>ワークショップ名:</strong> {workshop_title}</p>
            <p><strong>開催日:</strong> {date_label}</p>
            <p><strong>開催時間:</strong> {time_label}</p>
            <p><strong>場所:</strong> {location_label}</p>
            <p><strong>参加人数:</strong> {participants}名</p>
            <p><strong>お支払い金額:</strong> ¥{total_amount:,}</p>
        </div>
    </div>
</body>
</html>
"""

        text_content = f"""
{customer_name} 様

この度はワークショップにお申し込みいただき、誠にありがとうございます。
以下の内容で予約を承りました。

ワークショップ名: {workshop_title}
開催日: {date_label}
開催時間: {time_label}
場所: {location_label}
参加人数: {participants}名
お支払い金額: ¥{total_amount:,}
"""

        return self._send(to_email, f"予約確認: {workshop_title}", html_content, text_content)

    async def send_enrollment_confirmation(
        self,
        to_email: str,
        parent_name: str,
        student_name: str,
        class_name: str,
        monthly_fee: int,
        total_amount: int,
    ) -> dict[str, Any]:
        """Send a school enrollment confirmation.

        Returns:
            dict: {"success": bool, "email_id" | "error": ...}
        """
        html_content = f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>スクール入会確認</title>
</head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="padding: 20px;">
        <p>{parent_name} 様</p>
        <p>3DLabスクールへのお申し込みありがとうございます。お支払いを確認いたしました。</p>
        <div style="background-color: #f9f9f9; padding: 15px; margin: 20px 0; border-left: 4px solid #2196F3;">
            <p><strong>受講者:</strong> {student_name}</p>
            <p><strong>クラス:</strong> {class_name}</p>
            <p><strong>お支払い金額:</strong> ¥{total_amount:,}</p>
            <p><strong>月謝:</strong> ¥{monthly_fee:,}（翌月から）</p>
        </div>
        <p>授業日程の詳細は追ってご連絡いたします。</p>
    </div>
</body>
</html>
"""

        text_content = f"""
{parent_name} 様

3DLabスクールへのお申し込みありがとうございます。お支払いを確認いたしました。

受講者: {student_name}
クラス: {class_name}
お支払い金額: ¥{total_amount:,}
月謝: ¥{monthly_fee:,}（翌月から）
"""

        return self._send(to_email, f"スクール入会確認: 3DLab {class_name}", html_content, text_content)
