"""
Team Notification Service
Fans out team alerts to Telegram and, when configured, an admin SMS
Each channel is attempted independently so one outage does not hide the other
"""

import html
import logging
from typing import Any, Optional

from ..config import ADMIN_PHONE
from ..domain.submissions.types import SubmissionEnvelope, SubmissionType
from ..errors import ConfigurationError, UpstreamFailure
from ..shared.validators import is_valid_au_phone, to_e164_au
from .telegram_service import TelegramService
from .twilio_service import TwilioService

logger = logging.getLogger(__name__)

SUBMISSION_EMOJI = {
    SubmissionType.RESIDENTIAL_QUOTE: "🏠",
    SubmissionType.COMMERCIAL_QUOTE: "🏢",
    SubmissionType.AIRBNB_QUOTE: "🏨",
    SubmissionType.JOB_APPLICATION: "👷",
    SubmissionType.FEEDBACK: "📝",
}


def _field(payload: dict[str, Any], *keys: str, default: str = "Not specified") -> str:
    """First non-empty value among keys, HTML-escaped for Telegram"""
    for key in keys:
        value = payload.get(key)
        if value not in (None, "", []):
            if isinstance(value, (list, tuple)):
                value = ", ".join(str(item) for item in value)
            return html.escape(str(value))
    return default


def build_submission_message(envelope: SubmissionEnvelope) -> str:
    """Team alert for a new public submission"""
    payload = envelope.payload
    submission_type = envelope.type
    header = f"{SUBMISSION_EMOJI[submission_type]} <b>NEW {submission_type.label.upper()}</b>"

    if submission_type == SubmissionType.RESIDENTIAL_QUOTE:
        lines = [
            f"👤 <b>Customer:</b> {_field(payload, 'fullName')}",
            f"📱 <b>Phone:</b> {_field(payload, 'phone')}",
            f"📧 <b>Email:</b> {_field(payload, 'email')}",
            f"📍 <b>Suburb:</b> {_field(payload, 'suburb')}",
            f"🧹 <b>Service:</b> {_field(payload, 'serviceType')}",
            f"🛏️ <b>Bedrooms:</b> {_field(payload, 'bedrooms', default='TBD')}"
            f" | 🚿 <b>Bathrooms:</b> {_field(payload, 'bathrooms', default='TBD')}",
            f"📅 <b>Date:</b> {_field(payload, 'preferredDate', default='TBD')}",
            f"💰 <b>Est. Price:</b> ${_field(payload, 'priceEstimate', default='Quote needed')}",
        ]
    elif submission_type == SubmissionType.COMMERCIAL_QUOTE:
        lines = [
            f"🏛️ <b>Company:</b> {_field(payload, 'companyName')}",
            f"👤 <b>Contact:</b> {_field(payload, 'contactPerson', 'fullName')}",
            f"📱 <b>Phone:</b> {_field(payload, 'phone')}",
            f"📧 <b>Email:</b> {_field(payload, 'email')}",
            f"📍 <b>Suburb:</b> {_field(payload, 'suburb')}",
            f"🏗️ <b>Facility:</b> {_field(payload, 'facilityType')}",
            f"📐 <b>Size:</b> {_field(payload, 'squareMeters', default='TBD')} sqm",
            f"📆 <b>Frequency:</b> {_field(payload, 'cleaningFrequency', default='TBD')}",
        ]
    elif submission_type == SubmissionType.AIRBNB_QUOTE:
        lines = [
            f"👤 <b>Host:</b> {_field(payload, 'contactName', 'fullName')}",
            f"📱 <b>Phone:</b> {_field(payload, 'phone')}",
            f"📧 <b>Email:</b> {_field(payload, 'email')}",
            f"📍 <b>Suburb:</b> {_field(payload, 'suburb')}",
            f"🏠 <b>Property:</b> {_field(payload, 'propertyType')}",
            f"🛏️ <b>Bedrooms:</b> {_field(payload, 'bedrooms', default='TBD')}"
            f" | 🚿 <b>Bathrooms:</b> {_field(payload, 'bathrooms', default='TBD')}",
            f"📆 <b>Frequency:</b> {_field(payload, 'cleaningFrequency', default='TBD')}",
        ]
    elif submission_type == SubmissionType.JOB_APPLICATION:
        lines = [
            f"👤 <b>Applicant:</b> {_field(payload, 'fullName')}",
            f"📱 <b>Phone:</b> {_field(payload, 'phone')}",
            f"📧 <b>Email:</b> {_field(payload, 'email')}",
            f"🔧 <b>Experience:</b> {_field(payload, 'experience')}",
            f"📅 <b>Available:</b> {_field(payload, 'availability', default='TBD')}",
            f"📍 <b>Suburbs:</b> {_field(payload, 'serviceSuburbs')}",
        ]
    else:
        rating = payload.get("rating")
        stars = "⭐" * rating if isinstance(rating, int) and not isinstance(rating, bool) else ""
        lines = [
            f"👤 <b>Client:</b> {_field(payload, 'fullName', 'name', default='Anonymous')}",
            f"📧 <b>Email:</b> {_field(payload, 'email')}",
            f"📊 <b>Rating:</b> {stars} ({_field(payload, 'rating', default='?')}/5)",
            f"📋 <b>Type:</b> {_field(payload, 'feedbackType', default='General')}",
            "",
            "💬 <b>Feedback:</b>",
            _field(payload, "comments", default=""),
        ]

    lines += ["", f"🔗 <b>Reference:</b> <code>{html.escape(envelope.reference_id or '')}</code>"]
    return "\n".join([header, ""] + lines)


def build_approval_message(
    reference_id: str, customer_name: str, scheduled: str, calendar_event_id: Optional[str]
) -> str:
    calendar_line = (
        f"📆 <b>Calendar:</b> event {html.escape(calendar_event_id)}"
        if calendar_event_id
        else "⚠️ <b>Calendar:</b> not created"
    )
    return "\n".join(
        [
            "✅ <b>BOOKING APPROVED</b>",
            "",
            f"👤 <b>Customer:</b> {html.escape(customer_name)}",
            f"📅 <b>When:</b> {html.escape(scheduled)}",
            calendar_line,
            "",
            f"🔗 <b>Reference:</b> <code>{html.escape(reference_id)}</code>",
        ]
    )


def build_completion_message(
    reference_id: str,
    customer_name: str,
    amount: float,
    invoice_url: Optional[str],
    payment_link: Optional[str],
) -> str:
    if invoice_url:
        billing_line = f"🧾 <b>Invoice:</b> {html.escape(invoice_url)}"
    elif payment_link:
        billing_line = f"💳 <b>Payment link:</b> {html.escape(payment_link)}"
    else:
        billing_line = "⚠️ <b>Billing:</b> no invoice or payment link was created"
    return "\n".join(
        [
            "🏁 <b>JOB COMPLETED</b>",
            "",
            f"👤 <b>Customer:</b> {html.escape(customer_name)}",
            f"💰 <b>Amount:</b> ${amount:.2f}",
            billing_line,
            "",
            f"🔗 <b>Reference:</b> <code>{html.escape(reference_id)}</code>",
        ]
    )


def build_sms_summary(text: str) -> str:
    """Plain-text first lines of a Telegram message, short enough for one SMS"""
    plain = text.replace("<b>", "").replace("</b>", "").replace("<code>", "").replace("</code>", "")
    lines = [line for line in html.unescape(plain).splitlines() if line.strip()]
    return "\n".join(lines[:4])[:160]


class TeamNotifier:
    """Sends the same alert to every configured team channel"""

    def __init__(
        self,
        telegram: Optional[TelegramService] = None,
        sms: Optional[TwilioService] = None,
        admin_phone: Optional[str] = ADMIN_PHONE,
    ):
        self.telegram = telegram or TelegramService()
        self.sms = sms or TwilioService()
        # Local Australian formats (0412 345 678) are converted for Twilio
        self.admin_phone = to_e164_au(admin_phone) if is_valid_au_phone(admin_phone) else admin_phone

    def _channels(self) -> list[str]:
        channels = []
        if self.telegram.configured:
            channels.append("telegram")
        if self.sms.configured and self.admin_phone:
            channels.append("sms")
        return channels

    async def notify(self, text: str) -> dict:
        """
        Send a team alert

        Returns:
            Dict with telegram_sent, sms_sent and per-channel errors

        Raises:
            ConfigurationError: No channel is configured
            UpstreamFailure: Every configured channel failed
        """
        channels = self._channels()
        if not channels:
            raise ConfigurationError("team_notification", "No team notification channel configured")

        result = {"telegram_sent": False, "sms_sent": False, "telegram_error": None, "sms_error": None}

        if "telegram" in channels:
            try:
                await self.telegram.send_message(text)
                result["telegram_sent"] = True
            except Exception as e:
                result["telegram_error"] = str(e)
                logger.error(f"❌ Failed to send Telegram team alert: {e}")

        if "sms" in channels:
            try:
                await self.sms.send_sms(self.admin_phone, build_sms_summary(text))
                result["sms_sent"] = True
            except Exception as e:
                result["sms_error"] = str(e)
                logger.error(f"❌ Failed to send admin SMS alert: {e}")

        if not (result["telegram_sent"] or result["sms_sent"]):
            errors = "; ".join(
                error for error in (result["telegram_error"], result["sms_error"]) if error
            )
            raise UpstreamFailure("team_notification", errors or "all channels failed")

        logger.info(
            f"✅ Team alert sent (telegram={result['telegram_sent']}, sms={result['sms_sent']})"
        )
        return result
