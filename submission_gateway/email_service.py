"""
Email Service using Resend
Customer-facing emails for submissions and admin actions
"""

import logging
from typing import Optional, Union

import resend

from . import config
from .email_templates import (
    booking_confirmed_template,
    booking_reminder_template,
    invoice_ready_template,
    review_request_template,
    submission_received_template,
)
from .errors import UpstreamFailure

logger = logging.getLogger(__name__)


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    html_content: str,
    from_address: Optional[str] = None,
) -> Optional[str]:
    """
    Send an email through Resend

    Args:
        to: Recipient email(s)
        subject: Email subject line
        html_content: Rendered HTML body
        from_address: Optional custom from address

    Returns:
        Resend message id, or None when email is not configured (skipped)

    Raises:
        UpstreamFailure: Resend rejected the message
    """
    if not config.RESEND_API_KEY:
        logger.warning(f"⚠️ RESEND_API_KEY missing - skipping email '{subject}'")
        return None

    recipients = [to] if isinstance(to, str) else to
    resend.api_key = config.RESEND_API_KEY

    try:
        logger.info(f"📧 Sending email via Resend to: {recipients}")
        response = resend.Emails.send(
            {
                "from": from_address or config.EMAIL_FROM_ADDRESS,
                "to": recipients,
                "subject": subject,
                "html": html_content,
            }
        )
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise UpstreamFailure("email", str(e)) from e

    message_id = response.get("id") if isinstance(response, dict) else getattr(response, "id", None)
    logger.info(f"✅ Email sent successfully via Resend: {message_id}")
    return message_id


# ============================================
# Pre-built emails for submission and admin events
# ============================================


async def send_submission_acknowledgement(
    to: str, customer_name: str, reference_id: str, service_label: str
) -> Optional[str]:
    """Acknowledge a new quote request"""
    return await send_email(
        to=to,
        subject=f"We received your quote request ({reference_id}) - Clean Up Bros",
        html_content=submission_received_template(customer_name, reference_id, service_label),
    )


async def send_booking_confirmation(
    to: str, customer_name: str, reference_id: str, service_type: str, when: str, address: str
) -> Optional[str]:
    return await send_email(
        to=to,
        subject="Your booking is confirmed - Clean Up Bros",
        html_content=booking_confirmed_template(customer_name, reference_id, service_type, when, address),
    )


async def send_invoice_email(
    to: str,
    customer_name: str,
    reference_id: str,
    amount: float,
    payment_url: str,
    due_date: Optional[str] = None,
) -> Optional[str]:
    return await send_email(
        to=to,
        subject=f"Your invoice for {reference_id} - Clean Up Bros",
        html_content=invoice_ready_template(customer_name, reference_id, amount, payment_url, due_date),
    )


async def send_review_request(to: str, customer_name: str) -> Optional[str]:
    return await send_email(
        to=to,
        subject="How did we do? - Clean Up Bros",
        html_content=review_request_template(
            customer_name, config.GOOGLE_REVIEW_URL, config.FACEBOOK_REVIEW_URL
        ),
    )


async def send_booking_reminder(
    to: str, customer_name: str, reference_id: str, when: str, address: str
) -> Optional[str]:
    return await send_email(
        to=to,
        subject="Reminder: your clean is tomorrow - Clean Up Bros",
        html_content=booking_reminder_template(customer_name, reference_id, when, address),
    )


class EmailService:
    """Thin object facade over the module functions so the orchestrator can swap it in tests"""

    send_email = staticmethod(send_email)
    send_submission_acknowledgement = staticmethod(send_submission_acknowledgement)
    send_booking_confirmation = staticmethod(send_booking_confirmation)
    send_invoice_email = staticmethod(send_invoice_email)
    send_review_request = staticmethod(send_review_request)
    send_booking_reminder = staticmethod(send_booking_reminder)
