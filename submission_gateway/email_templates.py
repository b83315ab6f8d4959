"""
Email Templates
Plain, table-free HTML for customer emails
"""

from html import escape
from typing import Optional

THEME = {
    "primary": "#14b8a6",
    "background": "#f8fafc",
    "text_primary": "#0f172a",
    "text_muted": "#64748b",
}

BUSINESS_NAME = "Clean Up Bros"


def get_base_template(title: str, body: str, cta_url: Optional[str] = None, cta_label: Optional[str] = None) -> str:
    """Wrap a body fragment in the shared layout"""
    cta = ""
    if cta_url and cta_label:
        cta = (
            f'<p style="margin:24px 0"><a href="{escape(cta_url, quote=True)}" '
            f'style="background:{THEME["primary"]};color:#ffffff;padding:14px 28px;'
            f'border-radius:8px;text-decoration:none;font-weight:600">{escape(cta_label)}</a></p>'
        )
    return f"""<!DOCTYPE html>
<html>
  <body style="margin:0;padding:24px;background:{THEME['background']};font-family:Arial,sans-serif;color:{THEME['text_primary']}">
    <h1 style="font-size:22px">{escape(title)}</h1>
    {body}
    {cta}
    <p style="font-size:12px;color:{THEME['text_muted']}">{BUSINESS_NAME} · Sydney, NSW</p>
  </body>
</html>"""


def submission_received_template(customer_name: str, reference_id: str, service_label: str) -> str:
    body = f"""
    <p>Hi {escape(customer_name)},</p>
    <p>Thank you for your quote request! Our team will review and get back to you within 24 hours.</p>
    <p><strong>Service:</strong> {escape(service_label)}<br>
       <strong>Reference:</strong> {escape(reference_id)}</p>
    """
    return get_base_template("We received your request", body)


def booking_confirmed_template(
    customer_name: str,
    reference_id: str,
    service_type: str,
    when: str,
    address: str,
) -> str:
    body = f"""
    <p>Hi {escape(customer_name)},</p>
    <p>Your booking is confirmed. Here are the details:</p>
    <p><strong>Service:</strong> {escape(service_type)}<br>
       <strong>When:</strong> {escape(when)}<br>
       <strong>Address:</strong> {escape(address)}<br>
       <strong>Reference:</strong> {escape(reference_id)}</p>
    <p>Reply to this email if anything changes.</p>
    """
    return get_base_template("Your booking is confirmed", body)


def invoice_ready_template(
    customer_name: str,
    reference_id: str,
    amount: float,
    payment_url: str,
    due_date: Optional[str] = None,
) -> str:
    due = f"<br><strong>Due:</strong> {escape(due_date)}" if due_date else ""
    body = f"""
    <p>Hi {escape(customer_name)},</p>
    <p>Thanks for choosing {BUSINESS_NAME}. Your invoice is ready.</p>
    <p><strong>Amount:</strong> ${amount:.2f}{due}<br>
       <strong>Reference:</strong> {escape(reference_id)}</p>
    """
    return get_base_template("Your invoice", body, cta_url=payment_url, cta_label="Pay now")


def review_request_template(customer_name: str, google_review_url: str, facebook_review_url: str) -> str:
    body = f"""
    <p>Hi {escape(customer_name)},</p>
    <p>We hope you loved your clean! A quick review helps our small team a lot.</p>
    <p><a href="{escape(facebook_review_url, quote=True)}">Leave a Facebook review</a></p>
    """
    return get_base_template(
        "How did we do?", body, cta_url=google_review_url, cta_label="Leave a Google review"
    )


def booking_reminder_template(customer_name: str, reference_id: str, when: str, address: str) -> str:
    body = f"""
    <p>Hi {escape(customer_name)},</p>
    <p>Just a reminder that our team is booked to clean tomorrow.</p>
    <p><strong>When:</strong> {escape(when)}<br>
       <strong>Address:</strong> {escape(address)}<br>
       <strong>Reference:</strong> {escape(reference_id)}</p>
    <p>Please make sure we can get access to the property.</p>
    """
    return get_base_template("See you tomorrow", body)
