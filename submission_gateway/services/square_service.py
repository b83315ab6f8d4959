"""
Square Billing Service
Creates and publishes Square invoices for completed jobs, with a
payment-link fallback when no invoice can be produced

Idempotency keys are derived from the submission reference, so repeating a
call for the same job returns the original Square object instead of a new one.
"""

import logging
from datetime import date, timedelta
from typing import Optional

import httpx
from pydantic import BaseModel, Field

from ..config import SQUARE_ACCESS_TOKEN, SQUARE_CURRENCY, SQUARE_ENVIRONMENT, SQUARE_LOCATION_ID
from ..errors import ConfigurationError, UpstreamFailure

logger = logging.getLogger(__name__)

SQUARE_API_URLS = {
    "production": "https://connect.squareup.com/v2",
    "sandbox": "https://connect.squareupsandbox.com/v2",
}
SQUARE_VERSION = "2024-12-18"
DEFAULT_DUE_DAYS = 14


class InvoiceLine(BaseModel):
    name: str
    amount: float  # In dollars
    quantity: int = 1


class BillingRequest(BaseModel):
    reference_id: str
    customer_name: str
    customer_email: Optional[str]
    amount: float
    description: str = "Cleaning service"
    customer_phone: Optional[str] = None
    due_date: Optional[date] = None
    line_items: list[InvoiceLine] = Field(default_factory=list)

    def lines(self) -> list[InvoiceLine]:
        return self.line_items or [InvoiceLine(name=self.description, amount=self.amount)]

    def resolved_due_date(self) -> date:
        return self.due_date or date.today() + timedelta(days=DEFAULT_DUE_DAYS)


class SquareInvoice(BaseModel):
    invoice_id: str
    invoice_url: Optional[str] = None
    status: Optional[str] = None
    version: int = 0

    @classmethod
    def from_api(cls, invoice: dict) -> "SquareInvoice":
        return cls(
            invoice_id=invoice["id"],
            invoice_url=invoice.get("public_url"),
            status=invoice.get("status"),
            version=invoice.get("version", 0),
        )


def to_cents(amount: float) -> int:
    return int(round(amount * 100))


def idempotency_key(reference_id: str, step: str) -> str:
    return f"{reference_id}:{step}"


class SquareService:
    def __init__(
        self,
        access_token: Optional[str] = SQUARE_ACCESS_TOKEN,
        location_id: Optional[str] = SQUARE_LOCATION_ID,
        environment: str = SQUARE_ENVIRONMENT,
        currency: str = SQUARE_CURRENCY,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token
        self.location_id = location_id
        self.base_url = SQUARE_API_URLS.get(environment, SQUARE_API_URLS["sandbox"])
        self.currency = currency
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.access_token and self.location_id)

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
            "Square-Version": SQUARE_VERSION,
        }

    def _check(self, response: httpx.Response, step: str) -> dict:
        if response.status_code not in [200, 201]:
            error_text = response.text
            logger.error(f"❌ Square {step} failed: {error_text}")
            raise UpstreamFailure("square", f"{step} failed: {error_text}", response.status_code)
        return response.json()

    async def _post(self, client: httpx.AsyncClient, path: str, payload: dict, step: str) -> dict:
        response = await client.post(f"{self.base_url}{path}", json=payload, headers=self._headers())
        return self._check(response, step)

    async def create_draft_invoice(self, request: BillingRequest) -> SquareInvoice:
        """
        Create an order and attach a DRAFT invoice to it

        Square invoices only get a public URL once published, see publish_invoice.
        """
        if not self.configured:
            raise ConfigurationError("square")

        order_payload = {
            "order": {
                "location_id": self.location_id,
                "reference_id": request.reference_id,
                "line_items": [
                    {
                        "name": line.name,
                        "quantity": str(line.quantity),
                        "base_price_money": {
                            "amount": to_cents(line.amount),
                            "currency": self.currency,
                        },
                    }
                    for line in request.lines()
                ],
            },
            "idempotency_key": idempotency_key(request.reference_id, "order"),
        }

        recipient = {"given_name": request.customer_name}
        if request.customer_email:
            recipient["email_address"] = request.customer_email
        if request.customer_phone:
            recipient["phone_number"] = request.customer_phone

        async with httpx.AsyncClient(transport=self.transport) as client:
            logger.info(f"Creating Square order for {request.reference_id}")
            order = (await self._post(client, "/orders", order_payload, "order creation"))["order"]

            invoice_payload = {
                "invoice": {
                    "location_id": self.location_id,
                    "order_id": order["id"],
                    "primary_recipient": recipient,
                    "payment_requests": [
                        {
                            "request_type": "BALANCE",
                            "due_date": request.resolved_due_date().isoformat(),
                            "automatic_payment_source": "NONE",
                        }
                    ],
                    "delivery_method": "SHARE_MANUALLY",  # We send our own invoice email
                    "accepted_payment_methods": {"card": True, "bank_account": False},
                    "invoice_number": request.reference_id,
                    "title": request.description,
                },
                "idempotency_key": idempotency_key(request.reference_id, "invoice"),
            }
            logger.info(f"Creating Square invoice for {request.reference_id}")
            invoice = await self._post(client, "/invoices", invoice_payload, "invoice creation")

        return SquareInvoice.from_api(invoice["invoice"])

    async def publish_invoice(self, reference_id: str, invoice_id: str) -> SquareInvoice:
        """
        Publish a draft invoice. An invoice that is already published is
        returned as-is.
        """
        if not self.configured:
            raise ConfigurationError("square")

        async with httpx.AsyncClient(transport=self.transport) as client:
            response = await client.get(f"{self.base_url}/invoices/{invoice_id}", headers=self._headers())
            current = SquareInvoice.from_api(self._check(response, "invoice lookup")["invoice"])
            if current.status != "DRAFT" and current.invoice_url:
                logger.info(f"Square invoice {invoice_id} is already published")
                return current

            logger.info(f"Publishing Square invoice {invoice_id}")
            published = await self._post(
                client,
                f"/invoices/{invoice_id}/publish",
                {"version": current.version, "idempotency_key": idempotency_key(reference_id, "publish")},
                "invoice publish",
            )

        logger.info(f"✅ Square invoice published: {invoice_id}")
        return SquareInvoice.from_api(published["invoice"])

    async def create_payment_link(self, request: BillingRequest) -> str:
        """Create a quick-pay checkout link for the full amount"""
        if not self.configured:
            raise ConfigurationError("square")

        payload = {
            "idempotency_key": idempotency_key(request.reference_id, "payment-link"),
            "quick_pay": {
                "name": f"{request.description} ({request.reference_id})",
                "price_money": {"amount": to_cents(request.amount), "currency": self.currency},
                "location_id": self.location_id,
            },
        }
        if request.customer_email:
            payload["pre_populated_data"] = {"buyer_email": request.customer_email}

        async with httpx.AsyncClient(transport=self.transport) as client:
            result = await self._post(
                client, "/online-checkout/payment-links", payload, "payment link creation"
            )

        url = result.get("payment_link", {}).get("url")
        if not url:
            raise UpstreamFailure("square", "payment link response had no url")
        logger.info(f"✅ Square payment link created for {request.reference_id}")
        return url
