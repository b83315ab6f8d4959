"""
Twilio SMS Service
Sends SMS alerts to the business owner's phone
"""

import logging
from typing import Optional

import httpx

from ..config import TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_PHONE_NUMBER
from ..errors import ConfigurationError, UpstreamFailure

logger = logging.getLogger(__name__)

TWILIO_API_URL = "https://api.twilio.com/2010-04-01"


class TwilioService:
    def __init__(
        self,
        account_sid: Optional[str] = TWILIO_ACCOUNT_SID,
        auth_token: Optional[str] = TWILIO_AUTH_TOKEN,
        from_number: Optional[str] = TWILIO_PHONE_NUMBER,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    async def send_sms(self, to_phone: str, message_body: str) -> Optional[str]:
        """
        Send SMS via Twilio

        Args:
            to_phone: Recipient phone number in E.164 format
            message_body: SMS message content

        Returns:
            Twilio message SID

        Raises:
            ConfigurationError: Twilio credentials missing
            UpstreamFailure: Twilio rejected the message
        """
        if not self.configured:
            raise ConfigurationError("twilio")

        if not to_phone.startswith("+"):
            to_phone = f"+{to_phone}"

        logger.info(f"📱 Sending SMS to {to_phone}")
        async with httpx.AsyncClient(transport=self.transport) as client:
            response = await client.post(
                f"{TWILIO_API_URL}/Accounts/{self.account_sid}/Messages.json",
                auth=(self.account_sid, self.auth_token),
                data={"To": to_phone, "From": self.from_number, "Body": message_body},
            )

        try:
            result = response.json()
        except ValueError:
            result = {}

        if response.status_code not in (200, 201):
            error = result.get("message") or result.get("error_message") or response.text
            logger.error(f"❌ Twilio error ({response.status_code}): {error}")
            raise UpstreamFailure("twilio", error, response.status_code)

        sid = result.get("sid")
        logger.info(f"✅ SMS sent successfully: {sid}")
        return sid
