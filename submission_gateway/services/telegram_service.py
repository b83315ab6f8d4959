"""
Telegram Service
Sends team notifications to the business Telegram group
"""

import logging
from typing import Optional

import httpx

from ..config import TELEGRAM_BOT_TOKEN, TELEGRAM_CHAT_ID
from ..errors import ConfigurationError, UpstreamFailure

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"


class TelegramService:
    def __init__(
        self,
        bot_token: Optional[str] = TELEGRAM_BOT_TOKEN,
        chat_id: Optional[str] = TELEGRAM_CHAT_ID,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    async def send_message(self, text: str, parse_mode: str = "HTML") -> Optional[int]:
        """
        Send a text message to the team chat

        Returns:
            Telegram message id

        Raises:
            ConfigurationError: Bot token or chat id missing
            UpstreamFailure: Telegram rejected the message
        """
        if not self.configured:
            raise ConfigurationError("telegram")

        async with httpx.AsyncClient(transport=self.transport) as client:
            response = await client.post(
                f"{TELEGRAM_API_URL}/bot{self.bot_token}/sendMessage",
                json={"chat_id": self.chat_id, "text": text, "parse_mode": parse_mode},
            )

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code != 200 or not data.get("ok"):
            description = data.get("description") or response.text
            logger.error(f"❌ Telegram API error ({response.status_code}): {description}")
            raise UpstreamFailure("telegram", description, response.status_code)

        message_id = (data.get("result") or {}).get("message_id")
        logger.info(f"✅ Telegram message sent: {message_id}")
        return message_id
