"""
n8n Webhook Service
Forwards accepted submissions to the automation workflow for their type
"""

import logging
from datetime import datetime
from typing import Optional

import httpx

from ..config import N8N_WEBHOOK_SECRET, N8N_WEBHOOK_URLS
from ..domain.submissions.types import SubmissionEnvelope
from ..errors import ConfigurationError, UpstreamFailure

logger = logging.getLogger(__name__)


class WebhookService:
    def __init__(
        self,
        urls: Optional[dict[str, str]] = None,
        secret: Optional[str] = N8N_WEBHOOK_SECRET,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.urls = N8N_WEBHOOK_URLS if urls is None else urls
        self.secret = secret or ""
        self.transport = transport

    def url_for(self, submission_type: str) -> Optional[str]:
        return self.urls.get(submission_type)

    async def forward(self, envelope: SubmissionEnvelope) -> int:
        """
        POST the sanitized submission to its n8n workflow

        Returns:
            HTTP status code returned by n8n

        Raises:
            ConfigurationError: No webhook URL for this submission type
            UpstreamFailure: n8n answered with a non-2xx status
        """
        url = self.url_for(envelope.type.value)
        if not url:
            raise ConfigurationError("webhook", f"No webhook configured for {envelope.type.value}")

        body = {
            "type": envelope.type.value,
            "data": envelope.payload,
            "referenceId": envelope.reference_id,
            "timestamp": (envelope.submitted_at or datetime.utcnow()).isoformat(),
            "source": "website",
        }

        async with httpx.AsyncClient(transport=self.transport) as client:
            response = await client.post(
                url,
                json=body,
                headers={"X-Webhook-Secret": self.secret},
            )

        if not response.is_success:
            logger.error(f"❌ Webhook forward failed for {envelope.reference_id}: {response.status_code}")
            raise UpstreamFailure("webhook", f"HTTP {response.status_code}", response.status_code)

        logger.info(f"✅ Forwarded {envelope.reference_id} to n8n ({envelope.type.value})")
        return response.status_code
