"""
Admin authentication

Admin actions are called by the back office (or n8n), not by browsers, and
authenticate with a shared secret in the X-Admin-Secret header.
"""

import hmac
import logging
from typing import Optional

from fastapi import Header, HTTPException, Request

from . import config
from .security_gate import get_client_ip

logger = logging.getLogger(__name__)


def constant_time_compare(a: str, b: str) -> bool:
    """Compare two strings in constant time"""
    if not a or not b:
        return False
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


async def require_admin_secret(
    request: Request,
    x_admin_secret: Optional[str] = Header(None),
) -> None:
    """Dependency guarding every admin route"""
    if not config.ADMIN_API_SECRET:
        logger.error("❌ ADMIN_API_SECRET is not configured - admin actions disabled")
        raise HTTPException(status_code=503, detail="Admin actions are not configured")

    if not constant_time_compare(x_admin_secret or "", config.ADMIN_API_SECRET):
        logger.warning(f"🚫 Invalid admin secret from {get_client_ip(request)} on {request.url.path}")
        raise HTTPException(status_code=401, detail="Invalid admin credentials")
