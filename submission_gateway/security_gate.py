"""
Security Gate
Protects public write endpoints against bots, exploit probes, cross-site
posts and floods. Composes the heuristics with the rate limiter into a single
allow/deny decision.
"""

import json
import logging
import re
from enum import Enum
from typing import Any, Optional
from urllib.parse import urlsplit

from fastapi import Request
from pydantic import BaseModel, ConfigDict

from .config import (
    ALLOW_BOTS,
    ALLOWED_ORIGINS,
    BOT_BLOCK_MS,
    REQUIRE_ORIGIN,
    SUSPICIOUS_BLOCK_MS,
)
from .errors import SecurityDenial
from .rate_limiter import RateLimiter, RateLimitResult, build_rate_limiter

logger = logging.getLogger(__name__)

# Automation signatures: crawlers, headless browsers, scraping libraries, HTTP clients
BOT_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"bot",
        r"crawl",
        r"spider",
        r"scrape",
        r"curl",
        r"wget",
        r"python-requests",
        r"python-httpx",
        r"aiohttp",
        r"axios",
        r"node-fetch",
        r"postman",
        r"insomnia",
        r"httpie",
        r"scrapy",
        r"selenium",
        r"puppeteer",
        r"playwright",
        r"headless",
        r"phantom",
        r"nightmare",
    )
]

# Exploit probes: secret/config file traversal, admin panels, SQL injection, inline scripts
SUSPICIOUS_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\.\./",
        r"\.env\b",
        r"\.git/",
        r"/etc/passwd",
        r"wp-admin",
        r"phpmyadmin",
        r"admin\.php",
        r"eval\(",
        r"union\s+(all\s+)?select",
        r"drop\s+table",
        r"<script",
    )
]

SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}


class DenialReason(str, Enum):
    BOT_DETECTED = "bot-detected"
    SUSPICIOUS_PATTERN = "suspicious-pattern"
    INVALID_ORIGIN = "invalid-origin"
    RATE_LIMITED = "rate-limited"
    IP_BLOCKED = "ip-blocked"
    NONE = "none"


class SecurityDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    allowed: bool
    reason_code: DenialReason
    http_status: int
    rate_limit: Optional[RateLimitResult] = None

    @classmethod
    def allow(cls, rate_limit: Optional[RateLimitResult] = None) -> "SecurityDecision":
        return cls(allowed=True, reason_code=DenialReason.NONE, http_status=200, rate_limit=rate_limit)

    @classmethod
    def deny(
        cls, reason: DenialReason, http_status: int = 403, rate_limit: Optional[RateLimitResult] = None
    ) -> "SecurityDecision":
        return cls(allowed=False, reason_code=reason, http_status=http_status, rate_limit=rate_limit)


class GateRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    client_ip: str
    method: str
    path: str
    action: str
    user_agent: Optional[str] = None
    origin: Optional[str] = None
    referer: Optional[str] = None
    body: Any = None


def get_client_ip(request: Request) -> str:
    """Client IP from proxy headers, falling back to the socket peer"""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


def gate_request_from(request: Request, action: str, body: Any = None) -> GateRequest:
    return GateRequest(
        client_ip=get_client_ip(request),
        method=request.method,
        path=request.url.path + (f"?{request.url.query}" if request.url.query else ""),
        action=action,
        user_agent=request.headers.get("user-agent"),
        origin=request.headers.get("origin"),
        referer=request.headers.get("referer"),
        body=body,
    )


def is_bot(user_agent: Optional[str]) -> bool:
    """A missing user agent is treated as automation"""
    if not user_agent:
        return True
    return any(pattern.search(user_agent) for pattern in BOT_PATTERNS)


def is_suspicious(path: str, body: Any = None) -> bool:
    try:
        serialized = json.dumps(body if body is not None else {}, default=str)
    except (TypeError, ValueError):
        serialized = str(body)
    combined = f"{path}{serialized}"
    return any(pattern.search(combined) for pattern in SUSPICIOUS_PATTERNS)


def _origin_of(url: str) -> Optional[str]:
    parts = urlsplit(url.strip())
    if not parts.scheme or not parts.netloc:
        return None
    return f"{parts.scheme.lower()}://{parts.netloc.lower()}"


class SecurityGate:
    """
    Ordered request checks, stopping at the first failure:
    IP block → bot → suspicious content → origin → rate limit.
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        allowed_origins: Optional[list[str]] = None,
        require_origin: bool = True,
        allow_bots: bool = False,
        bot_block_ms: int = BOT_BLOCK_MS,
        suspicious_block_ms: int = SUSPICIOUS_BLOCK_MS,
    ):
        self.rate_limiter = rate_limiter
        origins = allowed_origins if allowed_origins is not None else ALLOWED_ORIGINS
        self.allowed_origins = {o for o in (_origin_of(origin) for origin in origins) if o}
        self.require_origin = require_origin
        self.allow_bots = allow_bots
        self.bot_block_ms = bot_block_ms
        self.suspicious_block_ms = suspicious_block_ms

    def is_allowed_origin(self, origin: Optional[str], referer: Optional[str]) -> bool:
        """
        Origin must match the allowlist; Referer stands in when Origin is absent.
        Requests carrying neither are same-origin.
        """
        if origin:
            return _origin_of(origin) in self.allowed_origins
        if referer:
            return _origin_of(referer) in self.allowed_origins
        return True

    def evaluate(self, request: GateRequest) -> SecurityDecision:
        client = request.client_ip

        if self.rate_limiter.is_blocked(client):
            return self._deny(request, SecurityDecision.deny(DenialReason.IP_BLOCKED, 403))

        if not self.allow_bots and is_bot(request.user_agent):
            self.rate_limiter.block(client, self.bot_block_ms)
            return self._deny(request, SecurityDecision.deny(DenialReason.BOT_DETECTED, 403))

        if is_suspicious(request.path, request.body):
            self.rate_limiter.block(client, self.suspicious_block_ms)
            return self._deny(request, SecurityDecision.deny(DenialReason.SUSPICIOUS_PATTERN, 403))

        if (
            self.require_origin
            and request.method.upper() not in SAFE_METHODS
            and not self.is_allowed_origin(request.origin, request.referer)
        ):
            return self._deny(request, SecurityDecision.deny(DenialReason.INVALID_ORIGIN, 403))

        rate = self.rate_limiter.check_and_consume(client, request.action)
        if not rate.allowed:
            return self._deny(
                request, SecurityDecision.deny(DenialReason.RATE_LIMITED, 429, rate_limit=rate)
            )

        return SecurityDecision.allow(rate_limit=rate)

    def enforce(self, request: GateRequest) -> SecurityDecision:
        """
        Evaluate and raise on denial

        Raises:
            SecurityDenial: The request failed one of the checks
        """
        decision = self.evaluate(request)
        if not decision.allowed:
            raise SecurityDenial(decision)
        return decision

    def _deny(self, request: GateRequest, decision: SecurityDecision) -> SecurityDecision:
        logger.warning(
            f"🚫 [SECURITY] Blocked {request.method} {request.path} from {request.client_ip}: "
            f"{decision.reason_code.value}"
        )
        return decision


def build_security_gate(rate_limiter: Optional[RateLimiter] = None) -> SecurityGate:
    return SecurityGate(
        rate_limiter=rate_limiter or build_rate_limiter(),
        allowed_origins=ALLOWED_ORIGINS,
        require_origin=REQUIRE_ORIGIN,
        allow_bots=ALLOW_BOTS,
    )
