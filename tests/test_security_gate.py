"""Tests for the security gate's ordered checks and its quarantine blocks."""

import pytest
from starlette.requests import Request

from fakes import BROWSER_UA
from submission_gateway.config import DAY_MS, HOUR_MS
from submission_gateway.errors import SecurityDenial
from submission_gateway.rate_limiter import RateLimiter
from submission_gateway.security_gate import (
    DenialReason,
    GateRequest,
    SecurityGate,
    get_client_ip,
    is_bot,
    is_suspicious,
)

SITE = "https://cleanupbros.com.au"


@pytest.fixture
def gate(clock) -> SecurityGate:
    return SecurityGate(
        rate_limiter=RateLimiter(clock=clock),
        allowed_origins=[SITE, "https://www.cleanupbros.com.au"],
        require_origin=True,
    )


def make_request(**overrides) -> GateRequest:
    values = {
        "client_ip": "203.0.113.7",
        "method": "POST",
        "path": "/submit/quote",
        "action": "quote",
        "user_agent": BROWSER_UA,
        "origin": SITE,
        "body": {"fullName": "Jordan Smith"},
    }
    values.update(overrides)
    return GateRequest(**values)


class TestAllowedRequests:
    def test_browser_request_from_site_is_allowed(self, gate):
        decision = gate.evaluate(make_request())

        assert decision.allowed is True
        assert decision.reason_code == DenialReason.NONE
        assert decision.http_status == 200
        assert decision.rate_limit.remaining == 4


class TestEnforce:
    def test_denial_raises_with_decision(self, gate):
        with pytest.raises(SecurityDenial) as exc_info:
            gate.enforce(make_request(user_agent=None))

        assert exc_info.value.decision.reason_code == DenialReason.BOT_DETECTED
        assert "bot-detected" in str(exc_info.value)

    def test_allowed_request_returns_decision(self, gate):
        assert gate.enforce(make_request()).allowed is True


class TestBotDetection:
    @pytest.mark.parametrize(
        "user_agent",
        ["curl/8.4.0", "python-requests/2.31", "Googlebot/2.1", "HeadlessChrome/120", None, ""],
    )
    def test_automation_user_agents(self, user_agent):
        assert is_bot(user_agent) is True

    def test_browser_user_agent(self):
        assert is_bot(BROWSER_UA) is False

    def test_bot_is_denied_and_quarantined(self, gate, clock):
        """A bot hit blocks the IP, so a later request with a browser UA is still refused."""
        decision = gate.evaluate(make_request(user_agent="curl/8.4.0"))
        assert decision.allowed is False
        assert decision.reason_code == DenialReason.BOT_DETECTED
        assert decision.http_status == 403

        follow_up = gate.evaluate(make_request())
        assert follow_up.reason_code == DenialReason.IP_BLOCKED
        assert follow_up.http_status == 403

        clock.advance(HOUR_MS)
        assert gate.evaluate(make_request()).allowed is True

    def test_block_is_per_ip(self, gate):
        gate.evaluate(make_request(user_agent="curl/8.4.0"))
        assert gate.evaluate(make_request(client_ip="198.51.100.1")).allowed is True

    def test_bots_allowed_when_configured(self, clock):
        gate = SecurityGate(RateLimiter(clock=clock), allowed_origins=[SITE], allow_bots=True)
        assert gate.evaluate(make_request(user_agent="curl/8.4.0")).allowed is True


class TestSuspiciousContent:
    @pytest.mark.parametrize(
        "path, body",
        [
            ("/submit/quote/../../.env", None),
            ("/submit/quote", {"notes": "cat /etc/passwd"}),
            ("/submit/quote", {"fullName": "x' UNION SELECT password FROM users"}),
            ("/submit/quote", {"comments": "<script>alert(1)</script>"}),
            ("/wp-admin/setup.php", {}),
        ],
    )
    def test_exploit_patterns(self, path, body):
        assert is_suspicious(path, body) is True

    def test_ordinary_submission_is_not_suspicious(self, residential_quote):
        assert is_suspicious("/submit/quote", residential_quote) is False

    def test_suspicious_body_blocks_for_a_day(self, gate, clock):
        decision = gate.evaluate(make_request(body={"notes": "DROP TABLE submissions"}))
        assert decision.reason_code == DenialReason.SUSPICIOUS_PATTERN
        assert decision.http_status == 403

        clock.advance(HOUR_MS)
        assert gate.evaluate(make_request()).reason_code == DenialReason.IP_BLOCKED

        clock.advance(DAY_MS - HOUR_MS)
        assert gate.evaluate(make_request()).allowed is True

    def test_bot_check_runs_before_content_check(self, gate):
        decision = gate.evaluate(make_request(user_agent="curl/8.4.0", body={"x": "../../etc/passwd"}))
        assert decision.reason_code == DenialReason.BOT_DETECTED


class TestOriginCheck:
    def test_foreign_origin_is_denied_without_block(self, gate):
        decision = gate.evaluate(make_request(origin="https://evil.example"))
        assert decision.reason_code == DenialReason.INVALID_ORIGIN
        assert decision.http_status == 403

        assert gate.evaluate(make_request()).allowed is True

    def test_lookalike_origin_is_denied(self, gate):
        """Matching is exact on scheme and host, not a prefix match."""
        for origin in (
            "https://cleanupbros.com.au.evil.example",
            "http://cleanupbros.com.au",
            "https://evilcleanupbros.com.au",
        ):
            assert gate.is_allowed_origin(origin, None) is False

    def test_origin_comparison_ignores_case_and_path(self, gate):
        assert gate.is_allowed_origin("HTTPS://CleanUpBros.com.au", None) is True
        assert gate.is_allowed_origin(None, "https://www.cleanupbros.com.au/quote?step=2") is True

    def test_referer_used_when_origin_missing(self, gate):
        assert gate.evaluate(make_request(origin=None, referer=f"{SITE}/quote")).allowed is True
        denied = gate.evaluate(make_request(origin=None, referer="https://evil.example/page"))
        assert denied.reason_code == DenialReason.INVALID_ORIGIN

    def test_missing_origin_and_referer_is_same_origin(self, gate):
        assert gate.evaluate(make_request(origin=None, referer=None)).allowed is True

    def test_safe_methods_skip_origin_check(self, gate):
        assert gate.evaluate(make_request(method="GET", origin="https://evil.example")).allowed is True

    def test_origin_not_required(self, clock):
        gate = SecurityGate(RateLimiter(clock=clock), allowed_origins=[SITE], require_origin=False)
        assert gate.evaluate(make_request(origin="https://evil.example")).allowed is True


class TestRateLimiting:
    def test_sixth_quote_is_rate_limited(self, gate):
        for _ in range(5):
            assert gate.evaluate(make_request()).allowed is True

        decision = gate.evaluate(make_request())
        assert decision.allowed is False
        assert decision.reason_code == DenialReason.RATE_LIMITED
        assert decision.http_status == 429
        assert decision.rate_limit.remaining == 0
        assert decision.rate_limit.retry_after_seconds == HOUR_MS // 1000

    def test_requests_denied_earlier_do_not_consume_quota(self, gate):
        for _ in range(3):
            gate.evaluate(make_request(origin="https://evil.example"))

        remaining = [gate.evaluate(make_request()).rate_limit.remaining for _ in range(5)]
        assert remaining == [4, 3, 2, 1, 0]

    def test_rate_limit_does_not_quarantine(self, gate):
        for _ in range(6):
            gate.evaluate(make_request())
        assert gate.rate_limiter.is_blocked("203.0.113.7") is False


class TestClientIp:
    @staticmethod
    def _request(headers: dict, client=("10.0.0.1", 50000)) -> Request:
        return Request(
            {
                "type": "http",
                "method": "POST",
                "path": "/submit/quote",
                "query_string": b"",
                "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
                "client": client,
            }
        )

    def test_first_forwarded_address_wins(self):
        request = self._request({"X-Forwarded-For": "203.0.113.7, 10.0.0.2"})
        assert get_client_ip(request) == "203.0.113.7"

    def test_real_ip_header(self):
        assert get_client_ip(self._request({"X-Real-IP": " 198.51.100.4 "})) == "198.51.100.4"

    def test_socket_peer_fallback(self):
        assert get_client_ip(self._request({})) == "10.0.0.1"
        assert get_client_ip(self._request({}, client=None)) == "unknown"
