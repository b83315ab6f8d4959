"""Tests for the fixed-window rate limiter and its record stores."""

import pytest
from pydantic import ValidationError

from submission_gateway.config import HOUR_MS, MINUTE_MS, RateLimitRule
from submission_gateway.rate_limiter import (
    MEMORY_CACHE_CLEANUP_INTERVAL_MS,
    InMemoryRateLimitStore,
    RateLimiter,
    RateLimitRecord,
    RateLimitResult,
    RedisRateLimitStore,
)

RULES = {
    "quote": RateLimitRule(max_requests=5, window_ms=HOUR_MS),
    "default": RateLimitRule(max_requests=30, window_ms=MINUTE_MS),
}


@pytest.fixture
def limiter(clock) -> RateLimiter:
    return RateLimiter(rules=RULES, clock=clock)


class FakeRedis:
    """Just enough of redis.Redis for the store: get and set with px"""

    def __init__(self):
        self.values: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    def get(self, key):
        return self.values.get(key)

    def set(self, key, value, px=None):
        self.values[key] = value
        self.ttls[key] = px


class TestFixedWindow:
    """Admission within one window"""

    def test_five_quotes_then_denied(self, limiter):
        """5 calls from one IP all succeed with remaining 4..0, the 6th is denied."""
        remaining = [limiter.check_and_consume("1.2.3.4", "quote").remaining for _ in range(5)]
        assert remaining == [4, 3, 2, 1, 0]

        sixth = limiter.check_and_consume("1.2.3.4", "quote")
        assert sixth.allowed is False
        assert sixth.remaining == 0
        assert sixth.reset_in_ms == HOUR_MS

    def test_denied_requests_do_not_extend_window(self, limiter, clock):
        for _ in range(5):
            limiter.check_and_consume("1.2.3.4", "quote")
        clock.advance(10 * MINUTE_MS)

        denied = limiter.check_and_consume("1.2.3.4", "quote")
        assert denied.allowed is False
        assert denied.reset_in_ms == HOUR_MS - 10 * MINUTE_MS

    def test_unknown_action_uses_default_rule(self, limiter):
        result = limiter.check_and_consume("1.2.3.4", "newsletter")
        assert result.allowed is True
        assert result.limit == 30
        assert result.remaining == 29

    def test_clients_and_actions_are_counted_separately(self, limiter):
        for _ in range(5):
            limiter.check_and_consume("1.2.3.4", "quote")

        assert limiter.check_and_consume("5.6.7.8", "quote").allowed is True
        assert limiter.check_and_consume("1.2.3.4", "feedback").allowed is True
        assert limiter.check_and_consume("1.2.3.4", "quote").allowed is False

    def test_zero_limit_denies_everything(self, clock):
        limiter = RateLimiter(
            rules={"default": RateLimitRule(max_requests=0, window_ms=MINUTE_MS)}, clock=clock
        )
        assert limiter.check_and_consume("1.2.3.4", "anything").allowed is False


class TestWindowReset:
    """Window expiry"""

    def test_still_denied_at_exact_reset_time(self, limiter, clock):
        for _ in range(6):
            limiter.check_and_consume("1.2.3.4", "quote")
        clock.advance(HOUR_MS)

        assert limiter.check_and_consume("1.2.3.4", "quote").allowed is False

    def test_new_window_after_reset(self, limiter, clock):
        for _ in range(6):
            limiter.check_and_consume("1.2.3.4", "quote")
        clock.advance(HOUR_MS + 1)

        result = limiter.check_and_consume("1.2.3.4", "quote")
        assert result.allowed is True
        assert result.remaining == 4
        assert result.reset_in_ms == HOUR_MS

        record = limiter.store.get("1.2.3.4:quote")
        assert record.count == 1
        assert record.window_reset_at == clock() + HOUR_MS


class TestBlocking:
    def test_block_covers_every_action_until_expiry(self, limiter, clock):
        limiter.block("9.9.9.9", HOUR_MS)
        assert limiter.is_blocked("9.9.9.9") is True
        assert limiter.is_blocked("1.2.3.4") is False

        clock.advance(HOUR_MS - 1)
        assert limiter.is_blocked("9.9.9.9") is True

        clock.advance(1)
        assert limiter.is_blocked("9.9.9.9") is False

    def test_block_does_not_touch_counters(self, limiter):
        limiter.check_and_consume("9.9.9.9", "quote")
        limiter.block("9.9.9.9", HOUR_MS)

        assert limiter.store.get("9.9.9.9:quote").count == 1


class TestRateLimitResult:
    def test_retry_after_rounds_up_to_whole_seconds(self):
        assert RateLimitResult(allowed=False, remaining=0, reset_in_ms=1500, limit=5).retry_after_seconds == 2
        assert RateLimitResult(allowed=False, remaining=0, reset_in_ms=2000, limit=5).retry_after_seconds == 2
        assert RateLimitResult(allowed=False, remaining=0, reset_in_ms=0, limit=5).retry_after_seconds == 0

    def test_records_are_immutable(self):
        record = RateLimitRecord(count=1, window_reset_at=1_000)

        with pytest.raises(ValidationError):
            record.count = 2
        assert RateLimitRecord.from_json(record.to_json()) == record


class TestInMemoryStore:
    def test_expired_records_are_swept(self, clock):
        store = InMemoryRateLimitStore(clock=clock)
        store.set("a:quote", RateLimitRecord(count=1, window_reset_at=clock() + 1000))
        store.set("b:quote", RateLimitRecord(count=1, window_reset_at=clock() + 10 * HOUR_MS))

        clock.advance(MEMORY_CACHE_CLEANUP_INTERVAL_MS + 2000)
        store.get("anything")

        assert len(store) == 1
        assert store.get("b:quote") is not None

    def test_active_block_survives_sweep(self, clock):
        store = InMemoryRateLimitStore(clock=clock)
        until = clock() + 10 * HOUR_MS
        store.set("block:a", RateLimitRecord(count=0, window_reset_at=until, blocked_until=until))

        clock.advance(HOUR_MS)
        assert store.get("block:a") is not None


class TestRedisStore:
    def test_round_trips_records_with_ttl(self, clock):
        fake = FakeRedis()
        store = RedisRateLimitStore(fake, clock=clock)
        record = RateLimitRecord(count=3, window_reset_at=clock() + 5000)

        store.set("1.2.3.4:quote", record)

        assert fake.ttls["rate_limit:1.2.3.4:quote"] == 5000
        assert store.get("1.2.3.4:quote") == record
        assert store.get("missing") is None

    def test_limiter_over_redis_store(self, clock):
        limiter = RateLimiter(store=RedisRateLimitStore(FakeRedis(), clock=clock), rules=RULES, clock=clock)
        remaining = [limiter.check_and_consume("1.2.3.4", "quote").remaining for _ in range(5)]

        assert remaining == [4, 3, 2, 1, 0]
        assert limiter.check_and_consume("1.2.3.4", "quote").allowed is False
