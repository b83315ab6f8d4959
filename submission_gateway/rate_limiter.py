"""
Fixed-window rate limiting with a pluggable record store

The in-memory store serves a single process; the Redis store shares counters
between instances. Counters are fixed windows, so a client can burst up to
twice the limit across a window edge, and two concurrent requests on the same
key may both read the pre-increment count. Both are accepted trade-offs.
"""

import logging
import os
import time
from threading import Lock
from typing import Callable, Optional, Protocol

import redis
from pydantic import BaseModel, ConfigDict

from .config import RATE_LIMIT_BACKEND, RATE_LIMITS, RateLimitRule

logger = logging.getLogger(__name__)

# Redis connection
redis_client: Optional[redis.Redis] = None

MEMORY_CACHE_CLEANUP_INTERVAL_MS = 60 * 1000  # Clean up expired entries every 60 seconds


def now_ms() -> float:
    return time.time() * 1000


class RateLimitRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    count: int
    window_reset_at: float
    blocked_until: Optional[float] = None

    def expires_at(self) -> float:
        return max(self.window_reset_at, self.blocked_until or 0)

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, raw: str) -> "RateLimitRecord":
        return cls.model_validate_json(raw)


class RateLimitResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    allowed: bool
    remaining: int
    reset_in_ms: int
    limit: int

    @property
    def retry_after_seconds(self) -> int:
        return max(0, -(-self.reset_in_ms // 1000))


class RateLimitStore(Protocol):
    def get(self, key: str) -> Optional[RateLimitRecord]: ...

    def set(self, key: str, record: RateLimitRecord) -> None: ...


class InMemoryRateLimitStore:
    """Process-local store. Expired records are swept lazily."""

    def __init__(self, clock: Callable[[], float] = now_ms):
        self._records: dict[str, RateLimitRecord] = {}
        self._lock = Lock()
        self._clock = clock
        self._last_cleanup = 0.0

    def get(self, key: str) -> Optional[RateLimitRecord]:
        self._cleanup_expired()
        with self._lock:
            return self._records.get(key)

    def set(self, key: str, record: RateLimitRecord) -> None:
        with self._lock:
            self._records[key] = record

    def __len__(self) -> int:
        return len(self._records)

    def _cleanup_expired(self) -> None:
        current = self._clock()
        if current - self._last_cleanup < MEMORY_CACHE_CLEANUP_INTERVAL_MS:
            return

        with self._lock:
            expired_keys = [k for k, v in self._records.items() if current > v.expires_at()]
            for k in expired_keys:
                del self._records[k]

        if expired_keys:
            logger.debug(f"🧹 Cleaned up {len(expired_keys)} expired rate limit entries")

        self._last_cleanup = current


class RedisRateLimitStore:
    """Shared store: one JSON record per key, expiring with its window or block"""

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        prefix: str = "rate_limit",
        clock: Callable[[], float] = now_ms,
    ):
        self._client_override = client
        self.prefix = prefix
        self._clock = clock

    @property
    def client(self) -> redis.Redis:
        # Connect lazily so a Redis outage fails requests, not application startup
        if self._client_override is not None:
            return self._client_override
        return get_redis_client()

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    def get(self, key: str) -> Optional[RateLimitRecord]:
        raw = self.client.get(self._key(key))
        if not raw:
            return None
        return RateLimitRecord.from_json(raw)

    def set(self, key: str, record: RateLimitRecord) -> None:
        ttl_ms = max(1, int(record.expires_at() - self._clock()))
        self.client.set(self._key(key), record.to_json(), px=ttl_ms)


def get_redis_client() -> redis.Redis:
    """
    Get or create Redis client
    Supports both a REDIS_URL (managed Redis) and individual REDIS_* settings
    """
    global redis_client

    if redis_client is None:
        logger.info("🔄 Initializing Redis connection for rate limiting...")
        redis_url = os.getenv("REDIS_URL")

        if redis_url:
            redis_client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=15,
                socket_timeout=30,
                retry_on_timeout=True,
                health_check_interval=30,
            )
        else:
            redis_host = os.getenv("REDIS_HOST", "localhost")
            redis_port = int(os.getenv("REDIS_PORT", "6379"))
            redis_ssl = os.getenv("REDIS_SSL", "false").lower() == "true"
            logger.info(f"📡 Using Redis at {redis_host}:{redis_port} (SSL: {redis_ssl})")
            redis_client = redis.Redis(
                host=redis_host,
                port=redis_port,
                password=os.getenv("REDIS_PASSWORD"),
                db=int(os.getenv("REDIS_DB", "0")),
                ssl=redis_ssl,
                decode_responses=True,
                socket_connect_timeout=15,
                socket_timeout=30,
                retry_on_timeout=True,
                health_check_interval=30,
            )

        try:
            redis_client.ping()
            logger.info("Redis connected successfully")
        except Exception as e:
            logger.error(f"❌ Failed to connect to Redis: {str(e)}")
            redis_client = None
            raise

    return redis_client


class RateLimiter:
    """
    Keyed fixed-window counter.

    Counters are keyed by ``{client}:{action}``; quarantine records are keyed by
    ``block:{client}`` so a block covers every action of that client.
    """

    def __init__(
        self,
        store: Optional[RateLimitStore] = None,
        rules: Optional[dict[str, RateLimitRule]] = None,
        clock: Callable[[], float] = now_ms,
    ):
        self.clock = clock
        self.store = store if store is not None else InMemoryRateLimitStore(clock=clock)
        self.rules = dict(rules if rules is not None else RATE_LIMITS)

    def rule_for(self, action: str) -> RateLimitRule:
        return self.rules.get(action) or self.rules["default"]

    def check_and_consume(self, client_key: str, action: str) -> RateLimitResult:
        """
        Admit or deny one request for (client_key, action).

        Returns:
            RateLimitResult with the remaining quota and time until the window resets
        """
        rule = self.rule_for(action)
        key = f"{client_key}:{action}"
        current = self.clock()
        record = self.store.get(key)

        if record is None or current > record.window_reset_at:
            if rule.max_requests <= 0:
                return RateLimitResult(
                    allowed=False, remaining=0, reset_in_ms=rule.window_ms, limit=rule.max_requests
                )
            self.store.set(key, RateLimitRecord(count=1, window_reset_at=current + rule.window_ms))
            return RateLimitResult(
                allowed=True,
                remaining=rule.max_requests - 1,
                reset_in_ms=rule.window_ms,
                limit=rule.max_requests,
            )

        reset_in_ms = int(record.window_reset_at - current)

        if record.count >= rule.max_requests:
            logger.debug(f"Rate limit reached for {key}: {record.count}/{rule.max_requests}")
            return RateLimitResult(
                allowed=False, remaining=0, reset_in_ms=reset_in_ms, limit=rule.max_requests
            )

        updated = RateLimitRecord(count=record.count + 1, window_reset_at=record.window_reset_at)
        self.store.set(key, updated)
        return RateLimitResult(
            allowed=True,
            remaining=rule.max_requests - updated.count,
            reset_in_ms=reset_in_ms,
            limit=rule.max_requests,
        )

    def block(self, client_key: str, duration_ms: int) -> None:
        """Quarantine a client regardless of its counters"""
        until = self.clock() + duration_ms
        self.store.set(
            f"block:{client_key}",
            RateLimitRecord(count=0, window_reset_at=until, blocked_until=until),
        )
        logger.warning(f"🚫 Blocked {client_key} for {duration_ms // 1000}s")

    def is_blocked(self, client_key: str) -> bool:
        record = self.store.get(f"block:{client_key}")
        if record is None or record.blocked_until is None:
            return False
        return self.clock() < record.blocked_until


def build_rate_limiter() -> RateLimiter:
    """Create the limiter for the configured backend"""
    if RATE_LIMIT_BACKEND == "redis":
        logger.info("Rate limiting backed by Redis")
        return RateLimiter(store=RedisRateLimitStore())

    logger.info("Rate limiting backed by in-process memory")
    return RateLimiter()
