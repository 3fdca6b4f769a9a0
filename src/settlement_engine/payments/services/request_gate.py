"""Request Gate - Per-caller sliding-window rate limiting.

Callers are identified by a fingerprint (client IP + user agent). The gate
runs before any provider call. Counters live in a CounterStore: Redis when
several API instances must share the window, memory otherwise.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections import defaultdict
from typing import Callable, Protocol

import redis

from settlement_engine.payments.config import RateLimitConfig
from settlement_engine.payments.errors import Rejection, RejectionKind

logger = logging.getLogger(__name__)


def client_fingerprint(ip: str | None, user_agent: str | None) -> str:
    """Fingerprint used as the rate-limit key."""
    return f"{user_agent or 'unknown'}-{ip or 'unknown'}"


class CounterStore(Protocol):
    """Sliding-window hit counter."""

    def hit(self, key: str, now: float, window_seconds: int, limit: int) -> bool:
        """Record a hit if the window has room. Returns True if allowed."""
        ...


class MemoryCounterStore:
    """Process-local counters. Not shared between API instances."""

    def __init__(self) -> None:
        self._hits: dict[str, list[float]] = defaultdict(list)
        self._lock = threading.Lock()
        self._last_sweep = 0.0

    def __len__(self) -> int:
        """Number of keys currently tracked."""
        return len(self._hits)

    def hit(self, key: str, now: float, window_seconds: int, limit: int) -> bool:
        window_start = now - window_seconds
        with self._lock:
            if now - self._last_sweep >= window_seconds:
                self._drop_idle(window_start)
                self._last_sweep = now
            recent = [t for t in self._hits[key] if t > window_start]
            if len(recent) >= limit:
                self._hits[key] = recent
                return False
            recent.append(now)
            self._hits[key] = recent
            return True

    def _drop_idle(self, window_start: float) -> None:
        """Forget keys with no hit inside the window. Caller holds the lock."""
        idle = [key for key, hits in self._hits.items() if not hits or hits[-1] <= window_start]
        for key in idle:
            del self._hits[key]


class RedisCounterStore:
    """Counters in a Redis sorted set per key, scored by hit time.

    If Redis is unreachable the gate lets the request through and logs the
    failure; verification itself stays safe without the gate.
    """

    def __init__(self, client: redis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> RedisCounterStore:
        return cls(redis.Redis.from_url(url))

    def hit(self, key: str, now: float, window_seconds: int, limit: int) -> bool:
        member = f"{now:.6f}:{uuid.uuid4().hex}"
        try:
            pipe = self.client.pipeline(transaction=True)
            pipe.zremrangebyscore(key, 0, now - window_seconds)
            pipe.zadd(key, {member: now})
            pipe.zcard(key)
            pipe.expire(key, window_seconds)
            _, _, count, _ = pipe.execute()
            if count > limit:
                self.client.zrem(key, member)
                return False
            return True
        except redis.RedisError:
            logger.exception("Rate limit store unavailable; allowing request")
            return True


class RequestGate:
    """Rejects callers that exceed the configured request rate."""

    def __init__(
        self,
        store: CounterStore | None = None,
        config: RateLimitConfig | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store or MemoryCounterStore()
        self.config = config or RateLimitConfig()
        self.clock = clock

    def check(self, fingerprint: str) -> None:
        """Count a request for `fingerprint`.

        Raises:
            Rejection: RATE_LIMITED if the window is full
        """
        allowed = self.store.hit(
            f"{self.config.key_prefix}:{fingerprint}",
            self.clock(),
            self.config.window_seconds,
            self.config.max_requests,
        )
        if not allowed:
            logger.warning("Rate limit exceeded for %s", fingerprint)
            raise Rejection(RejectionKind.RATE_LIMITED, f"rate limit exceeded for {fingerprint}")
