"""
Sliding-window rate limiting per client IP and per license key.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from keygate.common.exceptions import RateLimitBackendError, RateLimitError

if TYPE_CHECKING:
    from collections.abc import Callable

    from starlette.requests import Request

    from keygate.common.interfaces import ISlidingWindowStore

logger = logging.getLogger(__name__)


class RateLimitClass(str, Enum):
    GENERAL = "general"
    ACTIVATION = "activation"
    LIST = "list"
    FAILED = "failed"


@dataclass(frozen=True)
class RateLimitResult:
    success: bool
    limit: int
    remaining: int
    reset: int  # Unix epoch milliseconds

    def retry_after(self, now: float | None = None) -> int:
        """Seconds until the window frees a slot, never less than one."""
        now_ms = (now if now is not None else time.time()) * 1000
        return max(1, math.ceil((self.reset - now_ms) / 1000))

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset),
        }


class InMemorySlidingWindowStore:
    """Thread-safe sliding log of hit timestamps per key.

    Keys whose hits have all left their window are dropped, either when the
    key is next touched or by a sweep run at most every ``sweep_interval``
    seconds.
    """

    def __init__(self, sweep_interval: float = 60.0) -> None:
        self._hits: dict[str, tuple[float, deque[float]]] = {}
        self._lock = threading.Lock()
        self.sweep_interval = sweep_interval
        self._next_sweep = 0.0

    def __len__(self) -> int:
        with self._lock:
            return len(self._hits)

    def _sweep(self, now: float) -> None:
        if now < self._next_sweep:
            return
        self._next_sweep = now + self.sweep_interval
        stale = [
            key
            for key, (window, hits) in self._hits.items()
            if not hits or now - hits[-1] >= window
        ]
        for key in stale:
            del self._hits[key]
        if stale:
            logger.debug("Dropped %d expired rate limit keys", len(stale))

    def _prune(self, key: str, window: float, now: float) -> deque[float]:
        self._sweep(now)
        _, hits = self._hits.get(key, (window, deque()))
        while hits and now - hits[0] >= window:
            hits.popleft()
        return hits

    def _save(self, key: str, window: float, hits: deque[float]) -> None:
        if hits:
            self._hits[key] = (window, hits)
        else:
            self._hits.pop(key, None)

    def hit(self, key: str, limit: int, window: float, now: float) -> tuple[bool, int, float]:
        """Record a hit if the window has room.

        Returns (allowed, remaining, reset_at) with reset_at in epoch seconds.
        """
        with self._lock:
            hits = self._prune(key, window, now)
            allowed = len(hits) < limit
            if allowed:
                hits.append(now)
            self._save(key, window, hits)
            reset_at = hits[0] + window if hits else now + window
            return allowed, max(0, limit - len(hits)), reset_at

    def peek(self, key: str, limit: int, window: float, now: float) -> tuple[bool, int, float]:
        """Same answer as ``hit`` without consuming a slot."""
        with self._lock:
            hits = self._prune(key, window, now)
            self._save(key, window, hits)
            reset_at = hits[0] + window if hits else now + window
            return len(hits) < limit, max(0, limit - len(hits)), reset_at

    def clear(self) -> None:
        with self._lock:
            self._hits.clear()


class RateLimiterService:
    """Applies the configured limits of each ``RateLimitClass``.

    Without a store the limiter is unconfigured and lets everything through;
    a store failure also lets the request through (fail open).
    """

    def __init__(
        self,
        store: ISlidingWindowStore | None,
        limits: dict[str, tuple[int, int]],
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.limits = limits
        self.clock = clock
        if store is None:
            logger.warning(
                "Rate limiting is not configured: all requests are allowed, "
                "including brute-force license key guessing"
            )

    @property
    def enabled(self) -> bool:
        return self.store is not None

    def _limit_for(self, cls: RateLimitClass) -> tuple[int, int]:
        return self.limits[cls.value]

    def _query(
        self, identifier: str, cls: RateLimitClass, *, consume: bool
    ) -> RateLimitResult | None:
        if self.store is None:
            return None
        limit, window = self._limit_for(cls)
        key = f"{cls.value}:{identifier}"
        now = self.clock()
        try:
            if consume:
                allowed, remaining, reset_at = self.store.hit(key, limit, window, now)
            else:
                allowed, remaining, reset_at = self.store.peek(key, limit, window, now)
        except RateLimitBackendError:
            logger.warning(
                "Rate limit store unavailable for class %s, allowing request",
                cls.value,
                exc_info=True,
            )
            return None
        return RateLimitResult(
            success=allowed,
            limit=limit,
            remaining=remaining,
            reset=int(reset_at * 1000),
        )

    def check(self, identifier: str, cls: RateLimitClass = RateLimitClass.GENERAL) -> RateLimitResult | None:
        """Count a request against ``cls``; ``None`` means unlimited."""
        return self._query(identifier, cls, consume=True)

    def enforce(self, identifier: str, cls: RateLimitClass = RateLimitClass.GENERAL) -> RateLimitResult | None:
        """Like ``check`` but raise ``RateLimitError`` when over the limit."""
        result = self.check(identifier, cls)
        if result is not None and not result.success:
            logger.info("Rate limit exceeded for class %s", cls.value)
            raise RateLimitError(rate_limit_message(result, self.clock()), result)
        return result

    def record_failed_attempt(self, license_key: str) -> None:
        """Count a lookup miss against the license key, independent of source IP."""
        self._query(license_key, RateLimitClass.FAILED, consume=True)

    def is_blocked(self, license_key: str) -> RateLimitResult | None:
        """Return the failed-attempt result if the key has no attempts left."""
        result = self._query(license_key, RateLimitClass.FAILED, consume=False)
        if result is not None and not result.success:
            return result
        return None


def rate_limit_message(result: RateLimitResult, now: float | None = None) -> str:
    return (
        f"Too many requests. Please try again in {result.retry_after(now)} seconds."
    )


def get_client_identifier(request: Request, *, trust_proxy_headers: bool = True) -> str:
    """Extract the client IP, honouring proxy headers when trusted."""
    if trust_proxy_headers:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"
