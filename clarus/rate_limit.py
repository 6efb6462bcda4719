"""
Rate limiting for API protection.

Two layers:
- slowapi limits every request per IP address (coarse, global)
- FixedWindowRateLimiter limits named route buckets per caller, backed by an
  injectable RateStore so the counters can live outside the process
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from .config import config, state

logger = logging.getLogger(__name__)


def get_rate_limit() -> str:
    """Get rate limit from config, defaulting to 60/minute."""
    limit = config.RATE_LIMIT_PER_MINUTE
    if limit <= 0:
        # Rate limiting disabled
        return "1000000/minute"  # Effectively unlimited
    return f"{limit}/minute"


# Create limiter with IP-based key
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[get_rate_limit()],
    storage_uri="memory://",  # In-memory storage (resets on restart)
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Custom handler for rate limit exceeded errors."""
    return JSONResponse(
        status_code=429,
        content={
            "detail": f"Rate limit exceeded: {exc.detail}",
            "retry_after": getattr(exc, "retry_after", 60),
        },
        headers={"Retry-After": str(getattr(exc, "retry_after", 60))},
    )


def setup_rate_limiting(app):
    """
    Configure rate limiting for a FastAPI app.

    Call this during app startup to enable rate limiting.
    """
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


# ─────────────────────────────────────────────────────────────
# Fixed-window bucket limiter
# ─────────────────────────────────────────────────────────────

@dataclass
class WindowEntry:
    count: int
    reset_at_ms: int


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_in_ms: int


class RateStore(ABC):
    """Storage for fixed-window counters."""

    @abstractmethod
    def get(self, key: str) -> WindowEntry | None:
        pass

    @abstractmethod
    def set(self, key: str, entry: WindowEntry) -> None:
        pass

    @abstractmethod
    def evict_expired(self, now_ms: int) -> int:
        """Remove expired windows and return how many were removed."""
        pass

    @abstractmethod
    def size(self) -> int:
        pass


class InMemoryRateStore(RateStore):
    """Process-local store; counters reset when the process restarts."""

    def __init__(self):
        self._entries: dict[str, WindowEntry] = {}

    def get(self, key: str) -> WindowEntry | None:
        return self._entries.get(key)

    def set(self, key: str, entry: WindowEntry) -> None:
        self._entries[key] = entry

    def evict_expired(self, now_ms: int) -> int:
        expired = [k for k, e in self._entries.items() if e.reset_at_ms <= now_ms]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def size(self) -> int:
        return len(self._entries)


def _now_ms() -> int:
    return int(time.time() * 1000)


class FixedWindowRateLimiter:
    """
    Fixed-window request counter keyed by caller + bucket.

    Windows reset lazily on the first access after expiry. The store is swept
    every ``sweep_every`` calls, or sooner once it grows past ``max_entries``.
    """

    def __init__(
        self,
        store: RateStore | None = None,
        sweep_every: int = 1000,
        max_entries: int = 10_000,
        clock: Callable[[], int] = _now_ms,
    ):
        self.store = store or InMemoryRateStore()
        self.sweep_every = sweep_every
        self.max_entries = max_entries
        self._clock = clock
        self._calls = 0

    def _maybe_sweep(self, now_ms: int) -> None:
        self._calls += 1
        if self._calls >= self.sweep_every or self.store.size() > self.max_entries:
            self._calls = 0
            evicted = self.store.evict_expired(now_ms)
            if evicted:
                logger.debug(f"Evicted {evicted} expired rate limit windows")

    def check(self, key: str, max_requests: int, window_ms: int) -> RateLimitResult:
        """Count one request against ``key`` and report whether it is allowed."""
        now = self._clock()
        self._maybe_sweep(now)

        entry = self.store.get(key)
        if entry is None or entry.reset_at_ms <= now:
            entry = WindowEntry(count=1, reset_at_ms=now + window_ms)
            self.store.set(key, entry)
            return RateLimitResult(True, max_requests - 1, window_ms)

        reset_in = entry.reset_at_ms - now
        if entry.count >= max_requests:
            return RateLimitResult(False, 0, reset_in)

        entry.count += 1
        self.store.set(key, entry)
        return RateLimitResult(True, max_requests - entry.count, reset_in)


def rate_limit(bucket: str, max_requests: int, window_ms: int = 60_000):
    """
    Build a FastAPI dependency that limits a route bucket per client IP.

    Usage:
        @router.post("/x", dependencies=[Depends(rate_limit("translate", 20))])
    """
    def dependency(request: Request) -> None:
        limiter_ = state.rate_limiter
        if limiter_ is None:
            return
        key = f"{bucket}:{get_remote_address(request)}"
        result = limiter_.check(key, max_requests, window_ms)
        if not result.allowed:
            retry_after = max(1, result.reset_in_ms // 1000)
            raise HTTPException(
                status_code=429,
                detail=f"Too many {bucket} requests. Try again in {retry_after}s.",
                headers={"Retry-After": str(retry_after)},
            )

    return dependency
