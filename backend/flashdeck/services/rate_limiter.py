"""
In-memory admission control.

Three interchangeable strategies share one contract:

  check_limit()        -> is an action permitted right now?
  record_usage(weight) -> account for an action that went ahead
  try_consume(weight)  -> check and record in one locked step

Each limiter instance belongs to one caller identity. LimiterRegistry maps
identities to instances and bounds how many it keeps alive.

Refill and expiry are computed lazily from a monotonic clock on every call;
there is no background timer.
"""
from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from collections.abc import Callable

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def _check_weight(weight: int) -> None:
    # A negative weight would refill a bucket past max_tokens
    if weight < 0:
        raise ValueError("weight must be non-negative")


class RateLimiter(ABC):
    def __init__(self, clock: Clock = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()

    def check_limit(self) -> bool:
        with self._lock:
            return self._allowed(self._clock())

    def record_usage(self, weight: int = 1) -> None:
        _check_weight(weight)
        with self._lock:
            self._record(self._clock(), weight)

    def try_consume(self, weight: int = 1) -> bool:
        """Atomic check_limit + record_usage. Records nothing when denied."""
        _check_weight(weight)
        with self._lock:
            now = self._clock()
            if not self._allowed(now):
                return False
            self._record(now, weight)
            return True

    def retry_after(self) -> float | None:
        """Seconds until one more action would be admitted; None if never."""
        with self._lock:
            return self._retry_after(self._clock())

    @abstractmethod
    def reset(self) -> None: ...

    @abstractmethod
    def _allowed(self, now: float) -> bool: ...

    @abstractmethod
    def _record(self, now: float, weight: int) -> None: ...

    @abstractmethod
    def _retry_after(self, now: float) -> float | None: ...


class NoopLimiter(RateLimiter):
    """Admits everything. Used where limiting is disabled."""

    def reset(self) -> None:
        pass

    def _allowed(self, now: float) -> bool:
        return True

    def _record(self, now: float, weight: int) -> None:
        pass

    def _retry_after(self, now: float) -> float | None:
        return None


class TokenBucketLimiter(RateLimiter):
    """
    Token bucket: starts full at max_tokens and refills continuously at
    refill_rate tokens per second, capped at max_tokens. An action is admitted
    while at least one whole token is available. A zero refill rate makes the
    bucket a one-time quota.
    """

    def __init__(
        self,
        max_tokens: float = 100,
        refill_rate: float = 10,
        clock: Clock = time.monotonic,
    ) -> None:
        if max_tokens < 0 or refill_rate < 0:
            raise ValueError("max_tokens and refill_rate must be non-negative")
        super().__init__(clock)
        self.max_tokens = float(max_tokens)
        self.refill_rate = float(refill_rate)
        self._tokens = self.max_tokens
        self._last_refill = clock()

    def current_tokens(self) -> float:
        with self._lock:
            self._refill(self._clock())
            return self._tokens

    def reset(self) -> None:
        with self._lock:
            self._tokens = self.max_tokens
            self._last_refill = self._clock()

    def _refill(self, now: float) -> None:
        elapsed = now - self._last_refill
        if elapsed <= 0:
            return
        self._tokens = min(self.max_tokens, self._tokens + elapsed * self.refill_rate)
        self._last_refill = now

    def _allowed(self, now: float) -> bool:
        self._refill(now)
        return self._tokens >= 1

    def _record(self, now: float, weight: int) -> None:
        self._refill(now)
        self._tokens = max(0.0, self._tokens - weight)

    def _retry_after(self, now: float) -> float | None:
        self._refill(now)
        if self._tokens >= 1:
            return 0.0
        if self.refill_rate == 0 or self.max_tokens < 1:
            return None
        return (1 - self._tokens) / self.refill_rate


class SlidingWindowLimiter(RateLimiter):
    """
    Sliding window: at most max_requests actions within the trailing
    window_seconds. Capacity comes back one request at a time as each recorded
    request ages out of the window.
    """

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 60.0,
        clock: Clock = time.monotonic,
    ) -> None:
        if max_requests < 0 or window_seconds <= 0:
            raise ValueError("max_requests must be >= 0 and window_seconds > 0")
        super().__init__(clock)
        self.max_requests = max_requests
        self.window_seconds = float(window_seconds)
        self._requests: list[float] = []

    def current_count(self) -> int:
        with self._lock:
            self._clean(self._clock())
            return len(self._requests)

    def reset(self) -> None:
        with self._lock:
            self._requests = []

    def _clean(self, now: float) -> None:
        cutoff = now - self.window_seconds
        self._requests = [ts for ts in self._requests if ts > cutoff]

    def _allowed(self, now: float) -> bool:
        self._clean(now)
        return len(self._requests) < self.max_requests

    def _record(self, now: float, weight: int) -> None:
        self._clean(now)
        self._requests.extend([now] * weight)

    def _retry_after(self, now: float) -> float | None:
        self._clean(now)
        if len(self._requests) < self.max_requests:
            return 0.0
        if self.max_requests == 0:
            return None
        # The request whose expiry brings the count back under the limit
        blocking = self._requests[len(self._requests) - self.max_requests]
        return blocking + self.window_seconds - now


class LimiterRegistry:
    """
    Identity -> limiter map with least-recently-used eviction beyond max_size
    and expiry of entries idle for longer than ttl_seconds.

    ttl_seconds should be at least as long as the limiter's window, otherwise
    an idle identity can come back with a fresh quota early.
    """

    def __init__(
        self,
        factory: Callable[[], RateLimiter],
        max_size: int = 10_000,
        ttl_seconds: float | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self._factory = factory
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: OrderedDict[str, tuple[RateLimiter, float]] = OrderedDict()

    def get(self, identity: str) -> RateLimiter:
        with self._lock:
            now = self._clock()
            self._expire(now)
            entry = self._entries.get(identity)
            if entry is not None:
                limiter = entry[0]
                self._entries.move_to_end(identity)
            else:
                limiter = self._factory()
            self._entries[identity] = (limiter, now)
            while len(self._entries) > self.max_size:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted rate limiter for %s (registry full)", evicted)
            return limiter

    def discard(self, identity: str) -> None:
        with self._lock:
            self._entries.pop(identity, None)

    def __contains__(self, identity: object) -> bool:
        with self._lock:
            self._expire(self._clock())
            return identity in self._entries

    def __len__(self) -> int:
        with self._lock:
            self._expire(self._clock())
            return len(self._entries)

    def _expire(self, now: float) -> None:
        if self.ttl_seconds is None:
            return
        # Entries are kept in access order, so expired ones sit at the front
        while self._entries:
            identity, (_, last_seen) = next(iter(self._entries.items()))
            if now - last_seen < self.ttl_seconds:
                break
            del self._entries[identity]


def sliding_window_registry(
    max_requests: int,
    window_seconds: float,
    *,
    enabled: bool = True,
    max_size: int = 10_000,
    ttl_seconds: float | None = None,
    clock: Clock = time.monotonic,
) -> LimiterRegistry:
    """Registry handing out one SlidingWindowLimiter per identity (Noop when disabled)."""
    if not enabled:
        return LimiterRegistry(lambda: NoopLimiter(clock), max_size=1, clock=clock)
    return LimiterRegistry(
        lambda: SlidingWindowLimiter(max_requests, window_seconds, clock),
        max_size=max_size,
        ttl_seconds=ttl_seconds,
        clock=clock,
    )
