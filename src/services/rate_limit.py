"""
src/services/rate_limit.py — Sliding-window admission gate for /api/generate.

Each call drops timestamps older than the window before counting, so the
quota refills continuously rather than resetting on a fixed bucket boundary.
State lives in a RateLimitStore; the default store is a per-process dict,
which is only correct for a single-instance deployment.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Protocol


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int


class RateLimitStore(Protocol):
    def get(self, key: str) -> list[float]: ...

    def set(self, key: str, timestamps: list[float]) -> None: ...

    def prune(self, cutoff: float) -> None:
        """Forget keys whose newest timestamp is older than cutoff."""


class InMemoryRateLimitStore:
    def __init__(self):
        self._hits: dict[str, list[float]] = {}

    def get(self, key: str) -> list[float]:
        return list(self._hits.get(key, []))

    def set(self, key: str, timestamps: list[float]) -> None:
        self._hits[key] = timestamps

    def prune(self, cutoff: float) -> None:
        stale = [k for k, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for key in stale:
            del self._hits[key]

    def __len__(self) -> int:
        return len(self._hits)


class SlidingWindowRateLimiter:
    def __init__(
        self,
        store: RateLimitStore | None = None,
        window_seconds: float = 60.0,
        max_requests: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store if store is not None else InMemoryRateLimitStore()
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self._clock = clock
        self._lock = threading.Lock()

    def admit(self, key: str) -> RateLimitDecision:
        with self._lock:
            now = self._clock()
            self.store.prune(now - self.window_seconds)
            timestamps = [t for t in self.store.get(key) if now - t < self.window_seconds]

            if len(timestamps) >= self.max_requests:
                self.store.set(key, timestamps)
                return RateLimitDecision(allowed=False, remaining=0)

            timestamps.append(now)
            self.store.set(key, timestamps)
            return RateLimitDecision(
                allowed=True, remaining=self.max_requests - len(timestamps)
            )


def client_key(forwarded_for: str | None, peer_host: str | None) -> str:
    """First X-Forwarded-For hop, else the socket peer, else "unknown"."""
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    return peer_host or "unknown"
