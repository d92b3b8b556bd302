"""
MODULE OVERVIEW:
Sliding-window rate limiting with an injected store.

WHAT IS HAPPENING HERE:
For every key (usually a client IP) we remember the timestamps of requests in
the last `window_ms`. A request is rejected once the window already holds
`max_requests`. The store is passed in by whoever owns the limiter, and it
evicts expired entries when they are read, so there is no module-level map and
no background cleanup timer. Tests get a fresh store per limiter for free.
"""
import math
import time
from dataclasses import dataclass, field
from typing import Callable, Protocol


@dataclass
class WindowEntry:
    requests: list[float] = field(default_factory=list)
    expires_at: float = 0.0


class RateLimitStore(Protocol):
    def get(self, key: str, now: float) -> WindowEntry | None: ...

    def set(self, key: str, entry: WindowEntry) -> None: ...


class InMemoryRateLimitStore:
    def __init__(self):
        self._entries: dict[str, WindowEntry] = {}

    def get(self, key: str, now: float) -> WindowEntry | None:
        entry = self._entries.get(key)
        if entry is not None and entry.expires_at <= now:
            del self._entries[key]
            return None
        return entry

    def set(self, key: str, entry: WindowEntry) -> None:
        self._entries[key] = entry

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after_s: int = 0
    reset_at: float = 0.0


class SlidingWindowRateLimiter:
    def __init__(
        self,
        max_requests: int,
        window_ms: float,
        store: RateLimitStore | None = None,
        clock: Callable[[], float] = time.time,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window_ms <= 0:
            raise ValueError("window_ms must be > 0")
        self.max_requests = max_requests
        self.window_ms = window_ms
        self.store = store if store is not None else InMemoryRateLimitStore()
        self._clock = clock

    @property
    def window_s(self) -> float:
        return self.window_ms / 1000

    def check(self, key: str) -> RateLimitDecision:
        """Record a request for `key` if there is room in the window."""
        now = self._clock()
        window_start = now - self.window_s

        entry = self.store.get(key, now)
        if entry is None:
            entry = WindowEntry()
        entry.requests = [ts for ts in entry.requests if ts > window_start]

        if len(entry.requests) >= self.max_requests:
            oldest = entry.requests[0]
            reset_at = oldest + self.window_s
            self.store.set(key, entry)
            return RateLimitDecision(
                allowed=False,
                limit=self.max_requests,
                remaining=0,
                retry_after_s=max(1, math.ceil(reset_at - now)),
                reset_at=reset_at,
            )

        entry.requests.append(now)
        entry.expires_at = now + self.window_s
        self.store.set(key, entry)
        return RateLimitDecision(
            allowed=True,
            limit=self.max_requests,
            remaining=self.max_requests - len(entry.requests),
            reset_at=entry.requests[0] + self.window_s,
        )


# (max_requests, window_ms)
RATE_LIMIT_PRESETS: dict[str, tuple[int, int]] = {
    "STRICT": (10, 60_000),
    "STANDARD": (60, 60_000),
    "GENEROUS": (100, 60_000),
    "PUBLIC_API": (1000, 3_600_000),
    "HEAVY": (5, 60_000),
}


def create_rate_limiter(preset: str, store: RateLimitStore | None = None) -> SlidingWindowRateLimiter:
    try:
        max_requests, window_ms = RATE_LIMIT_PRESETS[preset.upper()]
    except KeyError:
        raise ValueError(f"Unknown rate limit preset: {preset}") from None
    return SlidingWindowRateLimiter(max_requests, window_ms, store=store)
