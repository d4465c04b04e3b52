"""
Fixed-window rate limiter for API keys.

Each key has two independent windows:
  • minute — 60 000 ms
  • day    — 86 400 000 ms

A window starts at the key's FIRST hit (not at a clock boundary) and
lasts the window length; once `now` passes reset_at the next hit starts a fresh
window with count = 1. This is a fixed-window counter, not a sliding
window: a client can burst up to 2× the limit across a window boundary.

Check order per request:
  1. minute window — on reject, STOP (the day counter is not touched)
  2. day window    — on reject, the minute hit above has already counted

Counters live behind the CounterStore protocol. The in-memory store is
process-local and lost on restart; multi-instance deployments need a shared
store and do not get cross-instance consistency from this module.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)

MINUTE_MS = 60_000
DAY_MS = 86_400_000

WINDOW_MINUTE = "minute"
WINDOW_DAY = "day"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(slots=True)
class CounterWindow:
    count: int
    reset_at: int  # epoch ms


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    allowed: bool
    window: str | None = None  # which window rejected
    retry_after: int | None = None  # seconds until that window resets


class CounterStore(Protocol):
    def get(self, key: str) -> CounterWindow | None: ...

    def set(self, key: str, window: CounterWindow) -> None: ...

    def increment(self, key: str) -> int: ...

    def sweep(self, now: int) -> int: ...


class InMemoryCounterStore:
    """Dict-backed counters. Not safe on its own — callers hold the limiter lock."""

    def __init__(self) -> None:
        self._windows: dict[str, CounterWindow] = {}

    def get(self, key: str) -> CounterWindow | None:
        return self._windows.get(key)

    def set(self, key: str, window: CounterWindow) -> None:
        self._windows[key] = window

    def increment(self, key: str) -> int:
        window = self._windows[key]
        window.count += 1
        return window.count

    def sweep(self, now: int) -> int:
        """Drop windows that have already reset. Returns how many were dropped."""
        expired = [key for key, window in self._windows.items() if now >= window.reset_at]
        for key in expired:
            del self._windows[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._windows)


class FixedWindowRateLimiter:
    """Per-key minute + day limiter over a CounterStore.

    The whole check-and-increment sequence for one request runs under a
    threading.Lock, so it is atomic for async handlers and threadpool
    handlers alike.
    """

    def __init__(self, store: CounterStore | None = None) -> None:
        self.store: CounterStore = store if store is not None else InMemoryCounterStore()
        self._lock = threading.Lock()

    def hit(
        self,
        key_id: str,
        per_minute: int,
        per_day: int,
        now: int | None = None,
    ) -> RateLimitDecision:
        """Count one request for key_id; reject if a window is already full."""
        now = now_ms() if now is None else now
        with self._lock:
            retry_after = self._hit_window(f"{key_id}:{WINDOW_MINUTE}", per_minute, MINUTE_MS, now)
            if retry_after is not None:
                return RateLimitDecision(False, WINDOW_MINUTE, retry_after)
            retry_after = self._hit_window(f"{key_id}:{WINDOW_DAY}", per_day, DAY_MS, now)
            if retry_after is not None:
                return RateLimitDecision(False, WINDOW_DAY, retry_after)
        return RateLimitDecision(True)

    def _hit_window(self, key: str, limit: int, length_ms: int, now: int) -> int | None:
        """Returns None when allowed, else retry-after seconds."""
        window = self.store.get(key)
        if window is None or now >= window.reset_at:
            self.store.set(key, CounterWindow(count=1, reset_at=now + length_ms))
            return None
        if window.count >= limit:
            return math.ceil((window.reset_at - now) / 1000)
        self.store.increment(key)
        return None

    def sweep(self, now: int | None = None) -> int:
        now = now_ms() if now is None else now
        with self._lock:
            removed = self.store.sweep(now)
        if removed:
            logger.debug("Swept %d expired rate-limit windows", removed)
        return removed
