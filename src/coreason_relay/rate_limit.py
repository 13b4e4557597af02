# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_relay

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Protocol

from coreason_relay.models import InboundRequest

RATE_LIMIT_MESSAGE = "Too many requests from this IP"


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of one admission check."""

    allowed: bool
    limit: int
    remaining: int
    reset_after: float
    window_seconds: float

    def headers(self) -> Dict[str, str]:
        """IETF draft RateLimit headers, plus Retry-After on rejection."""
        reset = str(max(0, math.ceil(self.reset_after)))
        headers = {
            "RateLimit-Policy": f"{self.limit};w={math.ceil(self.window_seconds)}",
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": reset,
        }
        if not self.allowed:
            headers["Retry-After"] = reset
        return headers


class RateLimiter(Protocol):
    """Admission control shared by all in-flight requests."""

    def hit(self, key: str) -> RateLimitDecision: ...


@dataclass
class _Window:
    started_at: float
    count: int


class FixedWindowRateLimiter:
    """
    Counts hits per key in fixed windows.
    Safe to share across threads and tasks.
    """

    def __init__(self, limit: int, window_seconds: float, clock: Callable[[], float] = time.monotonic):
        if limit <= 0:
            raise ValueError("limit must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._lock = threading.Lock()
        self._last_prune = clock()

    def hit(self, key: str) -> RateLimitDecision:
        with self._lock:
            now = self._clock()
            self._prune(now)

            window = self._windows.get(key)
            if window is None or now - window.started_at >= self.window_seconds:
                window = _Window(started_at=now, count=0)
                self._windows[key] = window

            window.count += 1
            allowed = window.count <= self.limit
            return RateLimitDecision(
                allowed=allowed,
                limit=self.limit,
                remaining=max(0, self.limit - window.count),
                reset_after=window.started_at + self.window_seconds - now,
                window_seconds=self.window_seconds,
            )

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)

    def _prune(self, now: float) -> None:
        # Caller holds the lock
        if now - self._last_prune < self.window_seconds:
            return
        expired = [k for k, w in self._windows.items() if now - w.started_at >= self.window_seconds]
        for k in expired:
            del self._windows[k]
        self._last_prune = now


def rate_limit_key(inbound: InboundRequest, trusted_hops: int = 1) -> str:
    """
    Client identity used for rate limiting.

    With ``trusted_hops`` reverse proxies in front of us, the client is the
    entry that many places from the right of X-Forwarded-For. Entries further
    left are client-supplied and not trusted.
    """
    if trusted_hops > 0:
        chain = [hop.strip() for hop in inbound.headers.get("x-forwarded-for", "").split(",") if hop.strip()]
        if chain:
            return chain[-min(trusted_hops, len(chain))]
    return inbound.client_address or "unknown"
