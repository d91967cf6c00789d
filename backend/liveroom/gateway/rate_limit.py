from __future__ import annotations

import asyncio
from dataclasses import dataclass

from liveroom.core.config import (
    RATE_LIMIT_API_MAX,
    RATE_LIMIT_API_WINDOW_SEC,
    RATE_LIMIT_AUTH_MAX,
    RATE_LIMIT_AUTH_WINDOW_SEC,
    RATE_LIMIT_INTERVIEW_MAX,
    RATE_LIMIT_INTERVIEW_WINDOW_SEC,
)


@dataclass(frozen=True)
class RateLimitRule:
    window_sec: float
    max_requests: int
    message: str


DEFAULT_RULES = {
    "api": RateLimitRule(
        RATE_LIMIT_API_WINDOW_SEC,
        RATE_LIMIT_API_MAX,
        "Too many requests from this IP, please try again later.",
    ),
    "auth": RateLimitRule(
        RATE_LIMIT_AUTH_WINDOW_SEC,
        RATE_LIMIT_AUTH_MAX,
        "Too many authentication attempts, please try again later.",
    ),
    "interview": RateLimitRule(
        RATE_LIMIT_INTERVIEW_WINDOW_SEC,
        RATE_LIMIT_INTERVIEW_MAX,
        "Interview creation rate limit exceeded, please try again later.",
    ),
}


class FixedWindowRateLimiter:
    """Per-identity request counters, reset when the window elapses."""

    def __init__(self, rule: RateLimitRule, max_buckets: int = 10000):
        self.rule = rule
        self.max_buckets = max(100, int(max_buckets))
        self._lock = asyncio.Lock()
        self._buckets: dict[str, dict[str, float]] = {}

    async def hit(self, identity: str, now_ts: float) -> tuple[bool, int]:
        """Count one request; returns (blocked, retry_after_sec)."""
        async with self._lock:
            bucket = self._buckets.get(identity)
            if bucket is None:
                self._buckets[identity] = {"window_start": now_ts, "count": 1}
                self._prune(now_ts)
                return False, 0

            window_start = float(bucket.get("window_start") or now_ts)
            elapsed = now_ts - window_start
            if elapsed >= self.rule.window_sec:
                bucket["window_start"] = now_ts
                bucket["count"] = 1
                return False, 0

            count = int(bucket.get("count") or 0)
            if count >= self.rule.max_requests:
                return True, max(1, int(self.rule.window_sec - elapsed))

            bucket["count"] = count + 1
            return False, 0

    def _prune(self, now_ts: float) -> None:
        if len(self._buckets) <= self.max_buckets:
            return
        stale_keys = [
            key
            for key, value in self._buckets.items()
            if now_ts - float((value or {}).get("window_start") or now_ts) > (self.rule.window_sec * 2)
        ]
        for key in stale_keys[:3000]:
            self._buckets.pop(key, None)


def build_limiters(rules: dict[str, RateLimitRule] | None = None) -> dict[str, FixedWindowRateLimiter]:
    return {name: FixedWindowRateLimiter(rule) for name, rule in (rules or DEFAULT_RULES).items()}
