"""
Fixed-Window Rate Limiting.

Each key (owner id or client IP) gets a counter in a fixed window. The
window opens on the key's first request and expires on its own; callers
never clear windows themselves.

    window_seconds=3600, max_requests=50

    t=0      request 1   -> allowed (window opens, 49 remaining)
    ...
    t=1200   request 50  -> allowed (0 remaining)
    t=1300   request 51  -> denied, retry_after=2300
    t=3600   request 52  -> allowed (new window)

Counting is done by the `limits` library: a FixedWindowRateLimiter over
an in-process MemoryStorage, which expires windows by itself.

Three independently configured instances share this class (RateLimiters):

    generate  generation requests per owner
    api       every /api/tts request per client IP
    auth      failed identity resolutions per client IP

Usage:
    limiter = RateLimiter("generate", window_seconds=3600, max_requests=50)
    decision = limiter.admit(owner_id)
    if not decision.allowed:
        raise RateLimitedError("Too many requests", decision.retry_after)
"""
from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Dict, Optional

from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter

from speechmagic.core.config import RateLimitsConfig
from speechmagic.core.logging import debug, get_logger, info

_LOG = get_logger("speechmagic.ratelimit")


@dataclass
class RateDecision:
    """
    Result of an admission check.

    Attributes:
        allowed: Whether the request may proceed.
        retry_after: Whole seconds until the window resets (0 when allowed).
        remaining: Requests left in the current window after this one.
        limit: Configured max_requests.
    """
    allowed: bool
    retry_after: int
    remaining: int
    limit: int


@dataclass
class RateLimiterStats:
    name: str
    window_seconds: int
    max_requests: int
    total_admitted: int
    total_rejected: int


class RateLimiter:
    """
    Per-key fixed-window request counter.

    Args:
        name: Label used in logs, metrics and as the storage namespace.
        window_seconds: Window length.
        max_requests: Requests admitted per key per window.
        storage: limits storage backend (a private MemoryStorage by default).
    """

    def __init__(
        self,
        name: str,
        window_seconds: int,
        max_requests: int,
        storage: Optional[MemoryStorage] = None,
    ):
        if window_seconds <= 0 or max_requests <= 0:
            raise ValueError("window_seconds and max_requests must be positive")
        self.name = name
        self.window_seconds = window_seconds
        self.max_requests = max_requests

        self._storage = storage or MemoryStorage()
        self._strategy = FixedWindowRateLimiter(self._storage)
        self._item = RateLimitItemPerSecond(max_requests, window_seconds, namespace=name)

        self._lock = threading.Lock()
        self._total_admitted = 0
        self._total_rejected = 0

    def _decision(self, key: str, allowed: bool) -> RateDecision:
        reset_time, remaining = self._strategy.get_window_stats(self._item, key)
        retry_after = 0 if allowed else max(1, math.ceil(reset_time - time.time()))
        return RateDecision(allowed=allowed, retry_after=retry_after, remaining=remaining, limit=self.max_requests)

    def admit(self, key: str) -> RateDecision:
        """
        Count one request for `key` and decide whether it may proceed.

        Rejections never extend the window.
        """
        with self._lock:
            allowed = self._strategy.hit(self._item, key)
            if allowed:
                self._total_admitted += 1
            else:
                self._total_rejected += 1
            decision = self._decision(key, allowed)
        if not allowed:
            debug(_LOG, "ratelimit_denied", limiter=self.name, retry_after=decision.retry_after)
        return decision

    def check(self, key: str) -> RateDecision:
        """Report whether `key` would be admitted, without counting."""
        return self._decision(key, self._strategy.test(self._item, key))

    def reset(self, key: Optional[str] = None) -> None:
        """Forget one key's window, or all of them."""
        if key is None:
            self._storage.reset()
        else:
            self._strategy.clear(self._item, key)

    def stats(self) -> RateLimiterStats:
        with self._lock:
            return RateLimiterStats(
                name=self.name,
                window_seconds=self.window_seconds,
                max_requests=self.max_requests,
                total_admitted=self._total_admitted,
                total_rejected=self._total_rejected,
            )


class RateLimiters:
    """
    The generate / api / auth limiter trio built from configuration.

    When rate limiting is disabled in configuration, `enabled` is False
    and callers skip admission entirely.
    """

    def __init__(self, config: Optional[RateLimitsConfig] = None):
        config = config or RateLimitsConfig()
        self.enabled = config.enabled
        self.generate = RateLimiter("generate", config.generate.window_seconds, config.generate.max_requests)
        self.api = RateLimiter("api", config.api.window_seconds, config.api.max_requests)
        self.auth = RateLimiter("auth", config.auth.window_seconds, config.auth.max_requests)
        info(
            _LOG, "ratelimit_init",
            enabled=self.enabled,
            generate=f"{config.generate.max_requests}/{config.generate.window_seconds}s",
            api=f"{config.api.max_requests}/{config.api.window_seconds}s",
            auth=f"{config.auth.max_requests}/{config.auth.window_seconds}s",
        )

    def all(self) -> Dict[str, RateLimiter]:
        return {"generate": self.generate, "api": self.api, "auth": self.auth}

    def reset(self) -> None:
        for limiter in self.all().values():
            limiter.reset()
