from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from django.conf import settings
from django.core.cache import caches
from django.utils.module_loading import import_string
from rest_framework.throttling import BaseThrottle

logger = logging.getLogger("security.rate_limit")


@dataclass(frozen=True)
class RateLimit:
    max_requests: int
    window_seconds: int


def default_rate_limit() -> RateLimit:
    return RateLimit(
        max_requests=settings.RATE_LIMIT_DEFAULT_MAX,
        window_seconds=settings.RATE_LIMIT_DEFAULT_WINDOW,
    )


class RateLimitStore:
    """Counter storage for fixed-window rate limiting.

    Implementations must make ``increment`` start a fresh window (count 1) once the
    previous window has expired, and report when the current window ends.
    """

    def get(self, key: str) -> tuple[int, float | None]:
        raise NotImplementedError

    def increment(self, key: str, window_seconds: int) -> tuple[int, float]:
        raise NotImplementedError

    def reset(self, key: str) -> None:
        raise NotImplementedError


class CacheRateLimitStore(RateLimitStore):
    """Keeps counters in a Django cache; expiry is the cache TTL, so stale windows evict themselves.

    With the default local-memory cache the counters are per process. Point the cache at
    Redis (``REDIS_URL``) to share them between workers and hosts.
    """

    def __init__(self, cache_alias: str = "default", clock=time.time):
        self.cache_alias = cache_alias
        self.clock = clock

    @property
    def cache(self):
        return caches[self.cache_alias]

    @staticmethod
    def _reset_key(key: str) -> str:
        return f"{key}:reset"

    def get(self, key: str) -> tuple[int, float | None]:
        count = self.cache.get(key)
        if count is None:
            return 0, None
        return int(count), self.cache.get(self._reset_key(key))

    def increment(self, key: str, window_seconds: int) -> tuple[int, float]:
        reset_at = self.clock() + window_seconds
        if self.cache.add(key, 0, timeout=window_seconds):
            self.cache.set(self._reset_key(key), reset_at, timeout=window_seconds)
        try:
            count = self.cache.incr(key)
        except ValueError:
            # Window expired between add() and incr().
            self.cache.set(key, 1, timeout=window_seconds)
            self.cache.set(self._reset_key(key), reset_at, timeout=window_seconds)
            count = 1
        return count, self.cache.get(self._reset_key(key), reset_at)

    def reset(self, key: str) -> None:
        self.cache.delete_many([key, self._reset_key(key)])


def get_rate_limit_store() -> RateLimitStore:
    return import_string(settings.RATE_LIMIT_STORE)()


def get_client_address(request) -> str:
    forwarded_for = request.META.get("HTTP_X_FORWARDED_FOR", "")
    if forwarded_for:
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop
    return request.META.get("REMOTE_ADDR") or "anonymous"


class ClientAddressRateThrottle(BaseThrottle):
    """Fixed-window request counter keyed by view, action and client address."""

    def __init__(self):
        self.store = get_rate_limit_store()
        self.now = None
        self.reset_at = None

    def get_rate_limit(self, request, view) -> RateLimit:
        resolver = getattr(view, "get_rate_limit", None)
        if resolver is not None:
            return resolver(request)
        return default_rate_limit()

    def get_cache_key(self, request, view) -> str:
        action_key = getattr(view, "action", None) or request.method.lower()
        scope = getattr(view, "rate_limit_scope", None) or view.__class__.__name__
        return f"ratelimit:{scope}:{action_key}:{get_client_address(request)}"

    def allow_request(self, request, view):
        if not settings.RATE_LIMIT_ENABLED:
            return True

        limit = self.get_rate_limit(request, view)
        key = self.get_cache_key(request, view)
        self.now = time.time()
        count, self.reset_at = self.store.increment(key, limit.window_seconds)
        if count > limit.max_requests:
            logger.warning(
                "rate_limit_exceeded key=%s count=%s max=%s window=%s",
                key,
                count,
                limit.max_requests,
                limit.window_seconds,
            )
            return False
        return True

    def wait(self):
        if self.reset_at is None or self.now is None:
            return None
        return max(self.reset_at - self.now, 0)
