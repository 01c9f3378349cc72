"""Per-identity fixed-window rate limiter.

The limiter observes and reports: every touch consumes one unit and returns
the bucket state, but it never rejects a request. Callers decide what to do
with ``remaining == 0``.
"""
import asyncio
import hashlib
import logging
import time
import weakref
from typing import Any, Callable

from fastapi import Request
from pydantic import ValidationError

from agentgate.bucket_store import BucketStore, MemoryBucketStore, SqliteBucketStore
from agentgate.config import settings
from agentgate.models import RateBucket

logger = logging.getLogger(__name__)

KEY_PREFIX = "agentgate_rl_"
ANONYMOUS_KEY = KEY_PREFIX + "anon"

# (default value, identity key, request) -> value
ValueFilter = Callable[[int, str, Request | None], int]


def identity_key(token: str | None) -> str:
    """Bucket key for a token; all anonymous callers share ANONYMOUS_KEY."""
    if not token:
        return ANONYMOUS_KEY
    return KEY_PREFIX + hashlib.sha256(token.encode()).hexdigest()


def _unfiltered(value: int, key: str, request: Request | None) -> int:
    return value


def _parse_bucket(raw: Any) -> RateBucket | None:
    if raw is None:
        return None
    try:
        return RateBucket.model_validate(raw)
    except ValidationError:
        logger.warning("Discarding malformed rate bucket: %r", raw)
        return None


class RateLimiter:
    def __init__(
        self,
        store: BucketStore,
        limit: int | None = None,
        window: int | None = None,
        limit_filter: ValueFilter = _unfiltered,
        window_filter: ValueFilter = _unfiltered,
    ) -> None:
        self.store = store
        self._limit = limit
        self._window = window
        self.limit_filter = limit_filter
        self.window_filter = window_filter
        # One lock per key, dropped once no touch holds a reference to it
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def configured_limit(self, key: str, request: Request | None = None) -> int:
        limit = self._limit if self._limit is not None else settings.rate_limit
        return max(0, int(self.limit_filter(limit, key, request)))

    def configured_window(self, key: str, request: Request | None = None) -> int:
        window = self._window if self._window is not None else settings.rate_window
        return max(1, int(self.window_filter(window, key, request)))

    async def touch(self, key: str, request: Request | None = None) -> RateBucket:
        """Consume one unit from ``key``'s bucket and return the resulting state.

        The per-key lock serializes touches in this process; the store's
        ``update`` makes the read-modify-write atomic across processes.
        """
        lock = self._lock_for(key)
        async with lock:
            now = int(time.time())
            limit = self.configured_limit(key, request)
            window = self.configured_window(key, request)

            def advance(raw: Any) -> tuple[dict[str, int], float]:
                bucket = _parse_bucket(raw)
                if bucket is None or now >= bucket.reset:
                    remaining, reset = limit, now + window
                else:
                    remaining, reset = bucket.remaining, bucket.reset

                remaining = min(max(remaining, 0), limit)
                remaining = max(0, remaining - 1)

                state = RateBucket(limit=limit, remaining=remaining, reset=reset)
                return state.model_dump(), reset - now

            return RateBucket.model_validate(await self.store.update(key, advance))


def _default_store() -> BucketStore:
    if settings.bucket_store == "memory":
        return MemoryBucketStore()
    return SqliteBucketStore()


rate_limiter = RateLimiter(_default_store())
