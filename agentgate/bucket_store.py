"""Backing stores for rate-limit buckets.

A store only keeps raw mappings with a TTL; validation of what comes back is
the limiter's job, so a corrupted row simply reads as "no bucket".

``update(key, fn)`` is the only write: ``fn`` gets the current raw value (None
when missing or expired) and returns ``(new value, ttl seconds)``. The store
makes that read-modify-write atomic for everyone sharing it.
"""
import logging
import time
from typing import Any, Callable, Protocol

import aiosqlite

from agentgate import database as db
from agentgate.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

BucketUpdate = Callable[[Any], tuple[dict[str, int], float]]


class BucketStore(Protocol):
    async def update(self, key: str, fn: BucketUpdate) -> dict[str, int]: ...

    async def cleanup(self) -> None: ...


class MemoryBucketStore:
    """Process-local store. Only shared between workers of a single process."""

    def __init__(self) -> None:
        self._items: dict[str, tuple[dict[str, Any], float]] = {}

    async def get(self, key: str) -> Any:
        item = self._items.get(key)
        if item is None:
            return None
        value, expires_at = item
        if time.time() >= expires_at:
            del self._items[key]
            return None
        return dict(value) if isinstance(value, dict) else value

    async def set(self, key: str, value: dict[str, int], ttl_seconds: float) -> None:
        self._items[key] = (dict(value), time.time() + ttl_seconds)

    async def update(self, key: str, fn: BucketUpdate) -> dict[str, int]:
        # Atomic only while get/set don't yield; the limiter's per-key lock covers the rest
        value, ttl_seconds = fn(await self.get(key))
        await self.set(key, value, ttl_seconds)
        return dict(value)

    async def cleanup(self) -> None:
        now = time.time()
        stale = [k for k, (_, expires_at) in self._items.items() if now >= expires_at]
        for k in stale:
            del self._items[k]

    def clear(self) -> None:
        self._items.clear()


class SqliteBucketStore:
    """Buckets kept as rows in the ``transients`` table, visible to every worker on the host.

    Each update runs in its own BEGIN IMMEDIATE transaction, so touches from
    separate processes on the same file never observe the same bucket state.
    """

    async def update(self, key: str, fn: BucketUpdate) -> dict[str, int]:
        try:
            return await db.update_transient(key, fn)
        except aiosqlite.Error as exc:
            logger.error("Bucket store update failed for %s: %s", key, exc)
            raise StoreUnavailableError() from exc

    async def cleanup(self) -> None:
        await db.cleanup_expired_transients()
