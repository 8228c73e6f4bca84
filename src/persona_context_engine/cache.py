# persona_context_engine/cache.py
"""
Resource Cache - memoizes expensive resolved lookups.

Keyed by (operation, resource_kind, name). Entries live for a fixed TTL and
are evicted, never refreshed in place:
- on access after expiry
- by the periodic background sweep
- by LRU pressure when the cache is at capacity

Recency order is kept by an OrderedDict (``move_to_end`` on hit), so the
first entry is always the one with the smallest ``last_accessed_at``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from persona_context_engine.exceptions import CacheCorruptionError
from persona_context_engine.models import CacheStats

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


class CacheKey(BaseModel):
    """Hashable cache key."""

    model_config = {"frozen": True}

    operation: str
    resource_kind: str
    name: str

    def __str__(self) -> str:
        return f"{self.operation}:{self.resource_kind}:{self.name}"


class CacheEntry(BaseModel):
    """Cached value with lifetime tracking."""

    model_config = {"arbitrary_types_allowed": True}

    key: CacheKey
    value: Any
    created_at: datetime
    last_accessed_at: datetime
    expires_at: datetime
    size_bytes: int = Field(default=0, ge=0)

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class ResourceCache:
    """
    Generic LRU + TTL cache.

    Mutations are synchronous, so within one event loop every get/set on a
    key is atomic. ``get_or_load`` additionally serializes loads per key and
    shares an in-flight load between concurrent callers.
    """

    def __init__(
        self,
        max_size: int = 256,
        ttl_seconds: float = 300.0,
        sweep_interval_seconds: float = 300.0,
        clock: Clock | None = None,
    ) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self.ttl = timedelta(seconds=ttl_seconds)
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock or utc_now
        self._entries: OrderedDict[CacheKey, CacheEntry] = OrderedDict()
        self._pending: dict[CacheKey, asyncio.Future[Any]] = {}
        self._sweeper: asyncio.Task[None] | None = None
        self._stats = {
            "hits": 0,
            "misses": 0,
            "evictions": 0,
            "expirations": 0,
            "invalidations": 0,
        }

    # --- lifecycle ---

    @classmethod
    def create(cls, config: Any, clock: Clock | None = None) -> ResourceCache:
        """Build a cache from an ``EngineConfig``."""
        return cls(
            max_size=config.max_cache_size,
            ttl_seconds=config.cache_ttl_seconds,
            sweep_interval_seconds=config.cache_sweep_interval_seconds,
            clock=clock,
        )

    def start(self) -> None:
        """Start the background expiry sweep (requires a running loop)."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop())

    async def dispose(self) -> None:
        """Stop the background sweep and drop all entries."""
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
        self._entries.clear()

    @property
    def running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            removed = self.sweep()
            if removed:
                logger.debug(f"Cache sweep removed {removed} expired entries")

    # --- core operations ---

    def get(self, key: CacheKey) -> Any | None:
        """
        Look up a value.

        Returns None on miss (absent, expired, or corrupt). Updates recency
        and the hit counter on hit.
        """
        entry = self._entries.get(key)
        if entry is None:
            self._stats["misses"] += 1
            return None

        now = self._clock()
        try:
            self._check_entry(entry)
        except CacheCorruptionError as e:
            logger.warning(f"Dropping corrupt cache entry {key}: {e}")
            del self._entries[key]
            self._stats["misses"] += 1
            return None

        if entry.is_expired(now):
            del self._entries[key]
            self._stats["expirations"] += 1
            self._stats["misses"] += 1
            return None

        entry.last_accessed_at = now
        self._entries.move_to_end(key)
        self._stats["hits"] += 1
        return entry.value

    def set(self, key: CacheKey, value: Any) -> None:
        """Store a value, evicting the least recently accessed entry if full."""
        now = self._clock()
        entry = CacheEntry(
            key=key,
            value=value,
            created_at=now,
            last_accessed_at=now,
            expires_at=now + self.ttl,
            size_bytes=_estimate_size(value),
        )

        if key in self._entries:
            del self._entries[key]
        else:
            while len(self._entries) >= self.max_size:
                evicted, _ = self._entries.popitem(last=False)
                self._stats["evictions"] += 1
                logger.debug(f"Evicted LRU cache entry {evicted}")

        self._entries[key] = entry

    def invalidate(self, predicate: Callable[[CacheKey], bool]) -> int:
        """Remove every entry whose key matches. Returns the number removed."""
        keys = [key for key in self._entries if predicate(key)]
        for key in keys:
            del self._entries[key]
        self._stats["invalidations"] += len(keys)
        return len(keys)

    def invalidate_kind(self, resource_kind: str) -> int:
        """Remove all entries for a resource kind that is known to have changed."""
        return self.invalidate(lambda key: key.resource_kind == resource_kind)

    def clear(self) -> None:
        count = len(self._entries)
        self._entries.clear()
        self._stats["invalidations"] += count

    def sweep(self) -> int:
        """Remove all expired entries without waiting for a get."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.expires_at < now]
        for key in expired:
            del self._entries[key]
        self._stats["expirations"] += len(expired)
        return len(expired)

    async def get_or_load(self, key: CacheKey, loader: Callable[[], Awaitable[Any]]) -> Any:
        """
        Read-through lookup.

        Concurrent callers for the same key share one load. Failed loads are
        not cached; the error propagates to every waiting caller.
        """
        cached = self.get(key)
        if cached is not None:
            return cached

        pending = self._pending.get(key)
        if pending is not None:
            return await asyncio.shield(pending)

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[key] = future
        try:
            value = await loader()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Mark retrieved so an unobserved failure doesn't warn at GC
            future.exception()
            raise
        else:
            if value is not None:
                self.set(key, value)
            future.set_result(value)
            return value
        finally:
            self._pending.pop(key, None)

    # --- introspection ---

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries

    def entry(self, key: CacheKey) -> CacheEntry | None:
        """Raw entry access (no recency update)."""
        return self._entries.get(key)

    def stats(self) -> CacheStats:
        return CacheStats(
            hits=self._stats["hits"],
            misses=self._stats["misses"],
            evictions=self._stats["evictions"],
            expirations=self._stats["expirations"],
            invalidations=self._stats["invalidations"],
            size=len(self._entries),
            max_size=self.max_size,
            memory_bytes=sum(entry.size_bytes for entry in self._entries.values()),
        )

    # --- persistence ---

    def snapshot(self) -> bytes:
        """Serialize JSON-compatible entries for optional persistence."""
        payload = []
        for entry in self._entries.values():
            try:
                payload.append(json.loads(entry.model_dump_json()))
            except (TypeError, ValueError) as e:
                logger.debug(f"Skipping non-serializable cache entry {entry.key}: {e}")
        return json.dumps(payload).encode("utf-8")

    def restore(self, data: bytes) -> int:
        """
        Load entries from ``snapshot()`` output.

        Corrupt or expired entries are skipped. Returns the number restored.
        """
        try:
            raw_entries = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable cache snapshot: {e}")
            return 0
        if not isinstance(raw_entries, list):
            logger.warning("Ignoring cache snapshot: expected a list of entries")
            return 0

        now = self._clock()
        restored = 0
        for raw in raw_entries:
            try:
                entry = self._parse_entry(raw)
            except CacheCorruptionError as e:
                logger.warning(f"Skipping corrupt cache entry: {e}")
                continue
            if entry.is_expired(now):
                continue
            while len(self._entries) >= self.max_size:
                self._entries.popitem(last=False)
                self._stats["evictions"] += 1
            self._entries[entry.key] = entry
            restored += 1
        return restored

    def _parse_entry(self, raw: Any) -> CacheEntry:
        try:
            entry = CacheEntry.model_validate(raw)
        except ValidationError as e:
            raise CacheCorruptionError(str(e)) from e
        self._check_entry(entry)
        return entry

    def _check_entry(self, entry: CacheEntry) -> None:
        if entry.expires_at - entry.created_at != self.ttl:
            raise CacheCorruptionError(f"entry {entry.key} violates expires_at = created_at + ttl")


def _estimate_size(value: Any) -> int:
    if isinstance(value, bytes | bytearray):
        return len(value)
    if isinstance(value, str):
        return len(value.encode("utf-8"))
    if isinstance(value, BaseModel):
        return len(value.model_dump_json())
    try:
        return len(json.dumps(value, default=str))
    except (TypeError, ValueError):
        return len(repr(value))
