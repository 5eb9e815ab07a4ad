"""
QueryCache - key-addressed query cache with stale-while-revalidate.

Features:
- entries keyed by ordered string tuples, e.g. ("employees", "list")
- per-entry stale time; fresh reads never call the loader
- stale reads return the old value and refresh in the background
- prefix invalidation after mutations
- one in-flight loader per key; only the most recent request may write
- idle-entry garbage collection and size-bounded eviction
- optimistic writes with rollback, error-tolerant prefetch, cancellation

All bookkeeping runs without awaiting, so each operation is atomic on the
event loop; only loaders suspend.
"""

import asyncio
import time
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Iterable

from loguru import logger

from glynac.services.deduplicator import RequestDeduplicator

QueryKey = tuple[str, ...]
Loader = Callable[[], Awaitable[Any]]


def make_key(key: Iterable[Any]) -> QueryKey:
    """Normalize a key to a tuple of strings."""
    if isinstance(key, str):
        return (key,)
    return tuple(str(part) for part in key)


def matches_prefix(key: QueryKey, prefix: QueryKey) -> bool:
    return key[: len(prefix)] == prefix


@dataclass
class QueryEntry:
    """A single cache entry with metadata."""

    key: QueryKey
    stale_time: float
    data: Any = None
    has_data: bool = False
    fetched_at: float | None = None
    error: BaseException | None = None
    is_invalidated: bool = False
    last_accessed: float = 0.0

    def is_stale(self, now: float) -> bool:
        if not self.has_data or self.fetched_at is None or self.is_invalidated:
            return True
        return now - self.fetched_at >= self.stale_time


class QueryCache:
    """
    Query cache shared by every query of one ApiClient.

    Usage:
        cache = QueryCache(default_stale_time=300)
        employees = await cache.fetch(("employees", "list"), load_employees)
        cache.invalidate(("employees",))
    """

    def __init__(
        self,
        default_stale_time: float = 300.0,
        gc_time: float = 600.0,
        max_size: int = 200,
        debug: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._entries: dict[QueryKey, QueryEntry] = {}
        self._default_stale_time = default_stale_time
        self._gc_time = gc_time
        self._max_size = max_size
        self._debug = debug
        self._clock = clock
        self._deduplicator = RequestDeduplicator(debug=debug)
        self._latest_request: dict[QueryKey, int] = {}
        self._request_seq = 0
        self._background: set[asyncio.Task[Any]] = set()
        self._stats = CacheStats()

    def read(self, key: Iterable[Any]) -> Any | None:
        """Return cached data (fresh or stale) without fetching."""
        entry = self._entries.get(make_key(key))
        if entry is None or not entry.has_data:
            return None
        entry.last_accessed = self._clock()
        return entry.data

    def get_entry(self, key: Iterable[Any]) -> QueryEntry | None:
        return self._entries.get(make_key(key))

    def is_fresh(self, key: Iterable[Any]) -> bool:
        entry = self._entries.get(make_key(key))
        return entry is not None and not entry.is_stale(self._clock())

    async def fetch(
        self,
        key: Iterable[Any],
        loader: Loader,
        stale_time: float | None = None,
    ) -> Any:
        """
        Return data for `key`, calling `loader` only when needed.

        Args:
            key: Query key
            loader: Coroutine factory producing fresh data
            stale_time: Seconds the data stays fresh (default from cache)

        Returns:
            Fresh data, or stale data while a background refresh runs.
            Explicitly invalidated entries always wait for the reload.

        Raises:
            Whatever the loader raises, when no data is cached yet
        """
        key = make_key(key)
        now = self._clock()
        entry = self._entries.get(key)

        if entry is not None:
            entry.last_accessed = now
            if stale_time is not None:
                entry.stale_time = stale_time

            if entry.has_data and not entry.is_stale(now):
                self._stats.hits += 1
                self._log(f"HIT: {key}")
                return entry.data

            # invalidated entries wait for the reload instead of serving stale
            if entry.has_data and not entry.is_invalidated:
                self._stats.stale_hits += 1
                self._log(f"STALE HIT: {key}")
                self._revalidate_in_background(key, loader, stale_time)
                return entry.data

        self._stats.misses += 1
        self._log(f"MISS: {key}")
        return await self._deduplicator.dedupe(
            key, lambda: self._load(key, loader, stale_time)
        )

    def write(
        self, key: Iterable[Any], data: Any, stale_time: float | None = None
    ) -> None:
        """Store data directly (write-through after a mutation)."""
        key = make_key(key)
        self._store(key, data, stale_time)
        self._log(f"WRITE: {key}")

    def write_optimistic(
        self, key: Iterable[Any], data: Any
    ) -> Callable[[], None]:
        """
        Write `data` ahead of a mutation.

        Returns a rollback callable restoring the previous entry, for use when
        the mutation fails.
        """
        key = make_key(key)
        previous = self._entries.get(key)
        snapshot = replace(previous) if previous is not None else None
        self._store(key, data, None)
        self._log(f"OPTIMISTIC: {key}")

        def rollback() -> None:
            if snapshot is None:
                self._entries.pop(key, None)
            else:
                self._entries[key] = snapshot
            self._log(f"ROLLBACK: {key}")

        return rollback

    async def prefetch(
        self,
        key: Iterable[Any],
        loader: Loader,
        stale_time: float | None = None,
    ) -> None:
        """Warm `key`; failures are logged, never raised."""
        try:
            await self.fetch(key, loader, stale_time)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Prefetch of {make_key(key)} failed: {e}")

    def cancel(self, prefix: Iterable[Any] = ()) -> int:
        """Cancel in-flight loaders under `prefix`; cached data is kept."""
        prefix = make_key(prefix)
        cancelled = 0
        for key in self._deduplicator.get_in_flight_keys():
            if matches_prefix(key, prefix):
                self._latest_request.pop(key, None)
                if self._deduplicator.cancel(key):
                    cancelled += 1

        if cancelled:
            self._log(f"CANCEL: {cancelled} in-flight loads under {prefix}")
        return cancelled

    def invalidate(self, prefix: Iterable[Any] = ()) -> int:
        """
        Mark every entry under `prefix` as stale.

        In-flight requests for those keys are detached so their results are
        not written back; the next fetch starts a new request.
        """
        prefix = make_key(prefix)
        count = 0
        for key, entry in self._entries.items():
            if matches_prefix(key, prefix):
                entry.is_invalidated = True
                count += 1
        self._detach_in_flight(prefix)

        if count:
            self._log(f"INVALIDATE: {count} entries under {prefix}")
        return count

    def remove(self, prefix: Iterable[Any] = ()) -> int:
        """Drop every entry under `prefix`."""
        prefix = make_key(prefix)
        keys = [k for k in self._entries if matches_prefix(k, prefix)]
        for key in keys:
            del self._entries[key]
        self._detach_in_flight(prefix)

        if keys:
            self._log(f"REMOVE: {len(keys)} entries under {prefix}")
        return len(keys)

    def clear(self) -> None:
        """Clear all cache entries."""
        count = len(self._entries)
        self._entries.clear()
        self._detach_in_flight(())
        self._log(f"CLEAR: {count} entries removed")

    def cleanup_expired(self) -> int:
        """Drop entries nobody has read for gc_time seconds."""
        now = self._clock()
        expired = [
            key
            for key, entry in self._entries.items()
            if now - entry.last_accessed > self._gc_time
            and not self._deduplicator.is_in_flight(key)
        ]
        for key in expired:
            del self._entries[key]

        if expired:
            self._log(f"CLEANUP: {len(expired)} idle entries removed")
        return len(expired)

    async def close(self) -> None:
        """Cancel background refreshes and in-flight loaders."""
        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        self._deduplicator.cancel_all()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._background.clear()

    def get_stats(self) -> "CacheStats":
        """Get cache statistics."""
        self._stats.size = len(self._entries)
        self._stats.max_size = self._max_size
        self._stats.deduplicated = self._deduplicator.get_stats().deduplicated
        return self._stats

    def _revalidate_in_background(
        self, key: QueryKey, loader: Loader, stale_time: float | None
    ) -> None:
        if self._deduplicator.is_in_flight(key):
            return
        task = asyncio.create_task(self._background_refresh(key, loader, stale_time))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _background_refresh(
        self, key: QueryKey, loader: Loader, stale_time: float | None
    ) -> None:
        try:
            await self._deduplicator.dedupe(
                key, lambda: self._load(key, loader, stale_time)
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # the caller already has stale data; the error stays on the entry
            logger.warning(f"Background refresh of {key} failed: {e}")

    async def _load(
        self, key: QueryKey, loader: Loader, stale_time: float | None
    ) -> Any:
        self._request_seq += 1
        request_id = self._request_seq
        self._latest_request[key] = request_id

        try:
            data = await loader()
        except Exception as e:
            if self._latest_request.get(key) == request_id:
                del self._latest_request[key]
                entry = self._ensure_entry(key, stale_time)
                entry.error = e
            raise

        if self._latest_request.get(key) != request_id:
            self._log(f"DISCARD: superseded result for {key}")
            return data

        del self._latest_request[key]
        self._store(key, data, stale_time)
        return data

    def _detach_in_flight(self, prefix: QueryKey) -> None:
        for key in list(self._latest_request):
            if matches_prefix(key, prefix):
                del self._latest_request[key]
                self._deduplicator.forget(key)

    def _ensure_entry(self, key: QueryKey, stale_time: float | None) -> QueryEntry:
        entry = self._entries.get(key)
        if entry is None:
            if len(self._entries) >= self._max_size:
                self._evict_oldest()
            entry = QueryEntry(
                key=key,
                stale_time=(
                    stale_time if stale_time is not None else self._default_stale_time
                ),
                last_accessed=self._clock(),
            )
            self._entries[key] = entry
        elif stale_time is not None:
            entry.stale_time = stale_time
        return entry

    def _store(self, key: QueryKey, data: Any, stale_time: float | None) -> None:
        entry = self._ensure_entry(key, stale_time)
        now = self._clock()
        entry.data = data
        entry.has_data = True
        entry.fetched_at = now
        entry.last_accessed = now
        entry.error = None
        entry.is_invalidated = False
        self._log(f"SET: {key} (stale after {entry.stale_time}s)")

    def _evict_oldest(self) -> None:
        """Evict the least recently fetched entry."""
        if not self._entries:
            return
        oldest_key = min(
            self._entries,
            key=lambda k: self._entries[k].fetched_at or float("-inf"),
        )
        del self._entries[oldest_key]
        self._stats.evictions += 1
        self._log(f"EVICT: {oldest_key}")

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[QueryCache] {message}")


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    stale_hits: int = 0
    evictions: int = 0
    deduplicated: int = 0
    size: int = 0
    max_size: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.stale_hits + self.misses
        if total == 0:
            return 0.0
        return (self.hits + self.stale_hits) / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "stale_hits": self.stale_hits,
            "evictions": self.evictions,
            "deduplicated": self.deduplicated,
            "size": self.size,
            "max_size": self.max_size,
            "hit_rate": f"{self.hit_rate:.2%}",
        }
