"""
RequestDeduplicator - collapses concurrent calls for the same key.

When several coroutines ask for the same key while a call is in flight, only
one call runs and every caller awaits its result. A key can be detached with
``forget()``; the detached call still completes for its own waiters, but the
next caller starts a fresh one.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Hashable, TypeVar

from loguru import logger

T = TypeVar("T")


class RequestDeduplicator:
    """
    Deduplicates concurrent async calls by key.

    Usage:
        dedup = RequestDeduplicator()
        data = await dedup.dedupe(("employees", "list"), load_employees)
    """

    def __init__(self, debug: bool = False):
        self._in_flight: dict[Hashable, asyncio.Task[Any]] = {}
        self._debug = debug
        self._stats = DeduplicatorStats()

    async def dedupe(
        self,
        key: Hashable,
        request_fn: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Run request_fn unless a call for `key` is already in flight.

        No await happens between the lookup and the registration, so the
        check-and-insert is atomic on the event loop.
        """
        task = self._in_flight.get(key)
        if task is not None and not task.done():
            self._stats.deduplicated += 1
            self._log(f"DEDUPE: joining in-flight call {key}")
        else:
            self._stats.total += 1
            self._log(f"NEW: starting call {key}")
            task = asyncio.create_task(self._run(key, request_fn))
            self._in_flight[key] = task

        # shield: one waiter being cancelled must not cancel the shared call
        return await asyncio.shield(task)

    async def _run(self, key: Hashable, request_fn: Callable[[], Awaitable[T]]) -> T:
        try:
            return await request_fn()
        finally:
            # only clear the slot if it still belongs to this call
            if self._in_flight.get(key) is asyncio.current_task():
                del self._in_flight[key]
            self._log(f"DONE: {key}")

    def is_in_flight(self, key: Hashable) -> bool:
        task = self._in_flight.get(key)
        return task is not None and not task.done()

    def forget(self, key: Hashable) -> bool:
        """Detach the in-flight call for `key` without cancelling it."""
        if self._in_flight.pop(key, None) is not None:
            self._log(f"FORGET: {key}")
            return True
        return False

    def cancel(self, key: Hashable) -> bool:
        """Cancel the in-flight call for `key`; its waiters get CancelledError."""
        task = self._in_flight.pop(key, None)
        if task is None or task.done():
            return False
        task.cancel()
        self._log(f"CANCEL: {key}")
        return True

    def cancel_all(self) -> int:
        """Cancel all in-flight calls."""
        count = len(self._in_flight)
        for task in self._in_flight.values():
            task.cancel()
        self._in_flight.clear()
        if count:
            self._log(f"CANCEL_ALL: {count} calls cancelled")
        return count

    def get_in_flight_keys(self) -> list[Hashable]:
        return list(self._in_flight.keys())

    def get_stats(self) -> "DeduplicatorStats":
        self._stats.in_flight = len(self._in_flight)
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[Deduplicator] {message}")


@dataclass
class DeduplicatorStats:
    """Statistics for request deduplication."""

    total: int = 0  # calls actually started
    deduplicated: int = 0  # callers that joined an in-flight call
    in_flight: int = 0

    @property
    def dedup_rate(self) -> float:
        total = self.total + self.deduplicated
        if total == 0:
            return 0.0
        return self.deduplicated / total

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_requests": self.total,
            "deduplicated": self.deduplicated,
            "in_flight": self.in_flight,
            "dedup_rate": f"{self.dedup_rate:.2%}",
        }
