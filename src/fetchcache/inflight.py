"""In-flight request registry (single-flight deduplication)."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from loguru import logger

T = TypeVar("T")


@dataclass
class InFlightStats:
    """Counters for deduplicated requests."""

    total: int = 0  # operations actually started
    deduplicated: int = 0  # callers that joined an existing operation

    @property
    def dedup_rate(self) -> float:
        calls = self.total + self.deduplicated
        if calls == 0:
            return 0.0
        return self.deduplicated / calls

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_requests": self.total,
            "deduplicated": self.deduplicated,
            "dedup_rate": f"{self.dedup_rate:.2%}",
        }


class InFlightRegistry:
    """Shares one pending operation between concurrent callers of the same key.

    Usage:
        registry = InFlightRegistry()
        value = await registry.run("GET:/hotels:{}", lambda: client.get("/hotels"))

    At most one operation exists per key. The key is dropped as soon as the
    operation settles (success or failure) and before any caller resumes,
    so a call issued right after completion starts a fresh operation.
    """

    def __init__(self) -> None:
        self._in_flight: dict[str, asyncio.Task[Any]] = {}
        self._stats = InFlightStats()

    def get_or_create(
        self,
        key: str,
        factory: Callable[[], Awaitable[T]],
    ) -> Awaitable[T]:
        """Return the pending operation for ``key``, starting one if needed.

        Must be called from a running event loop. The returned awaitable is
        shielded: cancelling one waiter does not cancel the operation other
        waiters share.
        """
        task = self._in_flight.get(key)
        if task is not None:
            self._stats.deduplicated += 1
            logger.debug("dedupe: joining in-flight request {}", key)
        else:
            self._stats.total += 1
            logger.debug("dedupe: starting request {}", key)
            task = asyncio.create_task(self._run(key, factory))
            task.add_done_callback(self._on_settled)
            self._in_flight[key] = task
        return asyncio.shield(task)

    async def run(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        """Await the shared operation for ``key``."""
        return await self.get_or_create(key, factory)

    async def _run(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        try:
            return await factory()
        finally:
            if self._in_flight.get(key) is asyncio.current_task():
                del self._in_flight[key]

    @staticmethod
    def _on_settled(task: asyncio.Task[Any]) -> None:
        # Marks the exception retrieved even when every waiter was cancelled
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.debug("dedupe: request failed: {!r}", exc)

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def keys(self) -> list[str]:
        return list(self._in_flight)

    @property
    def stats(self) -> InFlightStats:
        return self._stats

    def cancel_all(self) -> int:
        """Cancel every pending operation. Returns how many were cancelled."""
        tasks = list(self._in_flight.values())
        self._in_flight.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            logger.debug("dedupe: cancelled {} in-flight requests", len(tasks))
        return len(tasks)


__all__ = ["InFlightRegistry", "InFlightStats"]
