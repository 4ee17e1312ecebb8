"""Query subscriptions: cached fetch, polling and teardown."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from loguru import logger

from fetchcache.options import QueryOptions
from fetchcache.types import Fetcher, QueryState, QueryStatus

if TYPE_CHECKING:
    from fetchcache.client import QueryClient

T = TypeVar("T")

Listener = Callable[[QueryState[Any]], None]


class Query(Generic[T]):
    """One consumer's subscription to a cached resource.

    The subscription owns its state and polling task; the cache entry it
    reads and writes is shared through the client and outlives it.

    Usage:
        async with client.query("GET:/stats:{}", fetch_stats) as q:
            await q.fetch()
            print(q.data, q.error)

    Results of fetches still in flight when the query is closed (or its key
    changes) are discarded: each fetch remembers the generation it started
    in and only applies its result if the generation is unchanged.
    """

    def __init__(
        self,
        client: QueryClient,
        key: str,
        fetcher: Fetcher[T],
        options: QueryOptions | None = None,
    ) -> None:
        self._client = client
        self._key = key
        self._fetcher = fetcher
        self._options = options or QueryOptions()
        self._generation = 0
        self._closed = False
        self._started = False
        self._poll_task: asyncio.Task[None] | None = None
        self._mount_task: asyncio.Task[None] | None = None
        self._listeners: list[Listener] = []
        self._state: QueryState[T] = self._seed_state(QueryState())

    # -------------------------------------------------------------------------
    # Observable state
    # -------------------------------------------------------------------------

    @property
    def key(self) -> str:
        return self._key

    @property
    def options(self) -> QueryOptions:
        return self._options

    @property
    def state(self) -> QueryState[T]:
        return self._state

    @property
    def data(self) -> T | None:
        return self._state.data

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    @property
    def error(self) -> BaseException | None:
        return self._state.error

    @property
    def status(self) -> QueryStatus:
        return self._state.status

    @property
    def is_active(self) -> bool:
        return not self._closed

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` with a state snapshot after every change.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> Query[T]:
        """Activate: run the mount fetch and start polling if configured."""
        if self._started and not self._closed:
            return self
        self._started = True
        self._closed = False
        self._mount_task = asyncio.create_task(self.fetch())
        interval_ms = self._options.refetch_interval_ms
        if interval_ms:
            self._poll_task = asyncio.create_task(self._poll(interval_ms / 1000))
        logger.debug("query started: {}", self._key)
        return self

    def close(self) -> None:
        """Tear down: drop pending results and cancel polling."""
        if self._closed:
            return
        self._closed = True
        self._generation += 1
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None
        logger.debug("query closed: {}", self._key)

    async def wait_mounted(self) -> None:
        """Wait for the fetch issued by start() to finish."""
        if self._mount_task is not None:
            await self._mount_task

    async def __aenter__(self) -> Query[T]:
        return self.start()

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Fetching
    # -------------------------------------------------------------------------

    async def fetch(self) -> None:
        """Serve fresh cached data or load it through the shared registry.

        Fetcher errors are recorded on ``error``; they are not raised.
        """
        if not self._options.enabled or self._closed:
            return

        entry = self._client.fresh_entry(self._key, self._options.ttl)
        if entry is not None and not self._options.refetch_on_mount:
            self._set_state(
                data=entry.value,
                is_loading=False,
                error=None,
                status=QueryStatus.SUCCESS,
                updated_at=entry.stored_at,
            )
            return

        await self._load()

    async def refetch(self) -> None:
        """Invalidate the cached entry and fetch again."""
        self._client.invalidate(self._key)
        await self.fetch()

    async def set_key(self, key: str, fetcher: Fetcher[T] | None = None) -> None:
        """Point the subscription at a new key and fetch it.

        Results of fetches issued for the previous key are discarded.
        """
        self._generation += 1
        self._key = key
        if fetcher is not None:
            self._fetcher = fetcher
        self._set_state(**self._seed_fields(keep_data=True))
        if self._started and not self._closed:
            await self.fetch()

    async def _load(self) -> None:
        generation = self._generation
        key = self._key
        self._set_state(is_loading=True, error=None, status=QueryStatus.LOADING)

        try:
            value = await self._client.registry.run(key, self._fetcher)
        except Exception as e:
            if not self._is_current(generation):
                logger.debug("query {}: ignoring error after teardown: {!r}", key, e)
                return
            logger.debug("query {} failed: {!r}", key, e)
            # Last good data stays visible; the cache is left untouched
            self._set_state(
                error=e,
                is_loading=False,
                status=QueryStatus.ERROR,
                updated_at=self._client.cache.now(),
            )
            return

        if not self._is_current(generation):
            logger.debug("query {}: discarding result after teardown", key)
            return
        self._client.cache.set(key, value)
        self._set_state(
            data=value,
            is_loading=False,
            error=None,
            status=QueryStatus.SUCCESS,
            updated_at=self._client.cache.now(),
        )

    async def _poll(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            await self.fetch()

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and not self._closed

    def _seed_state(self, state: QueryState[T]) -> QueryState[T]:
        return replace(state, **self._seed_fields(keep_data=False))

    def _seed_fields(self, *, keep_data: bool) -> dict[str, Any]:
        entry = self._client.fresh_entry(self._key, self._options.ttl)
        if entry is not None:
            return {
                "data": entry.value,
                "is_loading": False,
                "error": None,
                "status": QueryStatus.SUCCESS,
                "updated_at": entry.stored_at,
            }
        fields: dict[str, Any] = {"error": None}
        if not keep_data:
            fields["data"] = None
        if self._options.enabled:
            fields.update(is_loading=True, status=QueryStatus.LOADING)
        else:
            fields.update(is_loading=False, status=QueryStatus.IDLE)
        return fields

    def _set_state(self, **changes: Any) -> None:
        self._state = replace(self._state, **changes)
        for listener in list(self._listeners):
            listener(self._state)


__all__ = ["Query"]
