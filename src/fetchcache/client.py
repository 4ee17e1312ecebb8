"""QueryClient: wires the cache, the in-flight registry and the transport."""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any, TypeVar, overload

from loguru import logger

from fetchcache.config import Settings, get_settings
from fetchcache.inflight import InFlightRegistry
from fetchcache.keys import make_key
from fetchcache.mutation import Mutation
from fetchcache.options import MutationOptions, QueryOptions
from fetchcache.query import Query
from fetchcache.timed_cache import TimedCache
from fetchcache.transport import RetryingTransport
from fetchcache.types import DEFAULT_TTL, CacheEntry, Duration, Fetcher

T = TypeVar("T")
V = TypeVar("V")


class QueryClient:
    """Owns the shared cache and registry that queries and mutations use.

    One client per process is the normal setup (see get_query_client());
    tests build their own so state never leaks between them.

    Usage:
        client = QueryClient.from_settings()
        async with client.get_query("/hotels", {"page": 1}) as hotels:
            await hotels.wait_mounted()
            print(hotels.data)
    """

    def __init__(
        self,
        *,
        cache: TimedCache | None = None,
        registry: InFlightRegistry | None = None,
        transport: RetryingTransport | None = None,
        default_ttl: Duration = DEFAULT_TTL,
    ) -> None:
        self._cache = cache if cache is not None else TimedCache()
        if registry is None:
            registry = transport.registry if transport is not None else InFlightRegistry()
        self._registry = registry
        self._transport = transport
        self._default_ttl = default_ttl

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **transport_kwargs: Any) -> QueryClient:
        """Build a client whose transport and queries share one registry."""
        settings = settings or get_settings()
        registry = InFlightRegistry()
        transport = RetryingTransport.from_settings(
            settings, registry=registry, **transport_kwargs
        )
        return cls(
            cache=TimedCache(max_items=settings.cache_max_items),
            registry=registry,
            transport=transport,
            default_ttl=settings.default_ttl,
        )

    @property
    def cache(self) -> TimedCache:
        return self._cache

    @property
    def registry(self) -> InFlightRegistry:
        return self._registry

    @property
    def transport(self) -> RetryingTransport:
        if self._transport is None:
            raise RuntimeError("QueryClient was created without a transport")
        return self._transport

    # -------------------------------------------------------------------------
    # Cache access
    # -------------------------------------------------------------------------

    def read(self, key: str, ttl: Duration | None = None) -> Any | None:
        """Synchronous cache probe: the value if fresh, else None."""
        return self._cache.get(key, self._default_ttl if ttl is None else ttl)

    def fresh_entry(self, key: str, ttl: Duration | None = None) -> CacheEntry[Any] | None:
        """Like read(), but returns the entry so a cached None is distinguishable."""
        if not self._cache.is_fresh(key, self._default_ttl if ttl is None else ttl):
            return None
        return self._cache.get_entry(key)

    def invalidate(self, *keys: str) -> None:
        for key in keys:
            self._cache.delete(key)
        if keys:
            logger.debug("invalidated {} key(s)", len(keys))

    def invalidate_matching(self, pattern: str | re.Pattern[str]) -> int:
        return self._cache.delete_matching(pattern)

    def clear(self) -> None:
        self._cache.clear()

    # -------------------------------------------------------------------------
    # Factories
    # -------------------------------------------------------------------------

    def query(
        self,
        key: str,
        fetcher: Fetcher[T],
        options: QueryOptions | None = None,
        **option_fields: Any,
    ) -> Query[T]:
        """Create a query; keyword arguments are QueryOptions fields."""
        if options is not None and option_fields:
            raise TypeError("Pass either options or option keyword arguments, not both")
        if options is None:
            option_fields.setdefault("ttl", self._default_ttl)
            options = QueryOptions(**option_fields)
        return Query(self, key, fetcher, options)

    def get_query(
        self,
        path: str,
        params: Mapping[str, Any] | None = None,
        options: QueryOptions | None = None,
        **option_fields: Any,
    ) -> Query[Any]:
        """Query a GET endpoint through the transport, keyed by make_key()."""
        return self.query(
            make_key("GET", path, params),
            self.transport.fetcher(path, params),
            options,
            **option_fields,
        )

    @overload
    def mutation(
        self,
        fn: Callable[[V], Awaitable[T]],
        *,
        invalidate_keys: Sequence[str] = (),
        on_success: Callable[[T, V], Any] | None = None,
        on_error: Callable[[BaseException, V], Any] | None = None,
    ) -> Mutation[T, V]: ...

    @overload
    def mutation(
        self,
        fn: None = None,
        *,
        invalidate_keys: Sequence[str] = (),
        on_success: Callable[[T, V], Any] | None = None,
        on_error: Callable[[BaseException, V], Any] | None = None,
    ) -> Callable[[Callable[[V], Awaitable[T]]], Mutation[T, V]]: ...

    def mutation(
        self,
        fn: Callable[[V], Awaitable[T]] | None = None,
        *,
        invalidate_keys: Sequence[str] = (),
        on_success: Callable[[T, V], Any] | None = None,
        on_error: Callable[[BaseException, V], Any] | None = None,
    ) -> Any:
        """Create a mutation, directly or as a decorator.

        Usage:
            @client.mutation(invalidate_keys=[make_key("GET", "/questions")])
            async def save_question(payload: dict) -> dict:
                return await client.transport.post("/questions", payload)

            await save_question.mutate({"text": "How was breakfast?"})
        """
        options: MutationOptions[T, V] = MutationOptions(
            invalidate_keys=invalidate_keys,
            on_success=on_success,
            on_error=on_error,
        )

        def decorator(func: Callable[[V], Awaitable[T]]) -> Mutation[T, V]:
            return Mutation(self, func, options)

        if fn is None:
            return decorator
        return decorator(fn)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """Cancel in-flight requests and close the transport."""
        self._registry.cancel_all()
        if self._transport is not None:
            await self._transport.close()
        logger.debug("QueryClient closed")

    async def __aenter__(self) -> QueryClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


# Process-wide instance
_global_client: QueryClient | None = None


def get_query_client() -> QueryClient:
    """Return the shared client, creating it from settings on first use."""
    global _global_client
    if _global_client is None:
        _global_client = QueryClient.from_settings()
    return _global_client


def set_query_client(client: QueryClient | None) -> None:
    """Replace the shared client (None resets it)."""
    global _global_client
    _global_client = client


async def close_query_client() -> None:
    """Close and forget the shared client."""
    global _global_client
    if _global_client is not None:
        await _global_client.close()
        _global_client = None


__all__ = [
    "QueryClient",
    "close_query_client",
    "get_query_client",
    "set_query_client",
]
