"""Tests for QueryClient wiring and the shared client."""

import asyncio

import httpx
import pytest
import respx

from fetchcache import (
    AuthSession,
    QueryClient,
    QueryOptions,
    Settings,
    close_query_client,
    get_query_client,
    make_key,
    set_query_client,
)
from fetchcache.transport import RetryingTransport

BASE = "https://api.test.dev/api"


class TestCacheAccess:
    """read, invalidate and clear."""

    def test_invalidate_many(self, client: QueryClient) -> None:
        client.cache.set("a", 1)
        client.cache.set("b", 2)
        client.cache.set("c", 3)
        client.invalidate("a", "b", "missing")
        assert client.cache.keys() == ["c"]

    def test_invalidate_nothing(self, client: QueryClient) -> None:
        client.cache.set("a", 1)
        client.invalidate()
        assert len(client.cache) == 1

    def test_invalidate_matching(self, client: QueryClient) -> None:
        client.cache.set(make_key("GET", "/analytics", {"year": 2023}), 1)
        client.cache.set(make_key("GET", "/analytics", {"year": 2024}), 2)
        client.cache.set(make_key("GET", "/hotels"), 3)
        assert client.invalidate_matching(r"^GET:/analytics:") == 2
        assert len(client.cache) == 1

    def test_clear(self, client: QueryClient) -> None:
        client.cache.set("a", 1)
        client.clear()
        assert len(client.cache) == 0

    def test_fresh_entry_distinguishes_cached_none(self, client: QueryClient, clock) -> None:
        client.cache.set("k", None)
        entry = client.fresh_entry("k")
        assert entry is not None
        assert entry.value is None
        clock.advance(301)
        assert client.fresh_entry("k") is None

    def test_default_ttl(self, cache, registry, clock) -> None:
        client = QueryClient(cache=cache, registry=registry, default_ttl="10s")
        cache.set("k", "v")
        clock.advance(10)
        assert client.read("k") is None
        assert client.query("k", lambda: None).options.ttl_ms == 10_000


class TestTransportIntegration:
    """Queries built on the transport."""

    def test_transport_required(self, client: QueryClient) -> None:
        with pytest.raises(RuntimeError):
            client.transport

    def test_registry_shared_with_transport(self, transport: RetryingTransport) -> None:
        client = QueryClient(transport=transport)
        assert client.registry is transport.registry

    @respx.mock
    async def test_get_query(self, transport: RetryingTransport) -> None:
        route = respx.get(f"{BASE}/analytics", params={"year": "2024"}).mock(
            return_value=httpx.Response(200, json={"avg": 4.4})
        )
        client = QueryClient(transport=transport)

        async with client.get_query("/analytics", {"year": 2024}) as query:
            await query.wait_mounted()
            assert query.key == 'GET:/analytics:{"year":2024}'
            assert query.data == {"avg": 4.4}

        assert route.call_count == 1
        assert client.read(make_key("GET", "/analytics", {"year": 2024})) == {"avg": 4.4}

    @respx.mock
    async def test_get_query_failure_keeps_error(
        self, transport: RetryingTransport, session: AuthSession, redirects: list[str]
    ) -> None:
        respx.get(f"{BASE}/hotels").mock(return_value=httpx.Response(401))
        session.set_auth("expired")
        client = QueryClient(transport=transport)

        query = client.get_query("/hotels", options=QueryOptions())
        await query.fetch()

        assert query.error is not None
        assert query.error.status_code == 401
        assert redirects == ["/login"]

    @respx.mock
    async def test_mutation_then_query_refetches(self, transport: RetryingTransport) -> None:
        hotels = respx.get(f"{BASE}/hotels").mock(
            side_effect=[
                httpx.Response(200, json=["h1"]),
                httpx.Response(200, json=["h1", "h2"]),
            ]
        )
        respx.post(f"{BASE}/hotels").mock(return_value=httpx.Response(201, json={"id": "h2"}))
        client = QueryClient(transport=transport)
        hotels_key = make_key("GET", "/hotels")

        query = client.get_query("/hotels", refetch_on_mount=False)
        await query.fetch()
        assert query.data == ["h1"]

        @client.mutation(invalidate_keys=[hotels_key])
        async def create_hotel(payload: dict) -> dict:
            return await client.transport.post("/hotels", payload)

        await create_hotel.mutate({"name": "Seaside"})
        await query.fetch()

        assert query.data == ["h1", "h2"]
        assert hotels.call_count == 2


class TestFromSettings:
    """Construction from Settings."""

    async def test_from_settings(self) -> None:
        settings = Settings(
            _env_file=None,
            api_url="https://hotels.example.com/api/",
            default_ttl="1m",
            cache_max_items=10,
            request_timeout=5,
        )
        client = QueryClient.from_settings(settings)
        try:
            assert client.registry is client.transport.registry
            assert client.query("k", lambda: None).options.ttl_ms == 60_000
        finally:
            await client.close()


class TestSharedClient:
    """Process-wide client helpers."""

    async def test_set_and_get(self, client: QueryClient) -> None:
        set_query_client(client)
        try:
            assert get_query_client() is client
        finally:
            set_query_client(None)

    async def test_close_query_client(self, transport: RetryingTransport) -> None:
        client = QueryClient(transport=transport)
        set_query_client(client)
        await close_query_client()
        set_query_client(None)
        await close_query_client()  # nothing to close

    async def test_close_cancels_in_flight(self, client: QueryClient) -> None:
        async def forever() -> None:
            await asyncio.Event().wait()

        waiter = asyncio.create_task(client.registry.run("k", forever))
        await asyncio.sleep(0)
        async with client:
            pass
        with pytest.raises(asyncio.CancelledError):
            await waiter
