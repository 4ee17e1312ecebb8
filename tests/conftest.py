"""Shared pytest fixtures."""

import pytest

from fetchcache import AuthSession, InFlightRegistry, QueryClient, TimedCache
from fetchcache.transport import RetryingTransport


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    """Stand-in for asyncio.sleep that records requested waits."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> TimedCache:
    """Create a fresh TimedCache on a fake clock for each test."""
    return TimedCache(clock=clock)


@pytest.fixture
def registry() -> InFlightRegistry:
    return InFlightRegistry()


@pytest.fixture
def client(cache: TimedCache, registry: InFlightRegistry) -> QueryClient:
    """Create a QueryClient without a transport."""
    return QueryClient(cache=cache, registry=registry)


@pytest.fixture
def session() -> AuthSession:
    return AuthSession()


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def redirects() -> list[str]:
    return []


@pytest.fixture
async def transport(
    session: AuthSession,
    registry: InFlightRegistry,
    sleep: SleepRecorder,
    redirects: list[str],
):
    """Create a RetryingTransport against a fake base URL."""
    api = RetryingTransport(
        "https://api.test.dev/api",
        session=session,
        registry=registry,
        sleep=sleep,
        redirect=redirects.append,
    )
    yield api
    await api.close()
