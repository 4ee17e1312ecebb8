"""Tests for debounce, throttle and rate-limit coordination."""

import asyncio

import pytest
from loguru import logger

from fetchcache import (
    AsyncDebouncer,
    Debouncer,
    RateLimiter,
    Throttler,
    debounce,
    debounce_async,
)


class TestDebouncer:
    """Only the last call of a burst runs."""

    async def test_burst_runs_last_call_only(self) -> None:
        """Calls at 0, 100 and 200ms with a 300ms delay fire once, at ~500ms."""
        loop = asyncio.get_running_loop()
        fired: list[tuple[int, float]] = []
        debouncer = Debouncer(delay=300)
        started = loop.time()

        def record(year: int) -> None:
            fired.append((year, loop.time() - started))

        debouncer.schedule(record, 2022)
        await asyncio.sleep(0.1)
        debouncer.schedule(record, 2023)
        await asyncio.sleep(0.1)
        debouncer.schedule(record, 2024)

        await asyncio.sleep(0.2)
        assert fired == []
        assert debouncer.pending

        await asyncio.sleep(0.2)
        assert [year for year, _ in fired] == [2024]
        assert fired[0][1] >= 0.45
        assert not debouncer.pending

    async def test_per_call_delay(self) -> None:
        fired: list[str] = []
        debouncer = Debouncer(delay="1s")
        debouncer.schedule(fired.append, "fast", delay="10ms")
        await asyncio.sleep(0.05)
        assert fired == ["fast"]

    async def test_cancel(self) -> None:
        fired: list[int] = []
        debouncer = Debouncer(delay="10ms")
        debouncer.schedule(fired.append, 1)

        assert debouncer.cancel() is True
        assert debouncer.cancel() is False
        await asyncio.sleep(0.03)
        assert fired == []

    async def test_flush_runs_pending_now(self) -> None:
        fired: list[int] = []
        debouncer = Debouncer(delay="1s")
        debouncer.schedule(fired.append, 7)

        assert debouncer.flush() is True
        assert fired == [7]
        assert debouncer.flush() is False

    async def test_coroutine_callback(self) -> None:
        fired: list[str] = []

        async def apply(value: str) -> None:
            await asyncio.sleep(0)
            fired.append(value)

        debouncer = Debouncer(delay="5ms")
        debouncer.schedule(apply, "x")
        await asyncio.sleep(0.02)
        await debouncer.drain()
        assert fired == ["x"]

    async def test_failing_callback_does_not_break_debouncer(self) -> None:
        fired: list[int] = []

        async def boom(_: int) -> None:
            raise RuntimeError("handler failed")

        debouncer = Debouncer(delay="5ms")
        debouncer.schedule(boom, 1)
        await asyncio.sleep(0.02)
        await debouncer.drain()

        debouncer.schedule(fired.append, 2)
        await asyncio.sleep(0.02)
        assert fired == [2]


class TestDebounceDecorator:
    """@debounce wraps a function."""

    async def test_decorated_function(self) -> None:
        seen: list[dict] = []

        @debounce("20ms")
        def on_filter_change(filters: dict) -> None:
            seen.append(filters)

        on_filter_change({"year": 2023})
        on_filter_change({"year": 2024})
        assert on_filter_change.debouncer.pending

        await asyncio.sleep(0.05)
        assert seen == [{"year": 2024}]

    async def test_keyword_arguments(self) -> None:
        seen: list[tuple] = []

        @debounce("5ms")
        def search(term: str, *, page: int = 1) -> None:
            seen.append((term, page))

        search("sea", page=2)
        assert search.debouncer.flush() is True
        assert seen == [("sea", 2)]


class TestThrottler:
    """At most one call per interval."""

    async def test_leading_call_runs_immediately(self) -> None:
        fired: list[int] = []
        throttler = Throttler("50ms")
        throttler.call(fired.append, 1)
        assert fired == [1]
        throttler.cancel()

    async def test_trailing_call_uses_latest_args(self) -> None:
        fired: list[int] = []
        throttler = Throttler("50ms")

        throttler.call(fired.append, 1)
        throttler.call(fired.append, 2)
        throttler.call(fired.append, 3)
        assert fired == [1]

        await asyncio.sleep(0.08)
        assert fired == [1, 3]

    async def test_cancel_drops_trailing_call(self) -> None:
        fired: list[int] = []
        throttler = Throttler("30ms")
        throttler.call(fired.append, 1)
        throttler.call(fired.append, 2)
        throttler.cancel()

        await asyncio.sleep(0.05)
        assert fired == [1]


class TestAsyncDebouncer:
    """Debounced calls that return the result of the call that ran."""

    async def test_burst_shares_one_result(self) -> None:
        calls: list[int] = []

        async def load(year: int) -> dict:
            calls.append(year)
            return {"year": year}

        debouncer = AsyncDebouncer(delay="20ms")
        first = debouncer.call(load, 2022)
        second = debouncer.call(load, 2023)
        last = debouncer.call(load, 2024)

        assert first is second is last
        assert await last == {"year": 2024}
        assert calls == [2024]

    async def test_sync_callback_result(self) -> None:
        debouncer = AsyncDebouncer(delay="5ms")
        assert await debouncer.call(lambda x: x * 2, 21) == 42

    async def test_error_resolves_future(self) -> None:
        async def boom() -> None:
            raise RuntimeError("search failed")

        debouncer = AsyncDebouncer(delay="5ms")
        with pytest.raises(RuntimeError, match="search failed"):
            await debouncer.call(boom)

    async def test_new_burst_gets_new_future(self) -> None:
        debouncer = AsyncDebouncer(delay="5ms")
        first = debouncer.call(str, 1)
        assert await first == "1"

        second = debouncer.call(str, 2)
        assert second is not first
        assert await second == "2"

    async def test_cancel(self) -> None:
        fired: list[int] = []
        debouncer = AsyncDebouncer(delay="10ms")
        future = debouncer.call(fired.append, 1)

        assert debouncer.cancel() is True
        assert future.cancelled()
        assert debouncer.cancel() is False
        await asyncio.sleep(0.03)
        assert fired == []

    async def test_decorator(self) -> None:
        calls: list[str] = []

        @debounce_async("20ms")
        async def search(term: str) -> list[str]:
            calls.append(term)
            return [f"{term}side"]

        results = await asyncio.gather(search("s"), search("se"), search("sea"))

        assert results == [["seaside"]] * 3
        assert calls == ["sea"]
        assert not search.debouncer.pending


class TestRateLimiter:
    """Sliding-window limit; excess calls are dropped."""

    def test_drops_calls_over_limit(self, clock) -> None:
        fired: list[int] = []
        limiter = RateLimiter(3, "1s", clock=clock)

        results = [limiter.call(fired.append, i) for i in range(5)]

        assert results == [True, True, True, False, False]
        assert fired == [0, 1, 2]
        assert limiter.remaining == 0

    def test_window_slides(self, clock) -> None:
        fired: list[int] = []
        limiter = RateLimiter(2, "1s", clock=clock)
        limiter.call(fired.append, 1)
        clock.advance(0.5)
        limiter.call(fired.append, 2)

        clock.advance(0.5)  # first call exactly one window old
        assert limiter.call(fired.append, 3) is False

        clock.advance(0.001)
        assert limiter.call(fired.append, 4) is True
        assert fired == [1, 2, 4]

    def test_drop_logs_warning(self, clock) -> None:
        messages: list[str] = []
        logger.enable("fetchcache")
        sink_id = logger.add(messages.append, level="WARNING", format="{message}")
        try:
            limiter = RateLimiter(1, "1s", clock=clock)
            limiter.call(lambda: None)
            limiter.call(lambda: None)
        finally:
            logger.remove(sink_id)
            logger.disable("fetchcache")

        assert len(messages) == 1
        assert "call dropped" in messages[0]

    def test_invalid_max_calls(self) -> None:
        with pytest.raises(ValueError):
            RateLimiter(0, "1s")

    async def test_coroutine_callback(self, clock) -> None:
        fired: list[str] = []

        async def send(event: str) -> None:
            await asyncio.sleep(0)
            fired.append(event)

        limiter = RateLimiter(5, "1m", clock=clock)
        assert limiter.call(send, "view") is True
        await limiter.drain()
        assert fired == ["view"]
