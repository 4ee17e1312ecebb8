"""Debounce, throttle and rate-limit coordination on the asyncio event loop."""

from __future__ import annotations

import asyncio
import inspect
import math
import time
from collections import deque
from collections.abc import Callable
from functools import partial, wraps
from typing import Any, ParamSpec

from loguru import logger

from fetchcache.duration import to_seconds
from fetchcache.types import Duration

P = ParamSpec("P")

DEFAULT_DELAY: Duration = 300


class _Invoker:
    """Runs callbacks, tracking coroutine results as background tasks."""

    def __init__(self) -> None:
        self._background_tasks: set[asyncio.Future[Any]] = set()

    def invoke(self, callback: Callable[..., Any], args: tuple[Any, ...]) -> None:
        result = callback(*args)
        if inspect.isawaitable(result):
            self._track(asyncio.ensure_future(result))

    def _track(self, task: asyncio.Future[Any]) -> None:
        self._background_tasks.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Future[Any]) -> None:
        self._background_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.opt(exception=task.exception()).error("debounced callback failed")

    async def drain(self) -> None:
        """Wait for callbacks that are still running."""
        while self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)


class Debouncer(_Invoker):
    """Collapses bursts of calls into one, after a quiet period.

    Each schedule() cancels the call scheduled before it, so only the
    last call of a burst runs, with its own arguments. Discarded calls
    have no side effects.

    Usage:
        debouncer = Debouncer(delay=300)
        for year in (2022, 2023, 2024):
            debouncer.schedule(query.set_key, make_key("GET", "/stats", {"year": year}))
        # only the 2024 key is fetched, ~300ms after the last call
    """

    def __init__(self, delay: Duration = DEFAULT_DELAY) -> None:
        super().__init__()
        self._delay = to_seconds(delay)
        self._handle: asyncio.TimerHandle | None = None
        self._pending: tuple[Callable[..., Any], tuple[Any, ...]] | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(
        self,
        callback: Callable[..., Any],
        *args: Any,
        delay: Duration | None = None,
    ) -> None:
        """Run ``callback(*args)`` after ``delay`` unless rescheduled first."""
        self.cancel()
        loop = asyncio.get_running_loop()
        seconds = self._delay if delay is None else to_seconds(delay)
        self._pending = (callback, args)
        self._handle = loop.call_later(seconds, self._fire)

    def cancel(self) -> bool:
        """Drop the pending call. Returns True if one was pending."""
        if self._handle is None:
            return False
        self._handle.cancel()
        self._handle = None
        self._pending = None
        return True

    def flush(self) -> bool:
        """Run the pending call now. Returns True if one was pending."""
        pending = self._pending
        if not self.cancel() or pending is None:
            return False
        self.invoke(*pending)
        return True

    def _fire(self) -> None:
        pending = self._pending
        self._handle = None
        self._pending = None
        if pending is not None:
            self.invoke(*pending)


class Throttler(_Invoker):
    """Runs at most one call per interval.

    The first call runs immediately; calls inside the interval collapse
    into a single trailing call made with the latest arguments.
    """

    def __init__(self, interval: Duration) -> None:
        super().__init__()
        self._interval = to_seconds(interval)
        self._last = -math.inf
        self._handle: asyncio.TimerHandle | None = None
        self._pending: tuple[Callable[..., Any], tuple[Any, ...]] | None = None

    def call(self, callback: Callable[..., Any], *args: Any) -> None:
        loop = asyncio.get_running_loop()
        now = loop.time()
        elapsed = now - self._last
        if elapsed >= self._interval:
            if self._handle is not None:
                self._handle.cancel()
                self._handle = None
                self._pending = None
            self._last = now
            self.invoke(callback, args)
            return
        self._pending = (callback, args)
        if self._handle is None:
            self._handle = loop.call_later(self._interval - elapsed, self._fire_trailing)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._pending = None

    def _fire_trailing(self) -> None:
        pending = self._pending
        self._handle = None
        self._pending = None
        self._last = asyncio.get_running_loop().time()
        if pending is not None:
            self.invoke(*pending)


class AsyncDebouncer(_Invoker):
    """Debouncer whose calls return an awaitable of the result.

    Every call in a burst gets the same future, resolved with the result
    (or exception) of the one call that actually runs.

    Usage:
        debouncer = AsyncDebouncer(delay=300)
        stats = await debouncer.call(client.transport.get, "/stats")
    """

    def __init__(self, delay: Duration = DEFAULT_DELAY) -> None:
        super().__init__()
        self._delay = to_seconds(delay)
        self._handle: asyncio.TimerHandle | None = None
        self._pending: tuple[Callable[..., Any], tuple[Any, ...]] | None = None
        self._future: asyncio.Future[Any] | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def call(self, callback: Callable[..., Any], *args: Any) -> asyncio.Future[Any]:
        """Schedule ``callback(*args)`` and return the future for this burst."""
        loop = asyncio.get_running_loop()
        if self._handle is not None:
            self._handle.cancel()
        if self._future is None or self._future.done():
            self._future = loop.create_future()
        self._pending = (callback, args)
        self._handle = loop.call_later(self._delay, self._fire)
        return self._future

    def cancel(self) -> bool:
        """Drop the pending call and cancel its future."""
        if self._handle is None:
            return False
        self._handle.cancel()
        self._handle = None
        self._pending = None
        if self._future is not None:
            self._future.cancel()
            self._future = None
        return True

    def _fire(self) -> None:
        pending, future = self._pending, self._future
        self._handle = None
        self._pending = None
        self._future = None
        if pending is None or future is None:
            return
        self._track(asyncio.ensure_future(self._resolve(future, *pending)))

    @staticmethod
    async def _resolve(
        future: asyncio.Future[Any],
        callback: Callable[..., Any],
        args: tuple[Any, ...],
    ) -> None:
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            if not future.done():
                future.set_exception(e)
        else:
            if not future.done():
                future.set_result(result)


class RateLimiter(_Invoker):
    """Allows at most ``max_calls`` calls per sliding ``window``.

    Calls over the limit are dropped, not queued.
    """

    def __init__(
        self,
        max_calls: int,
        window: Duration,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_calls < 1:
            raise ValueError(f"max_calls must be at least 1: {max_calls!r}")
        super().__init__()
        self._max_calls = max_calls
        self._window = to_seconds(window)
        self._clock = clock
        self._calls: deque[float] = deque()

    @property
    def remaining(self) -> int:
        self._prune(self._clock())
        return self._max_calls - len(self._calls)

    def call(self, callback: Callable[..., Any], *args: Any) -> bool:
        """Run ``callback(*args)`` if the window has room. Returns whether it ran."""
        now = self._clock()
        self._prune(now)
        if len(self._calls) >= self._max_calls:
            logger.warning(
                "Rate limit exceeded ({} calls per {}s), call dropped",
                self._max_calls,
                self._window,
            )
            return False
        self._calls.append(now)
        self.invoke(callback, args)
        return True

    def _prune(self, now: float) -> None:
        while self._calls and self._calls[0] < now - self._window:
            self._calls.popleft()


def debounce(delay: Duration = DEFAULT_DELAY) -> Callable[[Callable[P, Any]], Callable[P, None]]:
    """Decorator form of Debouncer.

    The wrapped function returns immediately; the original runs once the
    calls stop for ``delay``. The debouncer is exposed as ``.debouncer``
    for cancel()/flush().

    Usage:
        @debounce("300ms")
        async def on_filter_change(filters: dict) -> None:
            await query.set_key(make_key("GET", "/analytics", filters))
    """

    def decorator(fn: Callable[P, Any]) -> Callable[P, None]:
        debouncer = Debouncer(delay)

        @wraps(fn)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> None:
            debouncer.schedule(partial(fn, *args, **kwargs))

        wrapper.debouncer = debouncer  # type: ignore[attr-defined]
        return wrapper

    return decorator


def debounce_async(
    delay: Duration = DEFAULT_DELAY,
) -> Callable[[Callable[P, Any]], Callable[P, asyncio.Future[Any]]]:
    """Decorator form of AsyncDebouncer.

    Each call returns a future; all calls of a burst resolve with the
    result of the last one, which is the only one that runs.

    Usage:
        @debounce_async("300ms")
        async def search_hotels(term: str) -> list[dict]:
            return await transport.get("/hotels", params={"q": term})

        hotels = await search_hotels("sea")
    """

    def decorator(fn: Callable[P, Any]) -> Callable[P, asyncio.Future[Any]]:
        debouncer = AsyncDebouncer(delay)

        @wraps(fn)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> asyncio.Future[Any]:
            return debouncer.call(partial(fn, *args, **kwargs))

        wrapper.debouncer = debouncer  # type: ignore[attr-defined]
        return wrapper

    return decorator



__all__ = [
    "DEFAULT_DELAY",
    "AsyncDebouncer",
    "Debouncer",
    "RateLimiter",
    "Throttler",
    "debounce",
    "debounce_async",
]
