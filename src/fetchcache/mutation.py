"""Mutations: writes that invalidate cached queries on success."""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from loguru import logger

from fetchcache.options import MutationOptions
from fetchcache.types import MutationState

if TYPE_CHECKING:
    from fetchcache.client import QueryClient

T = TypeVar("T")
V = TypeVar("V")


async def _call(callback: Callable[..., Any] | None, *args: Any) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class Mutation(Generic[T, V]):
    """Runs a write and purges the cache keys it makes stale.

    Usage:
        save = client.mutation(
            api_update_hotel,
            invalidate_keys=[make_key("GET", "/hotels")],
            on_error=lambda e, v: toast(str(e)),
        )
        hotel = await save.mutate({"id": "h1", "name": "Seaside"})
    """

    def __init__(
        self,
        client: QueryClient,
        fn: Callable[[V], Awaitable[T]],
        options: MutationOptions[T, V] | None = None,
    ) -> None:
        self._client = client
        self._fn = fn
        self._options: MutationOptions[T, V] = options or MutationOptions()
        self._state: MutationState[T] = MutationState()

    @property
    def state(self) -> MutationState[T]:
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

    async def mutate(self, variables: V) -> T:
        """Run the mutation.

        On success the configured keys are invalidated, ``on_success`` is
        called and the result returned. On failure ``on_error`` is called
        and the exception re-raised.
        """
        self._state.is_loading = True
        self._state.error = None
        try:
            result = await self._fn(variables)
        except Exception as e:
            self._state.error = e
            logger.debug("mutation {} failed: {!r}", _name(self._fn), e)
            await _call(self._options.on_error, e, variables)
            raise
        else:
            self._client.invalidate(*self._options.invalidate_keys)
            self._state.data = result
            await _call(self._options.on_success, result, variables)
            return result
        finally:
            self._state.is_loading = False

    async def __call__(self, variables: V) -> T:
        return await self.mutate(variables)

    def reset(self) -> None:
        self._state = MutationState()


def _name(fn: Callable[..., Any]) -> str:
    return getattr(fn, "__qualname__", repr(fn))


__all__ = ["Mutation"]
