"""Core types for the fetchcache library."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")

# "30s", "5m", "2h", "1d", a timedelta, or milliseconds
Duration = str | int | timedelta

Fetcher = Callable[[], Awaitable[T]]

DEFAULT_TTL: Duration = "5m"


@dataclass(frozen=True, slots=True)
class CacheEntry(Generic[T]):
    """A cached value with the time it was stored."""

    key: str
    value: T
    stored_at: float  # clock seconds at insertion


class QueryStatus(str, Enum):
    """Lifecycle of a query subscription."""

    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class QueryState(Generic[T]):
    """Immutable snapshot of a query's observable state."""

    data: T | None = None
    is_loading: bool = False
    error: BaseException | None = None
    status: QueryStatus = QueryStatus.IDLE
    updated_at: float | None = None  # cache clock seconds of the last data or error


@dataclass(slots=True)
class MutationState(Generic[T]):
    """Observable state of a mutation."""

    data: T | None = None
    is_loading: bool = False
    error: BaseException | None = None
