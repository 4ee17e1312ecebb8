"""Option structs for queries and mutations."""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from fetchcache.duration import parse_duration
from fetchcache.types import DEFAULT_TTL, Duration

T = TypeVar("T")
V = TypeVar("V")


@dataclass(frozen=True, slots=True)
class QueryOptions:
    """Per-query configuration, validated at construction.

    Attributes:
        enabled: When False, fetch() is a no-op.
        ttl: Freshness window for cached data (default 5 minutes).
        refetch_on_mount: Fetch on start even when a fresh entry exists.
        refetch_interval: Poll period; None or 0 disables polling.
    """

    enabled: bool = True
    ttl: Duration = DEFAULT_TTL
    refetch_on_mount: bool = True
    refetch_interval: Duration | None = None

    def __post_init__(self) -> None:
        parse_duration(self.ttl)
        if self.refetch_interval is not None:
            parse_duration(self.refetch_interval)

    @property
    def ttl_ms(self) -> int:
        return parse_duration(self.ttl)

    @property
    def refetch_interval_ms(self) -> int | None:
        if self.refetch_interval is None:
            return None
        return parse_duration(self.refetch_interval) or None


@dataclass(frozen=True, slots=True)
class MutationOptions(Generic[T, V]):
    """Configuration for a mutation.

    Exactly one of on_success / on_error fires per mutate() call.
    """

    invalidate_keys: Sequence[str] = ()
    on_success: Callable[[T, V], Any] | None = None
    on_error: Callable[[BaseException, V], Any] | None = None

    def __post_init__(self) -> None:
        if isinstance(self.invalidate_keys, str):
            raise TypeError("invalidate_keys must be a sequence of keys, not a str")


__all__ = ["MutationOptions", "QueryOptions"]
