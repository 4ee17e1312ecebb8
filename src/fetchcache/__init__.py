"""fetchcache - Async query/mutation cache for REST clients."""

from loguru import logger

from fetchcache.auth import AuthSession
from fetchcache.client import (
    QueryClient,
    close_query_client,
    get_query_client,
    set_query_client,
)
from fetchcache.config import Settings, get_settings
from fetchcache.debounce import (
    AsyncDebouncer,
    Debouncer,
    RateLimiter,
    Throttler,
    debounce,
    debounce_async,
)

# Duration parsing
from fetchcache.duration import parse_duration
from fetchcache.errors import (
    FetchCacheError,
    HTTPStatusError,
    RateLimitedError,
    RequestTimeoutError,
    TransportError,
    UnauthenticatedError,
)
from fetchcache.inflight import InFlightRegistry
from fetchcache.keys import make_key
from fetchcache.log import setup_logging
from fetchcache.mutation import Mutation
from fetchcache.options import MutationOptions, QueryOptions
from fetchcache.query import Query
from fetchcache.timed_cache import TimedCache
from fetchcache.transport import RetryingTransport

# Core types
from fetchcache.types import (
    CacheEntry,
    Duration,
    MutationState,
    QueryState,
    QueryStatus,
)

# Silent by default; applications opt in with setup_logging() or logger.enable()
logger.disable("fetchcache")

__version__ = "0.1.0"

__all__ = [
    "AsyncDebouncer",
    "AuthSession",
    "CacheEntry",
    "Debouncer",
    "Duration",
    "FetchCacheError",
    "HTTPStatusError",
    "InFlightRegistry",
    "Mutation",
    "MutationOptions",
    "MutationState",
    "Query",
    "QueryClient",
    "QueryOptions",
    "QueryState",
    "QueryStatus",
    "RateLimitedError",
    "RateLimiter",
    "RequestTimeoutError",
    "RetryingTransport",
    "Settings",
    "Throttler",
    "TimedCache",
    "TransportError",
    "UnauthenticatedError",
    "close_query_client",
    "debounce",
    "debounce_async",
    "get_query_client",
    "get_settings",
    "make_key",
    "parse_duration",
    "set_query_client",
    "setup_logging",
]
