"""HTTP transport with authentication and rate-limit handling."""

from __future__ import annotations

import asyncio
import math
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import httpx
from loguru import logger

from fetchcache.auth import AuthSession
from fetchcache.config import DEFAULT_API_URL, Settings
from fetchcache.errors import (
    HTTPStatusError,
    RateLimitedError,
    RequestTimeoutError,
    TransportError,
    UnauthenticatedError,
)
from fetchcache.inflight import InFlightRegistry
from fetchcache.keys import make_key
from fetchcache.types import Fetcher

DEFAULT_RATE_LIMIT_WAIT_MS = 5000
MAX_RATE_LIMIT_WAIT_MS = 300_000


def parse_retry_after(value: str | None, default_ms: int = DEFAULT_RATE_LIMIT_WAIT_MS) -> int:
    """Convert a ``retry-after`` header (seconds) to milliseconds.

    Absent, unparsable, negative or non-finite values fall back to
    ``default_ms``. Waits are capped at ``MAX_RATE_LIMIT_WAIT_MS``.
    """
    if value is None:
        return default_ms
    try:
        seconds = float(value.strip())
    except ValueError:
        return default_ms
    if seconds < 0 or not math.isfinite(seconds):
        return default_ms
    return int(min(seconds * 1000, MAX_RATE_LIMIT_WAIT_MS))


class RetryingTransport:
    """Async REST client used by every fetcher and mutation.

    Every request goes through two policies:

    - 401: the auth session is cleared, ``redirect(login_path)`` is called
      and the call fails with UnauthenticatedError. Never retried.
    - 429: wait for ``retry-after`` seconds (default 5s), then send the
      original request again, once. A second 429 raises RateLimitedError.

    Anything else >= 400 raises HTTPStatusError; timeouts raise
    RequestTimeoutError.

    Usage:
        async with RetryingTransport("https://api.example.com/api") as api:
            hotels = await api.get("/hotels", params={"page": 1})
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        *,
        session: AuthSession | None = None,
        timeout: float = 30.0,
        login_path: str = "/login",
        redirect: Callable[[str], Any] | None = None,
        rate_limit_wait_ms: int = DEFAULT_RATE_LIMIT_WAIT_MS,
        registry: InFlightRegistry | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        self._session = session if session is not None else AuthSession()
        self._timeout = timeout
        self._login_path = login_path
        self._redirect = redirect
        self._rate_limit_wait_ms = rate_limit_wait_ms
        self._registry = registry if registry is not None else InFlightRegistry()
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Content-Type": "application/json", **(headers or {})},
            timeout=timeout,
            event_hooks={"request": [self._inject_auth]},
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        **kwargs: Any,
    ) -> RetryingTransport:
        return cls(
            settings.api_url,
            timeout=settings.request_timeout,
            login_path=settings.login_path,
            rate_limit_wait_ms=settings.rate_limit_wait_ms,
            **kwargs,
        )

    @property
    def session(self) -> AuthSession:
        return self._session

    @property
    def registry(self) -> InFlightRegistry:
        return self._registry

    async def _inject_auth(self, request: httpx.Request) -> None:
        request.headers.update(self._session.auth_headers())

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        """Send a request and return the decoded JSON body (None if empty)."""
        request = self._client.build_request(
            method,
            path,
            params=dict(params) if params else None,
            json=json,
            headers=dict(headers) if headers else None,
        )
        response = await self.send(request)
        return self._decode(response)

    async def send(self, request: httpx.Request) -> httpx.Response:
        """Send a prepared request, applying the auth and rate-limit policies."""
        response = await self._dispatch(request)
        if response.status_code == httpx.codes.TOO_MANY_REQUESTS:
            wait_ms = parse_retry_after(
                response.headers.get("retry-after"), self._rate_limit_wait_ms
            )
            logger.warning(
                "Rate limited on {} {}. Retrying after {}ms",
                request.method,
                request.url,
                wait_ms,
            )
            await self._sleep(wait_ms / 1000)
            # Same Request object: method, url, body and headers unchanged
            response = await self._dispatch(request)
            if response.status_code == httpx.codes.TOO_MANY_REQUESTS:
                retry_after_ms = parse_retry_after(response.headers.get("retry-after"), 0)
                raise RateLimitedError(str(request.url), retry_after_ms / 1000 or None)
        self._raise_for_status(request, response)
        return response

    async def _dispatch(self, request: httpx.Request) -> httpx.Response:
        try:
            return await self._client.send(request)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(str(request.url), self._timeout) from e
        except httpx.RequestError as e:
            raise TransportError(f"{request.method} {request.url} failed: {e}") from e

    def _raise_for_status(self, request: httpx.Request, response: httpx.Response) -> None:
        if response.status_code == httpx.codes.UNAUTHORIZED:
            self._force_logout()
            raise UnauthenticatedError(str(request.url))
        if response.is_success or response.is_redirect:
            return
        raise HTTPStatusError(
            response.status_code, self._error_message(response), response=response
        )

    def _force_logout(self) -> None:
        logger.warning("Unauthenticated response, logging out")
        self._session.logout()
        if self._redirect is not None:
            self._redirect(self._login_path)

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200] or response.reason_phrase
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        return response.reason_phrase

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    async def get(self, path: str, *, params: Mapping[str, Any] | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json: Any = None) -> Any:
        return await self.request("POST", path, json=json)

    async def put(self, path: str, json: Any = None) -> Any:
        return await self.request("PUT", path, json=json)

    async def patch(self, path: str, json: Any = None) -> Any:
        return await self.request("PATCH", path, json=json)

    async def delete(self, path: str, *, params: Mapping[str, Any] | None = None) -> Any:
        return await self.request("DELETE", path, params=params)

    async def deduplicated_get(
        self, path: str, *, params: Mapping[str, Any] | None = None
    ) -> Any:
        """GET that joins an identical request already in flight."""
        key = make_key("GET", path, params)
        return await self._registry.run(key, lambda: self.get(path, params=params))

    def fetcher(self, path: str, params: Mapping[str, Any] | None = None) -> Fetcher[Any]:
        """Build a zero-argument GET fetcher for use with queries."""

        async def fetch() -> Any:
            return await self.get(path, params=params)

        return fetch

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> RetryingTransport:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


__all__ = [
    "DEFAULT_RATE_LIMIT_WAIT_MS",
    "MAX_RATE_LIMIT_WAIT_MS",
    "RetryingTransport",
    "parse_retry_after",
]
