"""Exceptions raised by the fetch layer."""

from __future__ import annotations

from typing import Any


class FetchCacheError(Exception):
    """Base exception for fetchcache errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class UnauthenticatedError(FetchCacheError):
    """The backend rejected the session (401). The session has been cleared."""

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"Unauthenticated request to {url}", status_code=401)


class RateLimitedError(FetchCacheError):
    """Still rate limited (429) after the single delayed retry."""

    def __init__(self, url: str, retry_after: float | None = None) -> None:
        self.url = url
        self.retry_after = retry_after
        msg = f"Rate limit exceeded for {url}"
        if retry_after:
            msg += f", retry after {retry_after}s"
        super().__init__(msg, status_code=429)


class HTTPStatusError(FetchCacheError):
    """The backend answered with an error status."""

    def __init__(self, status_code: int, message: str, response: Any = None) -> None:
        self.message = message
        self.response = response
        super().__init__(f"HTTP {status_code}: {message}", status_code=status_code)


class RequestTimeoutError(FetchCacheError):
    """Request exceeded the overall transport timeout."""

    def __init__(self, url: str, timeout: float | None) -> None:
        self.url = url
        self.timeout = timeout
        super().__init__(f"Request to {url} timed out after {timeout}s")


class TransportError(FetchCacheError):
    """Connection-level failure (DNS, refused connection, broken stream)."""


__all__ = [
    "FetchCacheError",
    "HTTPStatusError",
    "RateLimitedError",
    "RequestTimeoutError",
    "TransportError",
    "UnauthenticatedError",
]
