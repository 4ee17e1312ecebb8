"""Local authentication state consumed by the transport."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from loguru import logger


@dataclass
class AuthSession:
    """Holds the bearer token and user of the current session.

    ``on_logout`` callbacks run after the state is cleared, e.g. to drop
    persisted credentials.
    """

    token: str | None = None
    user: dict[str, Any] | None = None
    on_logout: list[Callable[[], None]] = field(default_factory=list)

    @property
    def is_authenticated(self) -> bool:
        return self.token is not None

    def set_auth(self, token: str, user: dict[str, Any] | None = None) -> None:
        self.token = token
        self.user = user

    def logout(self) -> None:
        """Clear all local authentication state."""
        self.token = None
        self.user = None
        logger.info("session cleared")
        for callback in list(self.on_logout):
            callback()

    def auth_headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}


__all__ = ["AuthSession"]
