"""Where the push channel and the HTTP client read the session token from."""

from __future__ import annotations

from typing import Protocol


class SessionTokenProvider(Protocol):
    def get_token(self) -> str | None:
        """Return the current access token, or None when logged out."""


class StaticTokenProvider:
    """In-memory provider; ``set_token`` stands in for an out-of-band refresh."""

    def __init__(self, token: str | None = None) -> None:
        self._token = token or None

    def get_token(self) -> str | None:
        return self._token

    def set_token(self, token: str | None) -> None:
        self._token = token or None

    def clear(self) -> None:
        self._token = None
