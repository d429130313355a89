"""Credential provider contracts consumed by the lobby client."""

from __future__ import annotations

from typing import Protocol

from app.core.config import Settings, get_settings


class CredentialProvider(Protocol):
    """Source of the current user's bearer token."""

    async def get_current_access_token(self) -> str | None:
        """Return the access token, or ``None`` when signed out."""


class StaticCredentialProvider:
    """Hands out a fixed token (or none)."""

    def __init__(self, token: str | None = None) -> None:
        self._token = token or None

    async def get_current_access_token(self) -> str | None:
        return self._token


class EnvironmentCredentialProvider:
    """Reads ``ACCESS_TOKEN`` from the resolved settings on every call."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings

    async def get_current_access_token(self) -> str | None:
        settings = self._settings or get_settings()
        return settings.access_token


__all__ = [
    "CredentialProvider",
    "EnvironmentCredentialProvider",
    "StaticCredentialProvider",
]
