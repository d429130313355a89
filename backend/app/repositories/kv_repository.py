"""Durable key/value persistence used for client-side state."""

from __future__ import annotations

from typing import Protocol

from sqlalchemy.orm import Session, sessionmaker

from app.models import KeyValueEntry, utcnow


class KeyValueStore(Protocol):
    """Minimal persistence primitive: string values addressed by string keys."""

    def get(self, key: str) -> str | None:
        """Return the stored value or ``None`` when the key is unknown."""

    def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""


class InMemoryKeyValueStore:
    """Process-local store; contents vanish with the process."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class SqlKeyValueStore:
    """Key/value store backed by the ``kv_entries`` table."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def get(self, key: str) -> str | None:
        with self._session_factory() as session:
            entry = session.get(KeyValueEntry, key)
            return entry.value if entry is not None else None

    def set(self, key: str, value: str) -> None:
        with self._session_factory() as session:
            entry = session.get(KeyValueEntry, key)
            if entry is None:
                session.add(KeyValueEntry(key=key, value=value, updated_at=utcnow()))
            else:
                entry.value = value
            session.commit()
