from __future__ import annotations

import json
import threading

from loguru import logger

from app.repositories import KeyValueStore

SESSION_PREFIX = "s:"
QUIZ_PREFIX = "q:"


def session_key(session_id: str) -> str:
    return f"{SESSION_PREFIX}{session_id}"


def quiz_key(quiz_id: str) -> str:
    return f"{QUIZ_PREFIX}{quiz_id}"


class SubmissionDedupTracker:
    """Append-only set of sessions and quizzes the participant already submitted.

    The set is loaded from ``store`` once and the whole set is written back
    after every change. Polling keeps running after a submission, so the
    activation controller asks this tracker before re-opening a quiz.
    """

    def __init__(self, store: KeyValueStore, *, storage_key: str = "submittedSessions") -> None:
        self._store = store
        self._storage_key = storage_key
        self._lock = threading.Lock()
        self._keys: set[str] = self._load()

    def _load(self) -> set[str]:
        raw = self._store.get(self._storage_key)
        if not raw:
            return set()
        try:
            decoded = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring unreadable dedup state under {}", self._storage_key)
            return set()
        if not isinstance(decoded, list):
            logger.warning("Ignoring dedup state under {}: expected a list", self._storage_key)
            return set()
        return {str(item) for item in decoded if isinstance(item, str) and item}

    def has(self, key: str) -> bool:
        return key in self._keys

    def has_session(self, session_id: str | None) -> bool:
        return bool(session_id) and self.has(session_key(session_id))

    def has_quiz(self, quiz_id: str | None) -> bool:
        return bool(quiz_id) and self.has(quiz_key(quiz_id))

    def is_consumed(self, session_id: str | None, quiz_id: str | None) -> bool:
        return self.has_session(session_id) or self.has_quiz(quiz_id)

    def add(self, session_id: str | None = None, quiz_id: str | None = None) -> None:
        new_keys = set()
        if session_id:
            new_keys.add(session_key(session_id))
        if quiz_id:
            new_keys.add(quiz_key(quiz_id))

        with self._lock:
            if new_keys <= self._keys:
                return
            self._keys |= new_keys
            self._store.set(self._storage_key, json.dumps(sorted(self._keys)))
        logger.info("Recorded submission for session={} quiz={}", session_id, quiz_id)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    def __len__(self) -> int:
        return len(self._keys)

    def __bool__(self) -> bool:
        return True
