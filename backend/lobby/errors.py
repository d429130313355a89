"""Typed failures raised or reported by the lobby client."""

from __future__ import annotations

import asyncio
from typing import Any

from loguru import logger


class LobbyError(Exception):
    """Base class for every failure surfaced by the lobby engine."""

    kind = "lobby-error"

    def __init__(self, message: str, *, url: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.url = url

    def __str__(self) -> str:
        if self.url:
            return f"{self.message} ({self.url})"
        return self.message


class NetworkFailure(LobbyError):
    """Transport-level failure: DNS, connection reset, timeout."""

    kind = "network"


class HttpStatusFailure(LobbyError):
    """The backend answered with a non-2xx status."""

    kind = "http-status"

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        payload: Any = None,
        url: str | None = None,
    ) -> None:
        super().__init__(message, url=url)
        self.status_code = status_code
        self.payload = payload


class MalformedResponse(LobbyError):
    """The body was markup or could not be parsed as JSON."""

    kind = "non-json"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body_preview: str | None = None,
        url: str | None = None,
    ) -> None:
        super().__init__(message, url=url)
        self.status_code = status_code
        self.body_preview = body_preview


class NoCandidateSucceeded(LobbyError):
    """Every endpoint in a candidate chain failed."""

    kind = "no-candidate-succeeded"

    def __init__(
        self,
        message: str,
        *,
        last_error: LobbyError | None = None,
        attempts: int = 0,
    ) -> None:
        super().__init__(message)
        self.last_error = last_error
        self.attempts = attempts

    def __str__(self) -> str:
        if self.last_error is not None:
            return f"{self.message}: {self.last_error}"
        return self.message


class MissingCredential(LobbyError):
    """No bearer token is available for the current user."""

    kind = "missing-credential"


class QuizUnresolved(LobbyError):
    """The session went live but no quiz id could be determined yet."""

    kind = "quiz-unresolved"

    def __init__(self, session_id: str | None) -> None:
        super().__init__(
            "The quiz for this session is not ready yet; waiting for the next update"
        )
        self.session_id = session_id


__all__ = [
    "HttpStatusFailure",
    "LobbyError",
    "MalformedResponse",
    "MissingCredential",
    "NetworkFailure",
    "NoCandidateSucceeded",
    "QuizUnresolved",
]


def log_task_failure(task: asyncio.Task[Any]) -> None:
    """Done-callback that logs exceptions escaping a fire-and-forget task."""

    if task.cancelled():
        return
    try:
        task.result()
    except Exception:
        logger.exception("Background task {} failed", task.get_name())
