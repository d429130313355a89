"""Lobby state machine that hands the quiz over exactly once."""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Callable
from enum import Enum

from loguru import logger

from app.domain import Activation, Session

from .client import ScrutinyClient
from .credentials import CredentialProvider
from .dedup import SubmissionDedupTracker
from .errors import LobbyError, QuizUnresolved, log_task_failure
from .normalize import normalize_session, unwrap_quiz_payload


class ActivationState(str, Enum):
    IDLE = "idle"
    ARMED_WAITING = "armed_waiting"
    ACTIVATED = "activated"
    DONE = "done"


class LobbyActivationController:
    """Watches normalized sessions and fires the activation side effect once.

    The transition ``ARMED_WAITING -> ACTIVATED`` happens synchronously inside
    :meth:`handle_update`, so repeated ``active`` snapshots (overlapping poll
    cycles, re-deliveries) cannot start a second quiz fetch. ``DONE`` is
    terminal for the instance.
    """

    def __init__(
        self,
        session_id: str,
        *,
        client: ScrutinyClient,
        credentials: CredentialProvider,
        dedup: SubmissionDedupTracker,
        on_activated: Callable[[Activation], None],
        on_already_submitted: Callable[[], None] | None = None,
        on_error: Callable[[LobbyError], None] | None = None,
        joined_quiz_id: str | None = None,
    ) -> None:
        self.session_id = str(session_id)
        self.joined_quiz_id = joined_quiz_id or None
        self._client = client
        self._credentials = credentials
        self._dedup = dedup
        self._on_activated = on_activated
        self._on_already_submitted = on_already_submitted
        self._on_error = on_error
        self.state = ActivationState.IDLE
        self.last_session: Session | None = None
        self._task: asyncio.Task[None] | None = None
        self._done = asyncio.Event()

    @property
    def done(self) -> bool:
        return self.state is ActivationState.DONE

    def arm(self) -> None:
        if self.state is ActivationState.IDLE:
            self.state = ActivationState.ARMED_WAITING

    def handle_update(self, session: Session) -> None:
        self.last_session = session
        if self.state is not ActivationState.ARMED_WAITING:
            return
        if not session.is_active:
            return

        self.state = ActivationState.ACTIVATED
        logger.info("Session {} is active; resolving quiz", self.session_id)
        self._task = asyncio.get_running_loop().create_task(self._activate(session))
        self._task.add_done_callback(log_task_failure)

    def handle_error(self, failure: LobbyError) -> None:
        if self._on_error is not None and not self.done:
            self._on_error(failure)

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._finish()

    async def wait_done(self) -> None:
        await self._done.wait()

    def _finish(self) -> None:
        self.state = ActivationState.DONE
        self._done.set()

    def best_known_quiz_id(self, session: Session | None = None) -> str | None:
        """The join-time quiz id wins over one embedded in the session."""

        if self.joined_quiz_id:
            return self.joined_quiz_id
        if session is not None and session.quiz_id:
            return session.quiz_id
        return None

    async def _access_token(self) -> str | None:
        try:
            return await self._credentials.get_current_access_token()
        except Exception as exc:
            logger.warning("Credential lookup failed during activation: {}", exc)
            return None

    async def _refetch_session(self, token: str | None) -> Session | None:
        outcome = await self._client.fetch_session(self.session_id, token)
        if not outcome.ok:
            logger.warning("Could not refetch session {}: {}", self.session_id, outcome.failure)
            return None
        refreshed = normalize_session(outcome.payload)
        if refreshed is not None and refreshed.id is None:
            refreshed = dataclasses.replace(refreshed, id=self.session_id)
        return refreshed

    def _short_circuit(self, quiz_id: str | None) -> None:
        logger.info(
            "Submission already recorded for session {} (quiz {}); not reopening",
            self.session_id,
            quiz_id,
        )
        self._finish()
        if self._on_already_submitted is not None:
            self._on_already_submitted()

    async def _activate(self, session: Session) -> None:
        quiz_id = self.best_known_quiz_id(session)
        if self._dedup.is_consumed(self.session_id, quiz_id):
            self._short_circuit(quiz_id)
            return

        token = await self._access_token()
        canonical = session
        if quiz_id is None:
            refreshed = await self._refetch_session(token)
            if refreshed is not None:
                canonical = refreshed
                quiz_id = refreshed.quiz_id
            if self._dedup.has_quiz(quiz_id):
                self._short_circuit(quiz_id)
                return

        if quiz_id is None:
            logger.warning("Session {} is active but has no quiz yet", self.session_id)
            self.state = ActivationState.ARMED_WAITING
            if self._on_error is not None:
                self._on_error(QuizUnresolved(self.session_id))
            return

        outcome = await self._client.fetch_quiz(quiz_id, token)
        quiz = unwrap_quiz_payload(outcome.payload) if outcome.ok else None
        if quiz is None:
            logger.warning(
                "Quiz {} could not be fetched ({}); handing over the session instead",
                quiz_id,
                outcome.failure,
            )
            activation = Activation(session=self.last_session or canonical, quiz_id=quiz_id)
        else:
            logger.info("Quiz {} fetched from {}", quiz_id, outcome.url)
            activation = Activation(
                session=canonical, quiz_id=quiz_id, quiz=quiz, source_url=outcome.url
            )

        try:
            self._on_activated(activation)
        finally:
            self._finish()
