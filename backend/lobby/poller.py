"""Timer-driven session status polling."""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Callable

from loguru import logger

from app.domain import PollCycleResult, Session

from .client import ScrutinyClient
from .credentials import CredentialProvider
from .errors import LobbyError, MalformedResponse, MissingCredential, log_task_failure
from .normalize import normalize_session

UpdateCallback = Callable[[Session], None]
ErrorCallback = Callable[[LobbyError], None]


class SessionPoller:
    """Polls one session and publishes normalized snapshots.

    Cycles are independent asyncio tasks and may overlap when the backend is
    slow. ``stop()`` bumps the generation counter and cancels everything, and
    every cycle checks its generation before publishing, so nothing reaches
    the callbacks once ``stop()`` has returned.
    """

    def __init__(self, client: ScrutinyClient, credentials: CredentialProvider) -> None:
        self._client = client
        self._credentials = credentials
        self._generation = 0
        self._timer: asyncio.Task[None] | None = None
        self._inflight: set[asyncio.Task[None]] = set()
        self.session_id: str | None = None
        self.last_session: Session | None = None
        self._warned_missing_token = False

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def start(
        self,
        session_id: str,
        interval_ms: int,
        on_update: UpdateCallback,
        on_error: ErrorCallback | None = None,
    ) -> Callable[[], None]:
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        self.stop()

        self.session_id = str(session_id)
        self.last_session = None
        self._warned_missing_token = False
        generation = self._generation
        logger.info("Polling session {} every {}ms", self.session_id, interval_ms)
        self._timer = asyncio.get_running_loop().create_task(
            self._run(generation, self.session_id, interval_ms / 1000, on_update, on_error)
        )
        self._timer.add_done_callback(log_task_failure)
        return self.stop

    def stop(self) -> None:
        self._generation += 1
        if self._timer is not None:
            if not self._timer.done():
                logger.info("Stopped polling session {}", self.session_id)
            self._timer.cancel()
            self._timer = None
        for task in list(self._inflight):
            task.cancel()
        self._inflight.clear()

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    async def _run(
        self,
        generation: int,
        session_id: str,
        interval: float,
        on_update: UpdateCallback,
        on_error: ErrorCallback | None,
    ) -> None:
        while self._is_current(generation):
            task = asyncio.create_task(
                self._cycle(generation, session_id, on_update, on_error)
            )
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
            task.add_done_callback(log_task_failure)
            await asyncio.sleep(interval)

    async def _access_token(self) -> str | None:
        try:
            token = await self._credentials.get_current_access_token()
        except Exception as exc:
            logger.warning("Credential lookup failed, polling without a token: {}", exc)
            return None
        if not token:
            if not self._warned_missing_token:
                logger.warning(
                    "{}: polling session {} without a token", MissingCredential.kind, self.session_id
                )
                self._warned_missing_token = True
            return None
        return token

    async def poll_once(self, session_id: str) -> PollCycleResult:
        """Run one probe-and-normalize cycle without publishing it."""

        token = await self._access_token()
        outcome = await self._client.fetch_session(session_id, token)
        if not outcome.ok:
            return PollCycleResult(failure=outcome.failure)

        raw = outcome.payload
        session = normalize_session(raw)
        if session is None:
            return PollCycleResult(
                failure=MalformedResponse("Session endpoint returned an empty body", url=outcome.url)
            )
        if session.id is None:
            session = dataclasses.replace(session, id=session_id)
        return PollCycleResult(session=session)

    async def _cycle(
        self,
        generation: int,
        session_id: str,
        on_update: UpdateCallback,
        on_error: ErrorCallback | None,
    ) -> None:
        try:
            result = await self.poll_once(session_id)
        except Exception as exc:
            logger.exception("Unexpected error while polling session {}", session_id)
            result = PollCycleResult(failure=LobbyError(f"Unexpected poll error: {exc}"))

        if not self._is_current(generation):
            return

        if result.session is not None:
            self.last_session = result.session
            on_update(result.session)
        elif result.failure is not None:
            logger.warning("Poll of session {} failed: {}", session_id, result.failure)
            if on_error is not None:
                on_error(result.failure)
