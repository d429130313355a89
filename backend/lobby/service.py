from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from loguru import logger

from app.core.config import Settings, get_settings
from app.db import build_db_components, init_db
from app.domain import Activation, JoinTicket, Session, SubmissionReceipt
from app.repositories import SqlKeyValueStore

from .activation import LobbyActivationController
from .client import ScrutinyClient
from .credentials import CredentialProvider, EnvironmentCredentialProvider
from .dedup import SubmissionDedupTracker
from .errors import LobbyError
from .poller import SessionPoller


@dataclass(slots=True)
class LobbyWatch:
    """Handle over one poller/controller pair for a single session."""

    session_id: str
    poller: SessionPoller
    controller: LobbyActivationController

    def stop(self) -> None:
        self.poller.stop()
        self.controller.cancel()

    async def wait_done(self) -> None:
        await self.controller.wait_done()

    @property
    def last_session(self) -> Session | None:
        return self.poller.last_session


class LobbyService:
    """Participant-facing flow: join, wait in the lobby, submit once."""

    def __init__(
        self,
        client: ScrutinyClient,
        credentials: CredentialProvider,
        dedup: SubmissionDedupTracker,
        *,
        settings: Settings | None = None,
    ) -> None:
        self.client = client
        self.credentials = credentials
        self.dedup = dedup
        self.settings = settings or client.settings

    async def _token(self) -> str | None:
        return await self.credentials.get_current_access_token()

    async def join(self, pin: str) -> JoinTicket:
        ticket = await self.client.join_session(pin, await self._token())
        logger.info("Joined session {} (quiz {})", ticket.session_id, ticket.quiz_id)
        return ticket

    def watch(
        self,
        session_id: str,
        *,
        on_activated: Callable[[Activation], None],
        quiz_id: str | None = None,
        interval_ms: int | None = None,
        on_session_update: Callable[[Session], None] | None = None,
        on_already_submitted: Callable[[], None] | None = None,
        on_error: Callable[[LobbyError], None] | None = None,
    ) -> LobbyWatch:
        controller = LobbyActivationController(
            session_id,
            client=self.client,
            credentials=self.credentials,
            dedup=self.dedup,
            on_activated=on_activated,
            on_already_submitted=on_already_submitted,
            on_error=on_error,
            joined_quiz_id=quiz_id,
        )
        poller = SessionPoller(self.client, self.credentials)

        def _on_update(session: Session) -> None:
            if on_session_update is not None:
                on_session_update(session)
            controller.handle_update(session)

        controller.arm()
        poller.start(
            session_id,
            interval_ms or self.settings.poll_interval_ms,
            _on_update,
            controller.handle_error,
        )
        return LobbyWatch(session_id=str(session_id), poller=poller, controller=controller)

    async def submit_answers(
        self,
        session_id: str,
        answers: Sequence[int | None],
        *,
        quiz_id: str | None = None,
    ) -> SubmissionReceipt:
        receipt = await self.client.submit_answers(
            session_id, answers, await self._token(), quiz_id=quiz_id
        )
        self.dedup.add(session_id=receipt.session_id, quiz_id=quiz_id)
        logger.info(
            "Submitted {} answers for session {}: score={} of {}",
            len(answers),
            session_id,
            receipt.score,
            receipt.total_questions,
        )
        return receipt

    async def start_session(self, session_id: str) -> Session | None:
        return await self.client.start_session(session_id, await self._token())

    async def end_session(self, session_id: str) -> Session | None:
        return await self.client.end_session(session_id, await self._token())


def build_lobby_service(
    settings: Settings | None = None,
    *,
    credentials: CredentialProvider | None = None,
) -> LobbyService:
    settings = settings or get_settings()
    engine, session_factory = build_db_components(settings.database_url, echo=settings.debug)
    init_db(engine)
    tracker = SubmissionDedupTracker(
        SqlKeyValueStore(session_factory), storage_key=settings.dedup_storage_key
    )
    return LobbyService(
        ScrutinyClient(settings=settings),
        credentials or EnvironmentCredentialProvider(settings),
        tracker,
        settings=settings,
    )
