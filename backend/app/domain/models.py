"""Typed domain representations shared by the poller, controller, and CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from lobby.errors import LobbyError


class SessionStatus(str, Enum):
    UNKNOWN = "unknown"
    WAITING = "waiting"
    ACTIVE = "active"
    ENDED = "ended"


@dataclass(frozen=True, slots=True)
class Participant:
    """One lobby participant as reported by the backend."""

    id: str | None
    name: str | None
    email: str | None
    position: int = 0

    @property
    def key(self) -> str:
        """Stable identity: the backend id, else the list position."""

        if self.id is not None:
            return self.id
        return f"#{self.position}"

    @property
    def display_name(self) -> str:
        return self.name or self.email or self.id or f"Participant {self.position + 1}"


@dataclass(frozen=True, slots=True)
class Session:
    """Canonical snapshot of a quiz session, rebuilt on every poll tick."""

    id: str | None
    quiz_id: str | None
    status: str
    participants: tuple[Participant, ...] = ()
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    pin: str | None = None
    raw_data: dict[str, Any] | None = field(default=None, compare=False, repr=False)

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE.value

    @property
    def is_waiting(self) -> bool:
        return self.status == SessionStatus.WAITING.value

    @property
    def is_ended(self) -> bool:
        return self.status == SessionStatus.ENDED.value


@dataclass(frozen=True, slots=True)
class JoinTicket:
    """Authoritative session/quiz pair handed out by the join operation."""

    session_id: str
    quiz_id: str | None = None
    raw_data: dict[str, Any] | None = field(default=None, compare=False, repr=False)


@dataclass(frozen=True, slots=True)
class PollCycleResult:
    """Outcome of one poll cycle: a session or a typed failure."""

    session: Session | None = None
    failure: LobbyError | None = None

    @property
    def ok(self) -> bool:
        return self.session is not None


@dataclass(frozen=True, slots=True)
class Activation:
    """Delivered once when a watched session first becomes active."""

    session: Session
    quiz_id: str | None
    quiz: dict[str, Any] | None = None
    source_url: str | None = None

    @property
    def is_fallback(self) -> bool:
        return self.quiz is None


@dataclass(frozen=True, slots=True)
class SubmissionReceipt:
    """Result of a successful answer submission."""

    session_id: str
    quiz_id: str | None
    score: float | None
    total_questions: int | None
    raw_data: dict[str, Any] | None = field(default=None, compare=False, repr=False)
