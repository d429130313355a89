"""Domain models representing normalized lobby data."""

from .models import (
    Activation,
    JoinTicket,
    Participant,
    PollCycleResult,
    Session,
    SessionStatus,
    SubmissionReceipt,
)

__all__ = [
    "Activation",
    "JoinTicket",
    "Participant",
    "PollCycleResult",
    "Session",
    "SessionStatus",
    "SubmissionReceipt",
]
