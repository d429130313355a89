from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

from dateutil import parser as date_parser

from app.domain import JoinTicket, Participant, Session, SessionStatus

AliasPath = tuple[str, ...]

# Ordered alias tables: the first present, non-None value wins.
_SESSION_ID_ALIASES: tuple[AliasPath, ...] = (
    ("id",),
    ("sessionId",),
    ("session_id",),
    ("_id",),
)
_QUIZ_ID_ALIASES: tuple[AliasPath, ...] = (
    ("quizId",),
    ("quiz_id",),
    ("quiz", "id"),
    ("quiz", "quizId"),
    ("quiz", "quiz_id"),
    ("quiz",),
)
_STATUS_ALIASES: tuple[AliasPath, ...] = (("status",), ("state",))
_PARTICIPANT_LIST_ALIASES: tuple[AliasPath, ...] = (
    ("participants",),
    ("users",),
    ("participantList",),
)
_STARTS_AT_ALIASES: tuple[AliasPath, ...] = (
    ("startsAt",),
    ("startTime",),
    ("start_time",),
    ("starts_at",),
)
_ENDS_AT_ALIASES: tuple[AliasPath, ...] = (
    ("endsAt",),
    ("endTime",),
    ("end_time",),
    ("ends_at",),
)
_PIN_ALIASES: tuple[AliasPath, ...] = (
    ("pin",),
    ("pinCode",),
    ("pin_code",),
    ("code",),
)

_PARTICIPANT_ID_ALIASES: tuple[AliasPath, ...] = (
    ("id",),
    ("userId",),
    ("user_id",),
    ("studentId",),
    ("_id",),
)
_PARTICIPANT_NAME_ALIASES: tuple[AliasPath, ...] = (
    ("name",),
    ("displayName",),
    ("fullName",),
    ("username",),
)
_PARTICIPANT_EMAIL_ALIASES: tuple[AliasPath, ...] = (("email",), ("user", "email"))

_JOIN_SESSION_ID_ALIASES: tuple[AliasPath, ...] = (
    ("sessionId",),
    ("session_id",),
    ("session", "id"),
    ("session", "sessionId"),
)

_NESTED_SESSION_KEY = "session"
_KNOWN_STATUSES = {status.value for status in SessionStatus}
_EPOCH_MILLIS_THRESHOLD = 1e11


def _lookup(source: Mapping[str, Any], path: AliasPath) -> Any:
    current: Any = source
    for key in path:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
    return current


def _first_present(
    sources: tuple[Mapping[str, Any], ...],
    aliases: tuple[AliasPath, ...],
    *,
    scalar_only: bool = False,
    list_only: bool = False,
) -> Any:
    for source in sources:
        for path in aliases:
            value = _lookup(source, path)
            if value is None:
                continue
            if scalar_only and isinstance(value, (Mapping, list, tuple)):
                continue
            if list_only and not isinstance(value, (list, tuple)):
                continue
            return value
    return None


def _as_identifier(value: Any) -> str | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        seconds = value / 1000 if abs(value) >= _EPOCH_MILLIS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    try:
        return date_parser.isoparse(str(value))
    except (ValueError, TypeError, OverflowError):
        return None


def _normalize_status(value: Any) -> str:
    if value is None:
        return SessionStatus.UNKNOWN.value
    text = str(value).strip()
    if not text:
        return SessionStatus.UNKNOWN.value
    lowered = text.lower()
    if lowered in _KNOWN_STATUSES:
        return lowered
    return text


def _sources(raw: Mapping[str, Any]) -> tuple[Mapping[str, Any], ...]:
    nested = raw.get(_NESTED_SESSION_KEY)
    if isinstance(nested, Mapping):
        return (nested, raw)
    return (raw,)


def normalize_participant(raw_participant: Any, position: int) -> Participant:
    if isinstance(raw_participant, Mapping):
        sources = (raw_participant,)
        participant_id = _as_identifier(
            _first_present(sources, _PARTICIPANT_ID_ALIASES, scalar_only=True)
        )
        name = _first_present(sources, _PARTICIPANT_NAME_ALIASES, scalar_only=True)
        email = _first_present(sources, _PARTICIPANT_EMAIL_ALIASES, scalar_only=True)
        return Participant(
            id=participant_id,
            name=str(name) if name is not None else None,
            email=str(email) if email is not None else None,
            position=position,
        )
    if raw_participant is None:
        return Participant(id=None, name=None, email=None, position=position)
    return Participant(id=None, name=str(raw_participant), email=None, position=position)


def normalize_participants(raw_list: Any) -> tuple[Participant, ...]:
    if not isinstance(raw_list, (list, tuple)):
        return ()
    return tuple(
        normalize_participant(entry, index) for index, entry in enumerate(raw_list)
    )


def extract_quiz_id(raw: Any) -> str | None:
    """Return the quiz id embedded in a session or quiz payload, if any."""

    if not isinstance(raw, Mapping):
        return None
    return _as_identifier(_first_present(_sources(raw), _QUIZ_ID_ALIASES, scalar_only=True))


def normalize_session(raw: Any) -> Session | None:
    """Map an arbitrary backend record onto a canonical :class:`Session`.

    Each field is resolved through its alias table, first under a nested
    ``session`` mapping and then on the top level; envelope fields such as
    ``status: "success"`` never shadow the session record. Unresolved fields
    fall back to ``None`` (or ``unknown`` for the status); the function never
    raises. Only an absent payload yields ``None``.
    """

    if raw is None:
        return None
    if not isinstance(raw, Mapping):
        raw = {}

    sources = _sources(raw)
    return Session(
        id=_as_identifier(_first_present(sources, _SESSION_ID_ALIASES, scalar_only=True)),
        quiz_id=_as_identifier(_first_present(sources, _QUIZ_ID_ALIASES, scalar_only=True)),
        status=_normalize_status(_first_present(sources, _STATUS_ALIASES, scalar_only=True)),
        participants=normalize_participants(
            _first_present(sources, _PARTICIPANT_LIST_ALIASES, list_only=True)
        ),
        starts_at=_parse_datetime(_first_present(sources, _STARTS_AT_ALIASES, scalar_only=True)),
        ends_at=_parse_datetime(_first_present(sources, _ENDS_AT_ALIASES, scalar_only=True)),
        pin=_as_identifier(_first_present(sources, _PIN_ALIASES, scalar_only=True)),
        raw_data=dict(raw),
    )


def unwrap_quiz_payload(payload: Any) -> dict[str, Any] | None:
    """Return the quiz object from either ``{quiz: {...}}`` or a bare quiz."""

    if not isinstance(payload, Mapping):
        return None
    nested = payload.get("quiz")
    if isinstance(nested, Mapping):
        return dict(nested)
    return dict(payload)


def normalize_join_response(payload: Any) -> JoinTicket | None:
    if not isinstance(payload, Mapping):
        return None
    session_id = _as_identifier(
        _first_present((payload,), _JOIN_SESSION_ID_ALIASES, scalar_only=True)
    )
    if session_id is None:
        return None
    return JoinTicket(
        session_id=session_id,
        quiz_id=extract_quiz_id(payload),
        raw_data=dict(payload),
    )
