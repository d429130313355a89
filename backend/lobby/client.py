from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx
from loguru import logger

from app.core.config import Settings, get_settings
from app.domain import JoinTicket, Session, SubmissionReceipt
from app.schemas import SubmissionResponse

from .errors import (
    HttpStatusFailure,
    LobbyError,
    MalformedResponse,
    MissingCredential,
    NetworkFailure,
    NoCandidateSucceeded,
)
from .normalize import normalize_join_response, normalize_session

_MARKUP_PREFIX = "<"
_PREVIEW_CHARS = 200


@dataclass(slots=True)
class ProbeOutcome:
    """Result of walking one candidate chain."""

    payload: Any = None
    url: str | None = None
    failure: NoCandidateSucceeded | None = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.failure is None


def _error_message(payload: Any, text: str, status_code: int) -> str:
    if isinstance(payload, dict):
        message = payload.get("message") or payload.get("error") or payload.get("detail")
        if message:
            return message if isinstance(message, str) else json.dumps(message)
    if text.strip():
        return text.strip()[:_PREVIEW_CHARS]
    return f"Status {status_code}"


def _classify_response(response: httpx.Response) -> tuple[Any, LobbyError | None]:
    """Parse a response body, returning ``(payload, failure)``."""

    url = str(response.request.url)
    text = response.text
    stripped = text.strip()

    if stripped.startswith(_MARKUP_PREFIX):
        return None, MalformedResponse(
            "Received a markup page instead of API output",
            status_code=response.status_code,
            body_preview=stripped[:_PREVIEW_CHARS],
            url=url,
        )

    payload: Any = None
    if stripped:
        try:
            payload = json.loads(stripped)
        except ValueError:
            return None, MalformedResponse(
                "Response body is not valid JSON",
                status_code=response.status_code,
                body_preview=stripped[:_PREVIEW_CHARS],
                url=url,
            )

    if not response.is_success:
        return payload, HttpStatusFailure(
            _error_message(payload, text, response.status_code),
            status_code=response.status_code,
            payload=payload,
            url=url,
        )
    return payload, None


class ScrutinyClient:
    """Async wrapper around the quiz backend's session and quiz endpoints."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.base_url = (base_url or self.settings.api_base).rstrip("/")
        self.timeout = timeout if timeout is not None else self.settings.http_timeout_seconds
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=transport,
        )

    # ------------------------------------------------------------------
    # Request building

    def build_headers(self, token: str | None) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            self.settings.bypass_header_name: self.settings.bypass_header_value,
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def session_candidates(self, session_id: str) -> list[str]:
        encoded = quote(str(session_id), safe="")
        return [
            path.format(session_id=encoded) for path in self.settings.session_candidate_paths
        ]

    def quiz_candidates(self, quiz_id: str) -> list[str]:
        encoded = quote(str(quiz_id), safe="")
        return [path.format(quiz_id=encoded) for path in self.settings.quiz_detail_paths]

    # ------------------------------------------------------------------
    # Candidate probing

    async def probe(
        self,
        candidates: Sequence[str],
        headers: dict[str, str] | None = None,
    ) -> ProbeOutcome:
        """GET each candidate in order and return the first parsed success.

        Markup bodies, unparsable bodies, non-2xx statuses and transport
        errors all move on to the next candidate. Only when the whole chain
        is exhausted is a :class:`NoCandidateSucceeded` reported, carrying the
        last candidate-level failure.
        """

        last_error: LobbyError | None = None
        attempts = 0
        for candidate in candidates:
            attempts += 1
            try:
                response = await self.client.get(candidate, headers=headers)
            except httpx.HTTPError as exc:
                last_error = NetworkFailure(f"{type(exc).__name__}: {exc}", url=candidate)
                logger.debug("Probe {} failed at transport level: {}", candidate, exc)
                continue

            payload, failure = _classify_response(response)
            if failure is not None:
                last_error = failure
                logger.debug("Probe {} skipped: {}", candidate, failure)
                continue

            return ProbeOutcome(payload=payload, url=candidate, attempts=attempts)

        return ProbeOutcome(
            failure=NoCandidateSucceeded(
                f"None of {attempts} candidate endpoints succeeded",
                last_error=last_error,
                attempts=attempts,
            ),
            attempts=attempts,
        )

    async def fetch_session(self, session_id: str, token: str | None) -> ProbeOutcome:
        return await self.probe(self.session_candidates(session_id), self.build_headers(token))

    async def fetch_quiz(self, quiz_id: str, token: str | None) -> ProbeOutcome:
        return await self.probe(self.quiz_candidates(quiz_id), self.build_headers(token))

    # ------------------------------------------------------------------
    # Single-endpoint operations

    async def _post(self, path: str, token: str | None, body: dict[str, Any] | None = None) -> Any:
        if not token:
            raise MissingCredential("No access token; sign in before calling " + path)
        try:
            response = await self.client.post(path, headers=self.build_headers(token), json=body)
        except httpx.HTTPError as exc:
            raise NetworkFailure(f"{type(exc).__name__}: {exc}", url=path) from exc

        payload, failure = _classify_response(response)
        if failure is not None:
            raise failure
        return payload

    async def join_session(self, pin: str, token: str | None) -> JoinTicket:
        cleaned = str(pin).strip()
        if not cleaned:
            raise ValueError("PIN must not be empty")
        logger.info("Joining session with PIN {}", cleaned)
        payload = await self._post("/api/sessions/join", token, {"pin": cleaned})
        ticket = normalize_join_response(payload)
        if ticket is None:
            raise MalformedResponse("Join response did not include a session id", url="/api/sessions/join")
        return ticket

    async def submit_answers(
        self,
        session_id: str,
        answers: Sequence[int | None],
        token: str | None,
        *,
        quiz_id: str | None = None,
    ) -> SubmissionReceipt:
        path = f"/api/sessions/{quote(str(session_id), safe='')}/submit"
        body = {"answers": [None if answer is None else int(answer) for answer in answers]}
        payload = await self._post(path, token, body)
        parsed = SubmissionResponse.model_validate(payload if isinstance(payload, dict) else {})
        return SubmissionReceipt(
            session_id=str(session_id),
            quiz_id=quiz_id,
            score=parsed.score,
            total_questions=parsed.total_questions,
            raw_data=payload if isinstance(payload, dict) else None,
        )

    async def _session_action(self, session_id: str, action: str, token: str | None) -> Session | None:
        path = f"/api/sessions/{quote(str(session_id), safe='')}/{action}"
        payload = await self._post(path, token)
        logger.info("Session {} {} acknowledged", session_id, action)
        return normalize_session(payload)

    async def start_session(self, session_id: str, token: str | None) -> Session | None:
        return await self._session_action(session_id, "start", token)

    async def end_session(self, session_id: str, token: str | None) -> Session | None:
        return await self._session_action(session_id, "end", token)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "ScrutinyClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
