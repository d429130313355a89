import argparse
import asyncio
import json
import sys
from dataclasses import asdict

from loguru import logger

from app.core.config import get_settings
from app.domain import Activation, Session
from lobby.credentials import StaticCredentialProvider
from lobby.errors import LobbyError
from lobby.service import build_lobby_service


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Join a quiz lobby and wait for the quiz to start")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--pin", help="Join the session with this PIN first")
    target.add_argument("--session-id", help="Watch an already joined session")
    parser.add_argument("--quiz-id", default=None, help="Quiz id handed out when joining")
    parser.add_argument(
        "--interval-ms",
        type=int,
        default=None,
        help="Poll interval in milliseconds (defaults to POLL_INTERVAL_MS)",
    )
    parser.add_argument(
        "--token",
        default=None,
        help="Bearer token to use instead of ACCESS_TOKEN from the environment",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Give up after this many seconds without an activation",
    )
    return parser.parse_args(argv)


def _activation_payload(activation: Activation) -> dict[str, object]:
    session = activation.session
    return {
        "sessionId": session.id,
        "quizId": activation.quiz_id,
        "status": session.status,
        "fallback": activation.is_fallback,
        "quiz": activation.quiz,
        "participants": [asdict(participant) for participant in session.participants],
    }


async def _run(args: argparse.Namespace) -> int:
    settings = get_settings()
    credentials = StaticCredentialProvider(args.token) if args.token else None
    service = build_lobby_service(settings, credentials=credentials)
    result: dict[str, object] = {}

    async with service.client:
        session_id = args.session_id
        quiz_id = args.quiz_id
        if args.pin:
            try:
                ticket = await service.join(args.pin)
            except LobbyError as exc:
                logger.error("Join failed: {}", exc)
                return 1
            session_id = ticket.session_id
            quiz_id = quiz_id or ticket.quiz_id

        def on_update(session: Session) -> None:
            logger.info(
                "Session {} status={} participants={}",
                session.id,
                session.status,
                len(session.participants),
            )

        def on_activated(activation: Activation) -> None:
            result["activation"] = _activation_payload(activation)

        def on_already_submitted() -> None:
            result["alreadySubmitted"] = True

        def on_error(failure: LobbyError) -> None:
            logger.warning("Lobby update failed ({}): {}", failure.kind, failure)

        watch = service.watch(
            session_id,
            quiz_id=quiz_id,
            interval_ms=args.interval_ms,
            on_activated=on_activated,
            on_session_update=on_update,
            on_already_submitted=on_already_submitted,
            on_error=on_error,
        )
        try:
            await asyncio.wait_for(watch.wait_done(), timeout=args.timeout)
        except asyncio.TimeoutError:
            logger.error("No activation within {} seconds", args.timeout)
            return 2
        finally:
            watch.stop()

    if result.get("alreadySubmitted"):
        logger.info("You already submitted this quiz")
        return 0
    json.dump(result.get("activation"), sys.stdout, indent=2, default=str)
    sys.stdout.write("\n")
    return 0


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    if args.interval_ms is not None and args.interval_ms <= 0:
        logger.warning("Ignoring non-positive --interval-ms {}", args.interval_ms)
        args.interval_ms = None
    raise SystemExit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
