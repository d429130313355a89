from __future__ import annotations

import asyncio

import httpx
from loguru import logger

from lobby.client import ScrutinyClient
from lobby.credentials import StaticCredentialProvider
from lobby.errors import NoCandidateSucceeded
from lobby.poller import SessionPoller

from conftest import json_response

STATUS_PATH = "/api/sessions/S1/status"


class ExplodingCredentials:
    async def get_current_access_token(self) -> str | None:
        raise RuntimeError("auth backend unavailable")


async def _wait_for(predicate, timeout: float = 2.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout)


def test_poller_publishes_first_snapshot_immediately(backend, test_settings):
    backend.get(STATUS_PATH, json_response({"session": {"status": "waiting", "pin": "1234"}}))
    updates = []

    async def scenario():
        async with ScrutinyClient(settings=test_settings, transport=backend.transport()) as client:
            poller = SessionPoller(client, StaticCredentialProvider("tok"))
            stop = poller.start("S1", 10_000, updates.append)
            await _wait_for(lambda: updates)
            stop()
            return poller

    poller = asyncio.run(scenario())

    assert len(updates) == 1
    assert updates[0].id == "S1"
    assert updates[0].is_waiting
    assert poller.last_session == updates[0]
    assert backend.calls[0].headers["Authorization"] == "Bearer tok"


def test_poller_keeps_ticking_after_failures(backend, test_settings):
    backend.get(
        STATUS_PATH,
        httpx.Response(502, text="<html>Bad gateway</html>"),
        json_response({"id": "S1", "status": "waiting"}),
    )
    updates, errors = [], []

    async def scenario():
        async with ScrutinyClient(settings=test_settings, transport=backend.transport()) as client:
            poller = SessionPoller(client, StaticCredentialProvider("tok"))
            poller.start("S1", 20, updates.append, errors.append)
            await _wait_for(lambda: len(updates) >= 2)
            poller.stop()

    asyncio.run(scenario())

    assert isinstance(errors[0], NoCandidateSucceeded)
    assert all(session.status == "waiting" for session in updates)


def test_poller_falls_back_to_legacy_session_endpoints(backend, test_settings):
    backend.get("/api/sessions/S1", json_response({"sessionId": "S1", "state": "active"}))
    updates = []

    async def scenario():
        async with ScrutinyClient(settings=test_settings, transport=backend.transport()) as client:
            poller = SessionPoller(client, StaticCredentialProvider("tok"))
            poller.start("S1", 10_000, updates.append)
            await _wait_for(lambda: updates)
            poller.stop()

    asyncio.run(scenario())

    assert updates[0].is_active
    assert backend.paths()[:2] == [STATUS_PATH, "/api/sessions/S1"]


def test_poller_runs_without_credentials(backend, test_settings):
    backend.get(STATUS_PATH, json_response({"id": "S1", "status": "waiting"}))
    updates = []

    async def scenario():
        async with ScrutinyClient(settings=test_settings, transport=backend.transport()) as client:
            for expected, credentials in enumerate(
                (StaticCredentialProvider(None), ExplodingCredentials()), start=1
            ):
                poller = SessionPoller(client, credentials)
                poller.start("S1", 10_000, updates.append)
                await _wait_for(lambda: len(updates) >= expected)
                poller.stop()

    asyncio.run(scenario())

    assert len(updates) == 2
    assert all("Authorization" not in request.headers for request in backend.calls)


def test_stop_discards_in_flight_results(backend, test_settings):
    entered = asyncio.Event()
    release = asyncio.Event()

    async def slow_status(request):
        entered.set()
        await release.wait()
        return json_response({"id": "S1", "status": "active"})

    backend.get(STATUS_PATH, slow_status)
    updates, errors = [], []

    async def scenario():
        async with ScrutinyClient(settings=test_settings, transport=backend.transport()) as client:
            poller = SessionPoller(client, StaticCredentialProvider("tok"))
            stop = poller.start("S1", 10_000, updates.append, errors.append)
            await asyncio.wait_for(entered.wait(), 2.0)
            stop()
            release.set()
            await asyncio.sleep(0.05)
            return poller

    poller = asyncio.run(scenario())

    assert updates == []
    assert errors == []
    assert not poller.running


def test_stop_discards_late_results_even_without_cancellation(backend, test_settings):
    backend.get(STATUS_PATH, json_response({"id": "S1", "status": "active"}))
    updates = []

    async def scenario():
        async with ScrutinyClient(settings=test_settings, transport=backend.transport()) as client:
            poller = SessionPoller(client, StaticCredentialProvider("tok"))
            poller.start("S1", 10_000, updates.append)
            stale_generation = poller._generation
            poller.stop()
            await poller._cycle(stale_generation, "S1", updates.append, None)

    asyncio.run(scenario())

    assert updates == []


def test_overlapping_cycles_are_allowed(backend, test_settings):
    release = asyncio.Event()
    started = []

    async def slow_status(request):
        started.append(request)
        await release.wait()
        return json_response({"id": "S1", "status": "waiting"})

    backend.get(STATUS_PATH, slow_status)
    updates = []

    async def scenario():
        async with ScrutinyClient(settings=test_settings, transport=backend.transport()) as client:
            poller = SessionPoller(client, StaticCredentialProvider("tok"))
            poller.start("S1", 10, updates.append)
            await _wait_for(lambda: len(started) >= 3)
            release.set()
            await _wait_for(lambda: len(updates) >= 3)
            poller.stop()

    asyncio.run(scenario())

    assert len(updates) >= 3


def test_failing_update_callback_is_logged_and_polling_continues(backend, test_settings):
    backend.get(STATUS_PATH, json_response({"id": "S1", "status": "waiting"}))
    seen, messages = [], []

    def explode(session):
        seen.append(session)
        raise RuntimeError("subscriber blew up")

    async def scenario():
        async with ScrutinyClient(settings=test_settings, transport=backend.transport()) as client:
            poller = SessionPoller(client, StaticCredentialProvider("tok"))
            stop = poller.start("S1", 5, explode)
            await _wait_for(lambda: len(seen) >= 2)
            await asyncio.sleep(0.01)
            stop()

    sink_id = logger.add(messages.append, level="ERROR", format="{message}")
    try:
        asyncio.run(scenario())
    finally:
        logger.remove(sink_id)

    assert len(seen) >= 2
    assert any("subscriber blew up" in message for message in messages)
