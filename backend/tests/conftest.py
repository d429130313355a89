from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Callable

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import httpx
import pytest

from app.core.config import Settings

BACKEND_URL = "http://scrutiny.test"

Responder = httpx.Response | Callable[[httpx.Request], Any]


class FakeBackend:
    """Scriptable quiz backend for ``httpx.MockTransport``.

    Each route holds a queue of responses; the last one repeats once the
    queue is drained. Unknown routes answer like a SPA host: 404 with HTML.
    """

    def __init__(self) -> None:
        self._routes: dict[tuple[str, str], list[Responder]] = {}
        self.calls: list[httpx.Request] = []

    def route(self, method: str, path: str, *responses: Responder) -> "FakeBackend":
        self._routes[(method.upper(), path)] = list(responses)
        return self

    def get(self, path: str, *responses: Responder) -> "FakeBackend":
        return self.route("GET", path, *responses)

    def post(self, path: str, *responses: Responder) -> "FakeBackend":
        return self.route("POST", path, *responses)

    def calls_to(self, path: str, method: str | None = None) -> list[httpx.Request]:
        return [
            request
            for request in self.calls
            if request.url.path == path and (method is None or request.method == method)
        ]

    def paths(self) -> list[str]:
        return [request.url.path for request in self.calls]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        queue = self._routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, text="<!doctype html><html><body>Not Found</body></html>")
        responder = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(responder, httpx.Response):
            return httpx.Response(
                responder.status_code,
                headers=responder.headers,
                content=responder.content,
            )
        result = responder(request)
        if asyncio.iscoroutine(result):
            result = await result
        return result

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def json_response(payload: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json=payload)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def test_settings(tmp_path, monkeypatch) -> Settings:
    settings = Settings(
        backend_url=BACKEND_URL,
        database_url=f"sqlite:///{tmp_path / 'scrutiny.db'}",
        poll_interval_ms=100,
        access_token=None,
    )
    monkeypatch.setattr("app.core.config.get_settings", lambda: settings)
    monkeypatch.setattr("app.core.config.settings", settings)
    return settings


@pytest.fixture
def sample_session_payload() -> dict[str, Any]:
    path = Path(__file__).parent / "data" / "sample_session.json"
    return json.loads(path.read_text(encoding="utf-8"))
