from __future__ import annotations

import pytest
from pydantic import ValidationError

from app.core.config import DEFAULT_QUIZ_DETAIL_PATHS, Settings


def test_candidate_paths_accept_comma_separated_strings():
    settings = Settings(
        session_status_paths="/v2/sessions/{session_id}/status, /api/sessions/{session_id}/status",
        session_fallback_paths="",
        quiz_detail_paths=["/v2/quizzes/{quiz_id}"],
    )

    assert settings.session_candidate_paths == (
        "/v2/sessions/{session_id}/status",
        "/api/sessions/{session_id}/status",
    )
    assert settings.quiz_detail_paths == ["/v2/quizzes/{quiz_id}"]


def test_defaults_cover_status_then_legacy_session_shapes():
    settings = Settings()

    assert settings.session_candidate_paths[0] == "/api/sessions/{session_id}/status"
    assert "/api/session/{session_id}" in settings.session_candidate_paths
    assert settings.quiz_detail_paths == DEFAULT_QUIZ_DETAIL_PATHS


@pytest.mark.parametrize(
    "overrides",
    [
        {"session_status_paths": ["/api/sessions/status"]},
        {"quiz_detail_paths": ["api/quizzes/{quiz_id}"]},
        {"quiz_detail_paths": ""},
        {"poll_interval_ms": 10},
    ],
)
def test_invalid_settings_are_rejected(overrides):
    with pytest.raises(ValidationError):
        Settings(**overrides)


def test_api_base_strips_trailing_slash_and_blank_token():
    settings = Settings(backend_url="https://quiz.example.org/", access_token="   ")

    assert settings.api_base == "https://quiz.example.org"
    assert settings.access_token is None
