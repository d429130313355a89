from functools import lru_cache
from typing import Any

from pydantic import AnyUrl, Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SESSION_STATUS_PATHS = ["/api/sessions/{session_id}/status"]
DEFAULT_SESSION_FALLBACK_PATHS = [
    "/api/sessions/{session_id}",
    "/api/session/{session_id}",
    "/api/sessions/{session_id}/detail",
    "/sessions/{session_id}",
]
DEFAULT_QUIZ_DETAIL_PATHS = [
    "/api/quizzes/{quiz_id}",
    "/api/quizzes/{quiz_id}/detail",
    "/api/quiz/{quiz_id}",
    "/quizzes/{quiz_id}",
]


def _split_paths(value: Any, *, field_name: str) -> list[str]:
    if isinstance(value, str):
        value = [part.strip() for part in value.split(",")]
    if not isinstance(value, (list, tuple)):
        raise ValueError(
            f"{field_name.upper()} must be provided as a list or comma-separated string"
        )
    paths = [str(item).strip() for item in value if str(item).strip()]
    for path in paths:
        if not path.startswith("/"):
            raise ValueError(f"{field_name.upper()} entries must start with '/': {path}")
    return paths


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    debug: bool = Field(False, description="Echo SQL statements and verbose client logs")
    backend_url: AnyUrl | str = Field(
        default="http://localhost:8000",
        description="Base URL of the quiz backend (no trailing /api)",
    )
    bypass_header_name: str = Field(
        default="ngrok-skip-browser-warning",
        description="Vendor header required by the deployment tunnel",
    )
    bypass_header_value: str = Field(
        default="true",
        description="Value sent with the tunnel bypass header",
    )
    poll_interval_ms: int = Field(
        default=2000,
        description="Delay between session status polls in milliseconds",
        ge=100,
    )
    http_timeout_seconds: float | None = Field(
        default=None,
        description="Optional per-request timeout; unset leaves requests unbounded",
        gt=0,
    )
    session_status_paths: list[str] | str = Field(
        default_factory=lambda: list(DEFAULT_SESSION_STATUS_PATHS),
        description="Preferred session status endpoints, tried first",
    )
    session_fallback_paths: list[str] | str = Field(
        default_factory=lambda: list(DEFAULT_SESSION_FALLBACK_PATHS),
        description="Legacy session endpoints tried after the status endpoints",
    )
    quiz_detail_paths: list[str] | str = Field(
        default_factory=lambda: list(DEFAULT_QUIZ_DETAIL_PATHS),
        description="Quiz detail endpoints tried in order once a session activates",
    )
    database_url: str = Field(
        default="sqlite:///../data/scrutiny.db",
        description="SQLAlchemy URL of the local key/value store",
    )
    dedup_storage_key: str = Field(
        default="submittedSessions",
        description="Key under which consumed session/quiz identifiers are stored",
    )
    access_token: str | None = Field(
        default=None,
        description="Bearer token used by the environment credential provider",
    )

    @field_validator("session_status_paths", "session_fallback_paths", mode="before")
    @classmethod
    def _parse_session_paths(cls, value: Any, info: ValidationInfo) -> list[str]:
        paths = _split_paths(value, field_name=info.field_name)
        for path in paths:
            if "{session_id}" not in path:
                raise ValueError(
                    f"{info.field_name.upper()} entries must contain '{{session_id}}': {path}"
                )
        return paths

    @field_validator("quiz_detail_paths", mode="before")
    @classmethod
    def _parse_quiz_paths(cls, value: Any) -> list[str]:
        paths = _split_paths(value, field_name="quiz_detail_paths")
        if not paths:
            raise ValueError("QUIZ_DETAIL_PATHS must contain at least one path")
        for path in paths:
            if "{quiz_id}" not in path:
                raise ValueError(f"QUIZ_DETAIL_PATHS entries must contain '{{quiz_id}}': {path}")
        return paths

    @field_validator("access_token", mode="after")
    @classmethod
    def _blank_token_is_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped = value.strip()
        return stripped or None

    @property
    def api_base(self) -> str:
        return str(self.backend_url).rstrip("/")

    @property
    def session_candidate_paths(self) -> tuple[str, ...]:
        return tuple(self.session_status_paths) + tuple(self.session_fallback_paths)


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
