from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SubmissionResponse(BaseModel):
    """Body returned by ``POST /api/sessions/{id}/submit``."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    message: str | None = None
    score: float | None = None
    total_questions: int | None = Field(default=None, alias="totalQuestions")

    @field_validator("score", mode="before")
    @classmethod
    def _coerce_score(cls, value: Any) -> float | None:
        if value is None or value == "":
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    @field_validator("total_questions", mode="before")
    @classmethod
    def _coerce_total(cls, value: Any) -> int | None:
        if value is None or value == "":
            return None
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return None
