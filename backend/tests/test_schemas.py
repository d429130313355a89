from __future__ import annotations

from decimal import Decimal

from app.schemas import SubmissionResponse


def test_submission_response_reads_camel_case_total():
    """Verify the backend's camelCase field maps onto total_questions."""
    response = SubmissionResponse.model_validate(
        {"message": "Submitted", "score": 3, "totalQuestions": 5}
    )
    assert response.score == 3.0
    assert isinstance(response.score, float)
    assert response.total_questions == 5
    assert response.message == "Submitted"


def test_submission_response_coerces_numeric_strings():
    """Verify stringly-typed numbers are coerced instead of rejected."""
    response = SubmissionResponse.model_validate({"score": "2.5", "totalQuestions": "4"})
    assert response.score == 2.5
    assert response.total_questions == 4


def test_submission_response_tolerates_missing_or_bad_values():
    """Verify unexpected values degrade to None."""
    response = SubmissionResponse.model_validate({"score": "n/a", "totalQuestions": ""})
    assert response.score is None
    assert response.total_questions is None


def test_submission_response_keeps_extra_fields():
    """Verify extra backend fields remain available."""
    response = SubmissionResponse.model_validate({"score": Decimal("1"), "attempt": 2})
    assert response.score == 1.0
    assert response.model_extra == {"attempt": 2}
