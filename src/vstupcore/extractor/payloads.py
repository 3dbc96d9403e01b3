"""
Admissions API payloads and the decoding of their positional rows.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, model_validator

NAME_INDEX = 4
GRADE_INDEX = 5


class JsonPayload(BaseModel):
    """Base for API payloads: unknown fields ignored, field names case-insensitive."""

    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def lowercase_keys(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {str(key).lower(): value for key, value in data.items()}
        return data


class ApiRedirect(JsonPayload):
    """Answer of the admissions API POST: where the ranked list lives."""

    url: Optional[str] = None


class ApplicationsPayload(JsonPayload):
    """The ranked list itself, one positional array per applicant."""

    requests: List[List[Any]] = Field(default_factory=list)


@dataclass(frozen=True)
class ApplicantRow:
    name: str
    grade: float = 0.0


def _grade(value: Any) -> float:
    # bool is an int subclass but never a grade.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value)


def decode_application_row(row: Sequence[Any]) -> Optional[ApplicantRow]:
    """Decode one positional row; None when it carries no applicant name."""
    if len(row) <= NAME_INDEX or row[NAME_INDEX] is None:
        return None
    name = str(row[NAME_INDEX]).strip()
    if not name:
        return None
    grade = _grade(row[GRADE_INDEX]) if len(row) > GRADE_INDEX else 0.0
    return ApplicantRow(name=name, grade=grade)


def decode_application_rows(rows: Sequence[Sequence[Any]]) -> List[ApplicantRow]:
    decoded = (decode_application_row(row) for row in rows)
    return [row for row in decoded if row is not None]


@dataclass(frozen=True)
class ApplicationsRequest:
    """POST fields identifying one offer's ranked list."""

    year: str
    university_token: str
    speciality_token: str

    @classmethod
    def from_request_parameter(cls, request_parameter: Optional[str]) -> Optional["ApplicationsRequest"]:
        """Parse ``y24/x/UNI1/SPEC7``-style parameters; None when malformed."""
        if not request_parameter:
            return None
        parts = [part for part in request_parameter.split("/") if part]
        if len(parts) < 4:
            return None
        year = parts[0].removeprefix("y")
        if not year:
            return None
        return cls(year=year, university_token=parts[2], speciality_token=parts[3])

    def form_fields(self, last: int = 10) -> Dict[str, str]:
        return {
            "action": "requests",
            "y": self.year,
            "uid": self.university_token,
            "sid": self.speciality_token,
            "last": str(last),
        }
