"""Pydantic models for attendance data.

All data structures use Pydantic v2 for validation, serialization, and type safety.
Outward-facing models serialize with camelCase aliases (``lastUpdated``) because
the presentation layer consumes them as JSON.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class SubjectStatus(str, Enum):
    """Attendance standing of one subject relative to the threshold."""

    SAFE = "safe"  # at least threshold + 5
    CRITICAL = "critical"  # within 5 points above threshold
    LOW = "low"  # below threshold
    NO_DATA = "no_data"  # no classes held yet


class _OutwardModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class Subject(_OutwardModel):
    """One course's attendance record.

    ``percentage`` and ``status`` are derived from the counts; see
    ``unitrack.calculator``. The status can always be recomputed for another
    threshold with ``calculate_status(percentage, threshold, total)``.
    """

    name: str
    code: str = ""
    attended: int = Field(ge=0)
    total: int = Field(ge=0)
    percentage: float = Field(ge=0, le=100)
    status: SubjectStatus

    @model_validator(mode="after")
    def _attended_within_total(self) -> "Subject":
        if self.attended > self.total:
            raise ValueError(
                f"attended ({self.attended}) cannot exceed total ({self.total})"
            )
        return self


class StudentInfo(_OutwardModel):
    """Identity fields; placeholders are used when the ERP does not expose them."""

    name: str = "Student"
    usn: str = ""  # roll / registration number


class AttendanceResult(_OutwardModel):
    """Output of one successful scrape invocation. Immutable."""

    student: StudentInfo
    subjects: tuple[Subject, ...]
    last_updated: datetime
    threshold: float


class AttendanceSummary(_OutwardModel):
    """Aggregate figures across all subjects of a result."""

    total_attended: int
    total_classes: int
    overall_percentage: float
    safe: int = 0
    critical: int = 0
    low: int = 0
    no_data: int = 0
    total_bunkable: int = 0  # summed over safe subjects
    total_needed: int | None = 0  # summed over low subjects; None when unreachable
    after_attend_all: float = 0
    after_skip_all: float = 0


class FetchResponse(_OutwardModel):
    """Engine result in the shape the HTTP layer returns to clients."""

    success: bool
    data: AttendanceResult | None = None
    error: str | None = None

    @classmethod
    def ok(cls, data: AttendanceResult) -> "FetchResponse":
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, message: str) -> "FetchResponse":
        return cls(success=False, error=message)

    def to_payload(self) -> dict[str, Any]:
        """Render ``{success, data?, error?}`` with camelCase keys and ISO timestamps."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Intermediate values (never leave the engine)
# ---------------------------------------------------------------------------


class DetectedForm(BaseModel):
    """A login form found in arbitrary HTML.

    ``action`` is always absolute. ``hidden_fields`` (CSRF tokens, view-state)
    are forwarded verbatim when the form is submitted.
    """

    model_config = ConfigDict(frozen=True)

    action: str
    method: Literal["GET", "POST"] = "POST"
    username_field: str = "username"
    password_field: str = "password"
    hidden_fields: dict[str, str] = Field(default_factory=dict)
    has_password_input: bool = False


class Link(BaseModel):
    """An anchor from a page: absolute href and its visible text."""

    model_config = ConfigDict(frozen=True)

    href: str
    text: str = ""


class ScoredPage(BaseModel):
    """A fetched candidate attendance page and its heuristic score."""

    model_config = ConfigDict(frozen=True)

    url: str
    html: str
    score: int


# ---------------------------------------------------------------------------
# Known ERP family wire schema
# ---------------------------------------------------------------------------


class ErpSubjectRow(BaseModel):
    """One row of the known ERP's subject-wise attendance JSON.

    The endpoint reports counts both as strings (``presentCount``) and as
    numbers (``stdAttPresentCount``); either may be missing or blank.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    subject: Any = ""
    subject_code: Any = Field(default=None, alias="subjectCode")
    present_count: Any = Field(default=None, alias="presentCount")
    absent_count: Any = Field(default=None, alias="absentCount")
    std_present_count: Any = Field(default=None, alias="stdAttPresentCount")
    std_absent_count: Any = Field(default=None, alias="stdAttAbsentCount")
    term_name: Any = Field(default=None, alias="termName")
