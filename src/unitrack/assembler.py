"""Normalize rows from either scraping path into the canonical result."""

from datetime import datetime, timezone
from typing import Iterable

from src.unitrack.calculator import calculate_percentage, calculate_status
from src.unitrack.models import AttendanceResult, StudentInfo, Subject


def build_subject(name: str, code: str, attended: int, total: int, threshold: float) -> Subject:
    """Create a Subject with derived percentage and status.

    Negative counts are clamped to zero and ``attended`` is capped at ``total``.
    """
    total = max(0, total)
    attended = min(max(0, attended), total)
    percentage = calculate_percentage(attended, total)
    return Subject(
        name=(name or "").strip() or (code or "").strip() or "Unknown subject",
        code=(code or "").strip(),
        attended=attended,
        total=total,
        percentage=percentage,
        status=calculate_status(percentage, threshold, total),
    )


def assemble_result(
    student: StudentInfo,
    subjects: Iterable[Subject],
    threshold: float,
    *,
    now: datetime | None = None,
) -> AttendanceResult:
    return AttendanceResult(
        student=student,
        subjects=tuple(subjects),
        last_updated=now or datetime.now(timezone.utc),
        threshold=threshold,
    )


def apply_threshold(result: AttendanceResult, threshold: float) -> AttendanceResult:
    """A copy of ``result`` with every status recomputed for ``threshold``."""
    subjects = tuple(
        s.model_copy(update={"status": calculate_status(s.percentage, threshold, s.total)})
        for s in result.subjects
    )
    return result.model_copy(update={"subjects": subjects, "threshold": threshold})
