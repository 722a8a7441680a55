"""Attendance arithmetic: percentages, status, and class projections.

Every function here is pure. A subject's status is never stored as a source
of truth; it is recomputed from ``(percentage, threshold, total)``.
"""

import math
from fractions import Fraction
from typing import Iterable

from src.unitrack.models import AttendanceSummary, Subject, SubjectStatus

# Points above the threshold a subject needs to count as "safe". Fixed.
STATUS_BUFFER = 5


def _round_half_up(value: float, digits: int) -> float:
    scale = 10**digits
    return math.floor(value * scale + 0.5) / scale


def calculate_percentage(attended: int, total: int) -> float:
    """Attendance percentage rounded half-up to two decimals; 0 when no classes."""
    if total <= 0:
        return 0.0
    return math.floor(attended / total * 10000 + 0.5) / 100


def calculate_status(percentage: float, threshold: float, total: int) -> SubjectStatus:
    """Classify a subject.

    ``no_data`` when no classes were held, ``safe`` at ``threshold + 5`` or
    above, ``critical`` from ``threshold`` up to that, ``low`` below threshold.
    """
    if total == 0:
        return SubjectStatus.NO_DATA
    if percentage >= threshold + STATUS_BUFFER:
        return SubjectStatus.SAFE
    if percentage >= threshold:
        return SubjectStatus.CRITICAL
    return SubjectStatus.LOW


def classes_to_bunk(attended: int, total: int, threshold: float) -> int | float:
    """Largest number of further classes that can be missed while staying at threshold.

    Solves ``attended / (total + x) >= threshold / 100`` for the largest
    integer ``x``. A threshold of zero or less never binds, so the answer
    is infinite.
    """
    if threshold <= 0:
        return math.inf
    t = Fraction(str(threshold))
    return max(0, math.floor(Fraction(attended * 100) / t - total))


def classes_needed_to_attend(attended: int, total: int, threshold: float) -> int | float:
    """Fewest consecutive classes to attend to reach the threshold.

    Solves ``(attended + x) / (total + x) >= threshold / 100``. The
    denominator ``100 - threshold`` vanishes at a threshold of 100, so any
    threshold of 100 or more is defined to need infinitely many classes.
    """
    if threshold >= 100:
        return math.inf
    t = Fraction(str(threshold))
    needed = math.ceil((total * t - attended * 100) / (100 - t))
    return max(0, needed)


def count_by_status(
    subjects: Iterable[Subject], threshold: float | None = None
) -> dict[SubjectStatus, int]:
    """Subjects per status; recomputed against ``threshold`` when one is given."""
    counts = {status: 0 for status in SubjectStatus}
    for subject in subjects:
        if threshold is None:
            status = subject.status
        else:
            status = calculate_status(subject.percentage, threshold, subject.total)
        counts[status] += 1
    return counts


def summarize(subjects: Iterable[Subject], threshold: float) -> AttendanceSummary:
    """Aggregate attendance across subjects.

    Statuses are recomputed against ``threshold`` rather than trusted from
    the subjects, so a summary for a new threshold needs no re-scrape.
    """
    subjects = list(subjects)
    total_attended = sum(s.attended for s in subjects)
    total_classes = sum(s.total for s in subjects)
    count = len(subjects)

    statuses = [calculate_status(s.percentage, threshold, s.total) for s in subjects]
    counts = count_by_status(subjects, threshold)

    bunkable = 0
    needed: int | None = 0
    for subject, status in zip(subjects, statuses):
        if status is SubjectStatus.SAFE:
            spare = classes_to_bunk(subject.attended, subject.total, threshold)
            if not math.isinf(spare):
                bunkable += spare
        elif status is SubjectStatus.LOW and needed is not None:
            more = classes_needed_to_attend(subject.attended, subject.total, threshold)
            needed = None if math.isinf(more) else needed + int(more)

    def overall(attended: int, classes: int) -> float:
        return _round_half_up(attended / classes * 100, 1) if classes > 0 else 0.0

    return AttendanceSummary(
        total_attended=total_attended,
        total_classes=total_classes,
        overall_percentage=overall(total_attended, total_classes),
        safe=counts[SubjectStatus.SAFE],
        critical=counts[SubjectStatus.CRITICAL],
        low=counts[SubjectStatus.LOW],
        no_data=counts[SubjectStatus.NO_DATA],
        total_bunkable=bunkable,
        total_needed=needed,
        after_attend_all=(
            overall(total_attended + count, total_classes + count) if total_classes > 0 else 0.0
        ),
        after_skip_all=(
            overall(total_attended, total_classes + count) if total_classes > 0 else 0.0
        ),
    )
