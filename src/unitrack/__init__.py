"""UniTrack attendance engine.

Logs into a university ERP portal and extracts subject-wise attendance, via
fixed endpoints for the known ERP family or, failing that, by detecting the
login form, crawling for the attendance page, and reading it with a
content-extraction model.
"""

from src.unitrack.calculator import (
    calculate_percentage,
    calculate_status,
    classes_needed_to_attend,
    classes_to_bunk,
    summarize,
)
from src.unitrack.engine import AttendanceEngine, scrape_attendance
from src.unitrack.models import (
    AttendanceResult,
    FetchResponse,
    StudentInfo,
    Subject,
    SubjectStatus,
)

__all__ = [
    "AttendanceEngine",
    "scrape_attendance",
    "AttendanceResult",
    "FetchResponse",
    "StudentInfo",
    "Subject",
    "SubjectStatus",
    "calculate_percentage",
    "calculate_status",
    "classes_needed_to_attend",
    "classes_to_bunk",
    "summarize",
]
