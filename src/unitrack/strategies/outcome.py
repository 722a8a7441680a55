"""Tagged result shared by the scraping strategies."""

from dataclasses import dataclass
from enum import Enum

from src.unitrack.errors import ScrapingError
from src.unitrack.models import AttendanceResult


class OutcomeKind(str, Enum):
    OK = "ok"
    NOT_APPLICABLE = "not_applicable"  # wrong ERP family, try the next strategy
    FAILED = "failed"  # terminal, report to the caller


@dataclass(frozen=True)
class StrategyOutcome:
    """What a strategy attempt produced.

    ``error`` is set for FAILED, and for NOT_APPLICABLE when an exception
    was the reason the strategy stood down.
    """

    kind: OutcomeKind
    result: AttendanceResult | None = None
    error: ScrapingError | None = None

    @classmethod
    def ok(cls, result: AttendanceResult) -> "StrategyOutcome":
        return cls(OutcomeKind.OK, result=result)

    @classmethod
    def not_applicable(cls, reason: ScrapingError | None = None) -> "StrategyOutcome":
        return cls(OutcomeKind.NOT_APPLICABLE, error=reason)

    @classmethod
    def failed(cls, error: ScrapingError) -> "StrategyOutcome":
        return cls(OutcomeKind.FAILED, error=error)
