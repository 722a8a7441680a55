"""AttendanceEngine - entry point for one attendance scrape.

Strategies are tried in order: the fast path for the known ERP family first
(cheap, no model cost), then the generic path. Each strategy attempt gets its
own ErpSession, so no cookie leaks from one attempt into the next and nothing
is shared between concurrent scrapes.

The whole invocation runs under an overall wall-clock budget. Exceeding it
cancels whatever request is in flight and is reported as OverallTimeoutError,
distinct from a single request's RequestTimeoutError.

Callers always get a FetchResponse: classified failures carry their
user-facing message, anything unclassified becomes the generic "ERP may not
be supported" message. Diagnostic detail only goes to the logs.
"""

import asyncio

import httpx

from src.unitrack.config import ScraperConfig, get_config
from src.unitrack.errors import (
    InvalidRequestError,
    OverallTimeoutError,
    ScrapingError,
)
from src.unitrack.extraction import ContentExtractor
from src.unitrack.logging import get_logger, scrape_context
from src.unitrack.models import AttendanceResult, FetchResponse
from src.unitrack.session import ErpSession
from src.unitrack.strategies import (
    GenericErpStrategy,
    KnownErpStrategy,
    OutcomeKind,
    StrategyOutcome,
)
from src.unitrack.utils import normalize_origin

log = get_logger(__name__)


class AttendanceEngine:
    """Scrapes attendance from an ERP using the fast path, then the generic path.

    Build one engine per process and share it: it holds only configuration
    and the lazily built content extractor, never per-scrape state.
    """

    def __init__(
        self,
        config: ScraperConfig | None = None,
        *,
        extractor: ContentExtractor | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize AttendanceEngine.

        Args:
            config: Scraper configuration; defaults to the environment singleton.
            extractor: Content extractor for the generic path. Built from
                config on first use when omitted.
            transport: Optional httpx transport for every ERP session (tests).
        """
        self.config = config or get_config()
        self._extractor = extractor
        self._transport = transport

    def _get_extractor(self) -> ContentExtractor:
        """The content extractor, built once. Raises ConfigurationError without a key."""
        if self._extractor is None:
            self._extractor = ContentExtractor.from_config(self.config)
        return self._extractor

    def _new_session(self, origin: str) -> ErpSession:
        return ErpSession(origin, self.config, transport=self._transport)

    async def scrape(
        self,
        base_url: str,
        username: str,
        password: str,
        threshold: float | None = None,
    ) -> FetchResponse:
        """Fetch attendance for one student.

        Args:
            base_url: Any URL on the ERP; reduced to its origin.
            username: ERP username / roll number.
            password: ERP password.
            threshold: Minimum attendance percentage; config default when None.

        Returns:
            FetchResponse with ``data`` on success, ``error`` otherwise.
        """
        try:
            origin, threshold = self._validate(base_url, username, password, threshold)
        except InvalidRequestError as e:
            log.info("scrape_rejected", reason=str(e))
            return FetchResponse.failure(e.user_message)

        with scrape_context(origin):
            log.info("scrape_started", threshold=threshold)
            try:
                result = await asyncio.wait_for(
                    self._run(origin, username, password, threshold),
                    timeout=self.config.overall_timeout_seconds,
                )
            except asyncio.TimeoutError:
                error = OverallTimeoutError(
                    f"scrape exceeded {self.config.overall_timeout_seconds}s"
                )
                log.warning("scrape_failed", error=type(error).__name__, detail=str(error))
                return FetchResponse.failure(error.user_message)
            except ScrapingError as e:
                log.warning("scrape_failed", error=type(e).__name__, detail=str(e))
                return FetchResponse.failure(e.user_message)
            except Exception as e:
                log.error("scrape_crashed", error=str(e), type=type(e).__name__, exc_info=True)
                return FetchResponse.failure(ScrapingError.user_message)

            log.info(
                "scrape_succeeded",
                subjects=len(result.subjects),
                has_roll_no=bool(result.student.usn),
            )
            return FetchResponse.ok(result)

    def _validate(
        self,
        base_url: str,
        username: str,
        password: str,
        threshold: float | None,
    ) -> tuple[str, float]:
        if not base_url or not username or not password:
            raise InvalidRequestError("missing base URL, username or password")

        origin = normalize_origin(base_url)

        if threshold is None:
            threshold = self.config.default_threshold
        if not 0 < threshold <= 100:
            raise InvalidRequestError(
                f"threshold {threshold} out of range",
                user_message="Attendance threshold must be above 0 and at most 100.",
            )
        return origin, float(threshold)

    async def _run(
        self, origin: str, username: str, password: str, threshold: float
    ) -> AttendanceResult:
        """Try the strategies in order; raise the terminal error if none succeeds."""
        async with self._new_session(origin) as session:
            outcome = await KnownErpStrategy(session).run(username, password, threshold)
        if outcome.kind is not OutcomeKind.NOT_APPLICABLE:
            return self._unwrap(outcome, "known_erp")

        log.info("falling_back_to_generic")
        extractor = self._get_extractor()
        async with self._new_session(origin) as session:
            outcome = await GenericErpStrategy(session, extractor).run(
                username, password, threshold
            )
        if outcome.kind is OutcomeKind.NOT_APPLICABLE:
            raise ScrapingError("no strategy applies to this ERP")
        return self._unwrap(outcome, "generic")

    @staticmethod
    def _unwrap(outcome: StrategyOutcome, strategy: str) -> AttendanceResult:
        if outcome.kind is OutcomeKind.OK and outcome.result is not None:
            log.info("strategy_succeeded", strategy=strategy)
            return outcome.result
        log.info("strategy_failed", strategy=strategy)
        raise outcome.error or ScrapingError(f"{strategy} failed without an error")


async def scrape_attendance(
    base_url: str,
    username: str,
    password: str,
    threshold: float | None = None,
    *,
    engine: AttendanceEngine | None = None,
) -> FetchResponse:
    """Convenience wrapper: scrape with ``engine`` or a default-configured one."""
    engine = engine or AttendanceEngine()
    return await engine.scrape(base_url, username, password, threshold)
