"""AttendancePageLocator - finds the attendance view on an unknown ERP.

After a generic login we only know the dashboard. Candidate attendance pages
come from two places:

  1. dashboard links whose href or visible text looks attendance-related
     ("Attendance Report", "/student/lectureAbsent.php", ...)
  2. a fixed list of paths common across ERP products, appended to the origin

Candidates are fetched in concurrent batches (5 by default) so a single scrape
never opens more than a handful of connections to the ERP. Redirects are
followed and the final page is scored. A candidate that times out or answers
with an error status is dropped silently.

Every fetched page, and the dashboard itself (some ERPs show attendance inline
on the landing page), is scored by content: +2 for a <table>, plus the count of
each attendance keyword capped at 5. The best page wins; equal scores keep
enumeration order (dashboard first, then links, then common paths).
"""

import asyncio
import re

from src.unitrack.errors import ScrapingError
from src.unitrack.logging import get_logger
from src.unitrack.models import ScoredPage
from src.unitrack.parsing import extract_links
from src.unitrack.session import ErpSession
from src.unitrack.utils import same_origin, url_key

log = get_logger(__name__)

LINK_PATTERN = re.compile(r"attend|present|absent|report|lecture|class.*report", re.IGNORECASE)

# Paths seen on common ERP products (Spring/JSP, PHP, ASP.NET portals).
COMMON_PATHS: tuple[str, ...] = (
    "/attendance",
    "/attendance.htm",
    "/attendance.php",
    "/student/attendance",
    "/student/attendance.php",
    "/student/Attendance.aspx",
    "/StudentAttendance.aspx",
    "/studentAttendance.htm",
    "/studentCourseFileNew.htm",
    "/academics/attendance",
    "/reports/attendance",
)

SCORE_KEYWORDS: tuple[str, ...] = (
    "attendance",
    "present",
    "absent",
    "total classes",
    "total lectures",
    "percentage",
    "subject",
)
KEYWORD_CAP = 5
TABLE_BONUS = 2


def score_page(html: str) -> int:
    """Heuristic likelihood that ``html`` holds attendance data."""
    text = html.lower()
    score = TABLE_BONUS if "<table" in text else 0
    for keyword in SCORE_KEYWORDS:
        score += min(text.count(keyword), KEYWORD_CAP)
    return score


class AttendancePageLocator:
    """Searches an authenticated ERP session for its attendance page."""

    def __init__(
        self,
        session: ErpSession,
        *,
        batch_size: int = 5,
        max_candidates: int = 25,
        timeout: float | None = None,
    ) -> None:
        self.session = session
        self.batch_size = max(1, batch_size)
        self.max_candidates = max_candidates
        self.timeout = timeout if timeout is not None else session.config.secondary_timeout_seconds

    def candidate_urls(self, dashboard_html: str, dashboard_url: str) -> list[str]:
        """Keyword-matched dashboard links, then common paths; deduplicated.

        Only same-origin URLs are kept, and the dashboard itself is excluded
        because it is scored without being fetched again.
        """
        origin = self.session.origin
        seen: set[str] = {url_key(dashboard_url)}
        candidates: list[str] = []

        def add(url: str) -> None:
            key = url_key(url)
            if key in seen or not same_origin(url, origin):
                return
            seen.add(key)
            candidates.append(url)

        for link in extract_links(dashboard_html, dashboard_url):
            if LINK_PATTERN.search(link.href) or LINK_PATTERN.search(link.text):
                add(link.href)

        for path in COMMON_PATHS:
            add(f"{origin}{path}")

        return candidates[: self.max_candidates]

    async def _fetch(self, url: str) -> ScoredPage | None:
        try:
            response = await self.session.fetch_page(
                url, timeout=self.timeout, follow_redirects=True
            )
        except ScrapingError as e:
            log.debug("candidate_dropped", url=url, reason=type(e).__name__)
            return None

        if not response.is_success:
            log.debug("candidate_dropped", url=url, status=response.status_code)
            return None

        html = response.text
        return ScoredPage(url=str(response.url), html=html, score=score_page(html))

    async def fetch_candidates(self, urls: list[str]) -> list[ScoredPage]:
        """Fetch ``urls`` in bounded concurrent batches, keeping enumeration order."""
        pages: list[ScoredPage] = []
        for start in range(0, len(urls), self.batch_size):
            batch = urls[start : start + self.batch_size]
            results = await asyncio.gather(*(self._fetch(url) for url in batch))
            pages.extend(page for page in results if page is not None)
        return pages

    async def locate(self, dashboard_html: str, dashboard_url: str) -> ScoredPage | None:
        """Best-scoring page, or None when nothing scored above zero.

        None means the login worked but no attendance page was found.
        """
        urls = self.candidate_urls(dashboard_html, dashboard_url)
        log.info("attendance_candidates", count=len(urls))

        pages = [
            ScoredPage(url=dashboard_url, html=dashboard_html, score=score_page(dashboard_html)),
            *await self.fetch_candidates(urls),
        ]

        best: ScoredPage | None = None
        for page in pages:
            if best is None or page.score > best.score:
                best = page

        if best is None or best.score <= 0:
            log.info("attendance_page_not_found", fetched=len(pages))
            return None

        log.info("attendance_page_selected", url=best.url, score=best.score, fetched=len(pages))
        return best
