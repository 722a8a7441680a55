"""KnownErpStrategy - fast path for one recognized ERP family.

The family is a Spring Security / JSP portal with fixed endpoints:

  GET  /login.htm                              login page, sets JSESSIONID
  POST /j_spring_security_check                j_username / j_password
       -> 302 /home.htm                        success
       -> 302 /login.htm?error=...             bad credentials
  GET  /stu_getAcademicInformationNew.json     {"hasAcademicInfo": true, "AcademicInfo": {"rollNo": ...}}
  GET  /studentCourseFileNew.htm?shwA='00A'    attendance page (primes server-side state)
  GET  /stu_getSubjectOnChangeWithSemId1.json  subject-wise attendance, every term concatenated

Identification is confirmed once the credential check answers with a
redirect. Before that point any failure means "not this ERP" and the engine
moves on to the generic path. After it, failures are terminal: we know the
ERP, so a generic crawl would not do better.
"""

import asyncio

from src.unitrack.assembler import assemble_result, build_subject
from src.unitrack.errors import (
    AccessError,
    AuthenticationError,
    ExtractionError,
    ScrapingError,
)
from src.unitrack.logging import get_logger
from src.unitrack.models import AttendanceResult, ErpSubjectRow, StudentInfo, Subject
from src.unitrack.parsing import extract_student_name, find_login_form
from src.unitrack.session import ErpSession
from src.unitrack.strategies.outcome import StrategyOutcome
from src.unitrack.utils import location_path, parse_int, resolve_url, same_origin

log = get_logger(__name__)

# Location paths that mean the credential check bounced us back.
_FAILED_LOGIN_MARKERS: tuple[str, ...] = ("login", "error")


def looks_like_html(body: str) -> bool:
    head = body[:2048].lower()
    return "<!doctype" in head or "<html" in head


def select_current_term(rows: list[ErpSubjectRow]) -> list[ErpSubjectRow]:
    """Keep only rows of the last term name encountered.

    The endpoint concatenates every term the student has attended; the last
    distinct term in response order is taken to be the current one. Nothing
    in the schema confirms that ordering.
    """
    if not rows:
        return []
    terms = list(dict.fromkeys(row.term_name for row in rows))
    latest = terms[-1]
    return [row for row in rows if row.term_name == latest]


def row_to_subject(row: ErpSubjectRow, threshold: float) -> Subject:
    """Map one wire row; string counts win, numeric counts are the fallback."""
    attended = parse_int(row.present_count) or parse_int(row.std_present_count) or 0
    absent = parse_int(row.absent_count) or parse_int(row.std_absent_count) or 0
    attended, absent = max(0, attended), max(0, absent)
    return build_subject(
        name=str(row.subject or ""),
        code=str(row.subject_code or ""),
        attended=attended,
        total=attended + absent,
        threshold=threshold,
    )


class KnownErpStrategy:
    """Logs in through the fixed endpoints and reads the attendance JSON."""

    name = "known_erp"

    LOGIN_PATH = "/login.htm"
    CHECK_PATH = "/j_spring_security_check"
    USERNAME_FIELD = "j_username"
    PASSWORD_FIELD = "j_password"
    DASHBOARD_PATH = "/home.htm"
    ACADEMIC_INFO_PATH = "/stu_getAcademicInformationNew.json"
    ATTENDANCE_PAGE_PATH = "/studentCourseFileNew.htm?shwA=%2700A%27"
    ATTENDANCE_JSON_PATH = "/stu_getSubjectOnChangeWithSemId1.json"

    def __init__(self, session: ErpSession) -> None:
        self.session = session
        self.config = session.config
        self.origin = session.origin

    async def run(self, username: str, password: str, threshold: float) -> StrategyOutcome:
        # --- Identification: anything going wrong here means "not this ERP" ---
        try:
            hidden_fields = await self._open_login_page()
            response = await self.session.submit(
                f"{self.origin}{self.CHECK_PATH}",
                {
                    **hidden_fields,
                    self.USERNAME_FIELD: username,
                    self.PASSWORD_FIELD: password,
                },
                timeout=self.config.login_timeout_seconds,
            )
        except ScrapingError as e:
            log.info("fast_path_not_applicable", reason=type(e).__name__, detail=str(e))
            return StrategyOutcome.not_applicable(e)
        except Exception as e:
            log.warning("fast_path_not_applicable", reason=type(e).__name__, detail=str(e))
            return StrategyOutcome.not_applicable()

        location = response.headers.get("location", "")
        if not response.is_redirect or not location:
            log.info("fast_path_not_applicable", reason="no_redirect", status=response.status_code)
            return StrategyOutcome.not_applicable()

        path = location_path(location)
        log.info("fast_path_login_redirect", location_path=path)
        if any(marker in path for marker in _FAILED_LOGIN_MARKERS):
            return StrategyOutcome.failed(AuthenticationError(f"redirected to {path}"))

        # --- Identified: from here on every failure is terminal ---
        try:
            result = await self._collect(location, threshold)
        except ScrapingError as e:
            log.warning("fast_path_failed", error=type(e).__name__, detail=str(e))
            return StrategyOutcome.failed(e)
        except Exception as e:
            log.error("fast_path_crashed", error=str(e), type=type(e).__name__, exc_info=True)
            return StrategyOutcome.failed(ScrapingError(f"unexpected {type(e).__name__}: {e}"))
        return StrategyOutcome.ok(result)

    async def _open_login_page(self) -> dict[str, str]:
        """Prime the session cookie; return hidden fields of the login form, if any."""
        url = f"{self.origin}{self.LOGIN_PATH}"
        response = await self.session.get(url)
        if not response.is_success:
            raise AccessError(f"{self.LOGIN_PATH} answered HTTP {response.status_code}")

        form = find_login_form(response.text, url)
        hidden = dict(form.hidden_fields) if form else {}
        log.debug("fast_path_login_page", hidden_fields=sorted(hidden))
        return hidden

    async def _collect(self, location: str, threshold: float) -> AttendanceResult:
        dashboard_url = resolve_url(self.origin, location)
        if dashboard_url is None or not same_origin(dashboard_url, self.origin):
            dashboard_url = f"{self.origin}{self.DASHBOARD_PATH}"

        dashboard = await self.session.get(dashboard_url, follow_redirects=True)
        if not dashboard.is_success:
            raise AccessError(
                f"dashboard answered HTTP {dashboard.status_code}",
                user_message="Could not access the ERP dashboard after login.",
            )
        student_name = extract_student_name(dashboard.text) or "Student"

        roll_no, rows = await asyncio.gather(
            self._fetch_roll_number(),
            self._fetch_rows_speculatively(),
        )

        if rows is None:
            await self._visit_attendance_page()
            rows = await self._fetch_rows()

        current = select_current_term(rows)
        log.info(
            "fast_path_rows",
            rows=len(rows),
            current_term=current[0].term_name if current else None,
            current_rows=len(current),
        )

        subjects = [row_to_subject(row, threshold) for row in current]
        return assemble_result(StudentInfo(name=student_name, usn=roll_no), subjects, threshold)

    async def _fetch_roll_number(self) -> str:
        """Roll number from the academic-info endpoint; empty on any failure."""
        try:
            response = await self.session.get(
                f"{self.origin}{self.ACADEMIC_INFO_PATH}",
                timeout=self.config.secondary_timeout_seconds,
                follow_redirects=True,
            )
            if not response.is_success:
                log.debug("academic_info_unavailable", status=response.status_code)
                return ""
            data = response.json()
        except (ScrapingError, ValueError) as e:
            log.debug("academic_info_unavailable", reason=type(e).__name__)
            return ""

        if not isinstance(data, dict) or not data.get("hasAcademicInfo"):
            return ""
        info = data.get("AcademicInfo")
        if not isinstance(info, dict):
            return ""
        return str(info.get("rollNo") or "").strip()

    async def _fetch_rows_speculatively(self) -> list[ErpSubjectRow] | None:
        """Try the attendance JSON before visiting the attendance page.

        The endpoint often answers without the intermediate page visit.
        Returns None whenever that did not work, so the caller does the visit.
        """
        try:
            rows = await self._fetch_rows(timeout=self.config.secondary_timeout_seconds)
        except ScrapingError as e:
            log.debug("speculative_fetch_missed", reason=type(e).__name__)
            return None
        log.info("speculative_fetch_hit", rows=len(rows))
        return rows

    async def _visit_attendance_page(self) -> None:
        try:
            await self.session.get(f"{self.origin}{self.ATTENDANCE_PAGE_PATH}", follow_redirects=True)
        except ScrapingError as e:
            log.info("attendance_page_visit_failed", reason=type(e).__name__)

    async def _fetch_rows(self, timeout: float | None = None) -> list[ErpSubjectRow]:
        """Fetch and validate the subject-wise attendance rows.

        Raises:
            AccessError: The endpoint answered with an error status.
            AuthenticationError: The endpoint served an HTML login page.
            ExtractionError: The body is not a non-empty JSON array.
        """
        response = await self.session.get(
            f"{self.origin}{self.ATTENDANCE_JSON_PATH}",
            timeout=timeout,
            follow_redirects=True,
        )
        if not response.is_success:
            raise AccessError(
                f"attendance endpoint answered HTTP {response.status_code}",
                user_message="Could not fetch attendance data from the ERP.",
            )

        body = response.text
        if looks_like_html(body):
            raise AuthenticationError("attendance endpoint served an HTML page")

        try:
            data = response.json()
        except ValueError as e:
            raise ExtractionError(f"attendance endpoint returned invalid JSON: {e}") from e

        if not isinstance(data, list):
            raise ExtractionError(f"attendance endpoint returned {type(data).__name__}, not a list")
        rows = [ErpSubjectRow.model_validate(item) for item in data if isinstance(item, dict)]
        if not rows:
            raise ExtractionError("attendance endpoint returned no rows")
        return rows
