"""GenericErpStrategy - structural login and model-based extraction.

For ERPs we have no endpoints for:

  1. fetch the origin and find the first form with a password input
  2. submit the credentials plus every hidden field (CSRF, view-state)
  3. decide whether the login took: a redirect to a login/error page fails,
     any other redirect is followed; without a redirect the origin is
     re-fetched and a password input still on it means the login failed
  4. locate the attendance page among dashboard links and common paths
  5. have the content-extraction model read the page

This is the last resort, so every failure is terminal.
"""

import httpx

from src.unitrack.assembler import assemble_result, build_subject
from src.unitrack.errors import (
    AccessError,
    AuthenticationError,
    LoginFormNotFoundError,
    ScrapingError,
)
from src.unitrack.extraction import ContentExtractor
from src.unitrack.logging import get_logger
from src.unitrack.models import AttendanceResult, StudentInfo
from src.unitrack.pages.attendance import AttendancePageLocator
from src.unitrack.parsing import extract_student_name, find_login_form, has_password_input
from src.unitrack.session import ErpSession
from src.unitrack.strategies.outcome import StrategyOutcome
from src.unitrack.utils import location_path, resolve_url

log = get_logger(__name__)

_FAILED_LOGIN_MARKERS: tuple[str, ...] = ("login", "error", "failed")


class GenericErpStrategy:
    """Detects the login form, crawls for attendance, and extracts it with a model."""

    name = "generic"

    def __init__(self, session: ErpSession, extractor: ContentExtractor) -> None:
        self.session = session
        self.extractor = extractor
        self.config = session.config
        self.origin = session.origin

    async def run(self, username: str, password: str, threshold: float) -> StrategyOutcome:
        try:
            result = await self._scrape(username, password, threshold)
        except ScrapingError as e:
            log.warning("generic_path_failed", error=type(e).__name__, detail=str(e))
            return StrategyOutcome.failed(e)
        except Exception as e:
            log.error("generic_path_crashed", error=str(e), type=type(e).__name__, exc_info=True)
            return StrategyOutcome.failed(ScrapingError(f"unexpected {type(e).__name__}: {e}"))
        return StrategyOutcome.ok(result)

    async def _scrape(self, username: str, password: str, threshold: float) -> AttendanceResult:
        landing = await self.session.get(f"{self.origin}/", follow_redirects=True)
        if not landing.is_success:
            raise AccessError(
                f"landing page answered HTTP {landing.status_code}",
                user_message="The ERP server returned an error. Please try again later.",
            )

        form = find_login_form(landing.text, str(landing.url))
        if form is None:
            raise LoginFormNotFoundError(f"no password form on {landing.url}")
        log.info(
            "login_form_detected",
            action=form.action,
            method=form.method,
            username_field=form.username_field,
            hidden_fields=sorted(form.hidden_fields),
        )

        fields = {
            **form.hidden_fields,
            form.username_field: username,
            form.password_field: password,
        }
        response = await self.session.submit(
            form.action,
            fields,
            method=form.method,
            timeout=self.config.login_timeout_seconds,
        )
        dashboard = await self._confirm_login(response)
        log.info("generic_login_succeeded", dashboard=str(dashboard.url))

        locator = AttendancePageLocator(
            self.session,
            batch_size=self.config.candidate_batch_size,
            max_candidates=self.config.max_candidate_pages,
        )
        page = await locator.locate(dashboard.text, str(dashboard.url))
        if page is None:
            raise AccessError(
                "no candidate page scored above zero",
                user_message="Logged in, but could not find an attendance page on this ERP.",
            )

        rows = await self.extractor.extract_subjects(page.html)
        subjects = [build_subject(r.name, r.code, r.attended, r.total, threshold) for r in rows]

        student = StudentInfo(name=extract_student_name(dashboard.text) or "Student")
        return assemble_result(student, subjects, threshold)

    async def _confirm_login(self, response: httpx.Response) -> httpx.Response:
        """Classify the login submission and return the post-login page.

        Raises:
            AuthenticationError: The ERP rejected the credentials.
            AccessError: The ERP failed in a way that says nothing about them.
        """
        location = response.headers.get("location", "")
        if response.is_redirect and location:
            path = location_path(location)
            if any(marker in path for marker in _FAILED_LOGIN_MARKERS):
                raise AuthenticationError(f"login redirected to {path}")

            target = resolve_url(str(response.url), location)
            if target is None:
                raise AccessError(
                    f"login redirected to an unusable location {location!r}",
                    user_message="Could not access the ERP dashboard after login.",
                )
            dashboard = await self.session.get(target, follow_redirects=True)
            if not dashboard.is_success:
                raise AccessError(
                    f"post-login page answered HTTP {dashboard.status_code}",
                    user_message="Could not access the ERP dashboard after login.",
                )
            return dashboard

        status = response.status_code
        if 200 <= status < 400:
            # Some ERPs re-render in place instead of redirecting
            check = await self.session.get(f"{self.origin}/", follow_redirects=True)
            if has_password_input(check.text):
                raise AuthenticationError("password field still present after login")
            return check

        if status in (401, 403):
            raise AuthenticationError(f"login answered HTTP {status}")
        raise AccessError(
            f"login answered HTTP {status}",
            user_message="The ERP server returned an error during login. Please try again later.",
        )
