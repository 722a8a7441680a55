import json

import httpx

from src.unitrack.errors import (
    AccessError,
    AuthenticationError,
    ExtractionError,
    LoginFormNotFoundError,
    ScrapingError,
)
from src.unitrack.models import SubjectStatus
from src.unitrack.strategies import GenericErpStrategy, OutcomeKind
from tests.fakes import form_fields, html, make_extractor, redirect

LOGIN_PAGE = """
<html><body>
  <form action="/auth/login" method="post">
    <input type="hidden" name="token" value="t-1">
    <input type="text" name="userid">
    <input type="password" name="pwd">
    <button type="submit">Login</button>
  </form>
</body></html>
"""

DASHBOARD = """
<html><body>
  <input type="hidden" name="studentName" value="Ravi Kumar">
  <a href="/student/fees">Fees</a>
  <a href="/student/attendance-report">My Attendance</a>
</body></html>
"""

ATTENDANCE_PAGE = """
<table>
  <tr><th>Subject</th><th>Present</th><th>Total classes</th><th>Percentage</th></tr>
  <tr><td>Compilers</td><td>27</td><td>30</td><td>90%</td></tr>
  <tr><td>Networks</td><td>20</td><td>30</td><td>66.67%</td></tr>
</table>
"""

MODEL_REPLY = json.dumps(
    [
        {"name": "Compilers", "code": "CS51", "attended": 27, "total": 30},
        {"name": "Networks", "code": "CS52", "attended": 20, "total": 30},
    ]
)


def install_portal(erp, *, login=None):
    erp.get("/", html(LOGIN_PAGE))
    erp.post("/auth/login", login or redirect("/dashboard", cookies=("sid=s1",)))
    erp.get("/dashboard", html(DASHBOARD))
    erp.get("/student/attendance-report", html(ATTENDANCE_PAGE))
    return erp


async def test_generic_login_crawl_and_extract(erp, session):
    install_portal(erp)
    extractor = make_extractor(MODEL_REPLY)

    outcome = await GenericErpStrategy(session, extractor).run("ravi", "pw", 75)

    assert outcome.kind is OutcomeKind.OK
    result = outcome.result
    assert result.student.name == "Ravi Kumar"
    assert result.student.usn == ""
    assert [(s.name, s.percentage, s.status) for s in result.subjects] == [
        ("Compilers", 90, SubjectStatus.SAFE),
        ("Networks", 66.67, SubjectStatus.LOW),
    ]

    (login,) = erp.requested("POST", "/auth/login")
    assert form_fields(login) == {"token": "t-1", "userid": "ravi", "pwd": "pw"}
    _, prompt = extractor.client.calls[0]
    assert "Compilers" in prompt
    assert erp.requested("GET", "/student/attendance-report")[0].headers["cookie"] == "sid=s1"


async def test_no_login_form_is_reported_without_submitting(erp, session):
    erp.get("/", html("<html><body><h1>Welcome to the campus portal</h1></body></html>"))

    outcome = await GenericErpStrategy(session, make_extractor()).run("u", "p", 75)

    assert outcome.kind is OutcomeKind.FAILED
    assert isinstance(outcome.error, LoginFormNotFoundError)
    assert outcome.error.user_message == "Could not detect a login form on the ERP page."
    assert [r.method for r in erp.requests] == ["GET"]


async def test_landing_redirect_resolves_relative_form_action(erp, session):
    erp.get("/", redirect("/portal/index.php"))
    erp.get(
        "/portal/index.php",
        html('<form action="check.php"><input name="u"><input type="password" name="p"></form>'),
    )
    erp.post("/portal/check.php", redirect("/portal/login.php?failed=1"))

    outcome = await GenericErpStrategy(session, make_extractor()).run("u", "p", 75)

    assert isinstance(outcome.error, AuthenticationError)
    assert len(erp.requested("POST", "/portal/check.php")) == 1


async def test_redirect_to_error_page_is_bad_credentials(erp, session):
    install_portal(erp, login=redirect("https://erp.example.edu/error.jsp"))

    outcome = await GenericErpStrategy(session, make_extractor()).run("u", "bad", 75)

    assert outcome.kind is OutcomeKind.FAILED
    assert isinstance(outcome.error, AuthenticationError)
    assert erp.requested("GET", "/dashboard") == []


async def test_login_page_still_showing_password_field_is_bad_credentials(erp, session):
    install_portal(erp, login=html("<p>Invalid username or password</p>"))

    outcome = await GenericErpStrategy(session, make_extractor()).run("u", "bad", 75)

    assert isinstance(outcome.error, AuthenticationError)
    assert len(erp.requested("GET", "/")) == 2


async def test_in_place_login_without_redirect_is_accepted(erp, session):
    install_portal(erp, login=html("<p>Welcome</p>", cookies=("sid=s2",)))

    def landing(request: httpx.Request) -> httpx.Response:
        page = DASHBOARD if "sid=s2" in request.headers.get("cookie", "") else LOGIN_PAGE
        return httpx.Response(200, text=page)

    erp.get("/", landing)

    outcome = await GenericErpStrategy(session, make_extractor(MODEL_REPLY)).run("u", "p", 75)

    assert outcome.kind is OutcomeKind.OK
    assert len(outcome.result.subjects) == 2
    assert outcome.result.student.name == "Ravi Kumar"


async def test_forbidden_login_response_is_bad_credentials(erp, session):
    install_portal(erp, login=html("Forbidden", status=403))

    outcome = await GenericErpStrategy(session, make_extractor()).run("u", "p", 75)

    assert isinstance(outcome.error, AuthenticationError)


async def test_server_error_on_login_is_not_blamed_on_credentials(erp, session):
    install_portal(erp, login=html("Oops", status=500))

    outcome = await GenericErpStrategy(session, make_extractor()).run("u", "p", 75)

    assert isinstance(outcome.error, AccessError)
    assert "try again later" in outcome.error.user_message


async def test_no_attendance_page_after_login(erp, session):
    install_portal(erp)
    erp.get("/dashboard", html("<p>Hello</p>"))

    extractor = make_extractor()
    outcome = await GenericErpStrategy(session, extractor).run("u", "p", 75)

    assert isinstance(outcome.error, AccessError)
    assert outcome.error.user_message == (
        "Logged in, but could not find an attendance page on this ERP."
    )
    assert extractor.client.calls == []


async def test_model_finding_nothing_is_an_extraction_error(erp, session):
    install_portal(erp)

    outcome = await GenericErpStrategy(session, make_extractor("[]")).run("u", "p", 75)

    assert outcome.kind is OutcomeKind.FAILED
    assert isinstance(outcome.error, ExtractionError)


async def test_malformed_dashboard_link_does_not_abort_the_crawl(erp, session):
    install_portal(erp)
    erp.get(
        "/dashboard",
        html(
            '<a href="http://[broken/x">News</a>'
            '<a href="/student/attendance-report">Attendance</a>'
        ),
    )

    outcome = await GenericErpStrategy(session, make_extractor(MODEL_REPLY)).run("u", "p", 75)

    assert outcome.kind is OutcomeKind.OK
    assert [s.name for s in outcome.result.subjects] == ["Compilers", "Networks"]


async def test_unexpected_exception_becomes_a_failed_outcome(erp, session):
    def broken(request):
        raise RuntimeError("parser exploded")

    install_portal(erp)
    erp.get("/dashboard", broken)

    outcome = await GenericErpStrategy(session, make_extractor()).run("u", "p", 75)

    assert outcome.kind is OutcomeKind.FAILED
    assert isinstance(outcome.error, ScrapingError)
    assert outcome.error.user_message == ScrapingError.user_message
