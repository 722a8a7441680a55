import asyncio

import httpx

from src.unitrack.pages.attendance import COMMON_PATHS, AttendancePageLocator, score_page
from tests.fakes import ORIGIN, html, redirect, refused, timeout

DASHBOARD_URL = f"{ORIGIN}/home"

ATTENDANCE_TABLE = """
<h2>Attendance</h2>
<table>
  <tr><th>Subject</th><th>Present</th><th>Absent</th><th>Percentage</th></tr>
  <tr><td>Maths</td><td>30</td><td>2</td><td>93.75</td></tr>
</table>
"""


def test_score_page_counts_table_and_capped_keywords():
    assert score_page("<p>hello</p>") == 0
    assert score_page("<table></table>") == 2
    assert score_page("attendance " * 20) == 5
    assert score_page(ATTENDANCE_TABLE) > score_page("<table><tr><td>Fees</td></tr></table>")


def test_candidates_put_matching_links_first_and_skip_foreign_hosts(session):
    dashboard = f"""
    <a href="/fees">Fees</a>
    <a href="/student/lectureAbsent.php">Absent list</a>
    <a href="/reports/attendance">Attendance report</a>
    <a href="https://lms.elsewhere.com/attendance">LMS attendance</a>
    <a href="{DASHBOARD_URL}">Home (present term)</a>
    """
    locator = AttendancePageLocator(session)
    urls = locator.candidate_urls(dashboard, DASHBOARD_URL)

    assert urls[:2] == [
        f"{ORIGIN}/student/lectureAbsent.php",
        f"{ORIGIN}/reports/attendance",
    ]
    assert f"{ORIGIN}/fees" not in urls
    assert not any("elsewhere" in url for url in urls)
    assert DASHBOARD_URL not in urls
    # common path already found as a link is not repeated
    assert urls.count(f"{ORIGIN}/reports/attendance") == 1
    assert len(urls) == 2 + len(COMMON_PATHS) - 1


def test_candidates_are_capped(session):
    links = "".join(f'<a href="/attendance/{i}">Attendance {i}</a>' for i in range(40))
    locator = AttendancePageLocator(session, max_candidates=25)

    assert len(locator.candidate_urls(links, DASHBOARD_URL)) == 25


async def test_highest_scoring_candidate_wins(erp, session):
    erp.get("/attendance", html("<table><tr><td>Fee receipt</td></tr></table>"))
    erp.get("/student/attendance", html(ATTENDANCE_TABLE))

    page = await AttendancePageLocator(session).locate("<p>Welcome</p>", DASHBOARD_URL)

    assert page is not None
    assert page.url == f"{ORIGIN}/student/attendance"
    assert "Maths" in page.html


async def test_failing_candidates_are_dropped_silently(erp, session):
    erp.get("/attendance", timeout)
    erp.get("/attendance.htm", refused)
    erp.get("/attendance.php", html("Server error", status=500))
    erp.get("/studentAttendance.htm", html(ATTENDANCE_TABLE))

    page = await AttendancePageLocator(session).locate("<p>Welcome</p>", DASHBOARD_URL)

    assert page is not None
    assert page.url == f"{ORIGIN}/studentAttendance.htm"
    # connection failures are not retried while crawling
    assert len(erp.requested("GET", "/attendance.htm")) == 1


async def test_redirecting_candidate_is_scored_on_its_final_page(erp, session):
    erp.get("/attendance", redirect("/attendance/", cookies=("sid=a1",)))
    erp.get("/attendance/", html(ATTENDANCE_TABLE))

    page = await AttendancePageLocator(session).locate("<p>Welcome</p>", DASHBOARD_URL)

    assert page is not None
    assert page.url == f"{ORIGIN}/attendance/"
    assert "Maths" in page.html
    assert erp.requested("GET", "/attendance/")[0].headers["cookie"] == "sid=a1"


async def test_dashboard_with_inline_attendance_is_selected(erp, session):
    page = await AttendancePageLocator(session).locate(ATTENDANCE_TABLE, DASHBOARD_URL)

    assert page is not None
    assert page.url == DASHBOARD_URL
    assert "/home" not in erp.paths()


async def test_equal_scores_keep_enumeration_order(erp, session):
    erp.get("/attendance", html("<table></table>"))
    erp.get("/reports/attendance", html("<table></table>"))

    page = await AttendancePageLocator(session).locate("<p>Welcome</p>", DASHBOARD_URL)

    assert page is not None
    assert page.url == f"{ORIGIN}/attendance"


async def test_nothing_found_returns_none(erp, session):
    page = await AttendancePageLocator(session).locate("<p>Welcome</p>", DASHBOARD_URL)

    assert page is None
    assert len(erp.requests) == len(COMMON_PATHS)


async def test_candidates_are_fetched_in_bounded_batches(erp, session):
    in_flight = 0
    peak = 0

    async def slow_page(request):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return httpx.Response(200, text="<p>nothing</p>")

    for path in COMMON_PATHS:
        erp.get(path, slow_page)

    await AttendancePageLocator(session, batch_size=5).locate("<p>Welcome</p>", DASHBOARD_URL)

    assert len(erp.requests) == len(COMMON_PATHS)
    assert 1 < peak <= 5
