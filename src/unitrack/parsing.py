"""Structural extraction from untrusted ERP markup.

All HTML parsing lives here behind a narrow interface (forms, links, a few
field lookups) so the scraping strategies never touch the parser directly.
BeautifulSoup with the stdlib ``html.parser`` backend tolerates the broken
markup ERPs tend to serve.
"""

import re

from bs4 import BeautifulSoup
from bs4.element import Tag

from src.unitrack.models import DetectedForm, Link
from src.unitrack.utils import resolve_url

# Input types that can never hold the username.
_NON_USERNAME_TYPES: frozenset[str] = frozenset(
    {"hidden", "password", "button", "submit", "checkbox", "radio", "reset", "image", "file"}
)

_WHITESPACE = re.compile(r"\s+")


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def _input_type(tag: Tag) -> str:
    return (tag.get("type") or "text").strip().lower()


def _parse_form(form: Tag, base_url: str) -> DetectedForm:
    raw_action = (form.get("action") or "").strip()
    action = resolve_url(base_url, raw_action) if raw_action else None

    method = (form.get("method") or "POST").strip().upper()
    if method not in ("GET", "POST"):
        method = "POST"

    inputs = form.find_all("input")

    password_input = next((i for i in inputs if _input_type(i) == "password"), None)
    password_field = "password"
    if password_input is not None and password_input.get("name"):
        password_field = password_input["name"]

    username_field = "username"
    for tag in inputs:
        if _input_type(tag) in _NON_USERNAME_TYPES:
            continue
        if tag.get("name"):
            username_field = tag["name"]
            break

    hidden_fields: dict[str, str] = {}
    for tag in inputs:
        if _input_type(tag) == "hidden" and tag.get("name"):
            hidden_fields[tag["name"]] = tag.get("value") or ""

    return DetectedForm(
        action=action or base_url,
        method=method,
        username_field=username_field,
        password_field=password_field,
        hidden_fields=hidden_fields,
        has_password_input=password_input is not None,
    )


def extract_forms(html: str, base_url: str) -> list[DetectedForm]:
    """Every ``<form>`` in document order, with its action resolved against ``base_url``."""
    return [_parse_form(form, base_url) for form in _soup(html).find_all("form")]


def find_login_form(html: str, base_url: str) -> DetectedForm | None:
    """The first form containing a password input, or None.

    No scoring is applied between several matching forms: the first one wins.
    """
    for form in extract_forms(html, base_url):
        if form.has_password_input:
            return form
    return None


def has_password_input(html: str) -> bool:
    """True when the page has a password input anywhere, inside a form or not."""
    for tag in _soup(html).find_all("input"):
        if _input_type(tag) == "password":
            return True
    return False


def extract_links(html: str, base_url: str) -> list[Link]:
    """All fetchable anchors, absolute, in document order (duplicates kept)."""
    links: list[Link] = []
    for anchor in _soup(html).find_all("a", href=True):
        href = resolve_url(base_url, anchor["href"])
        if href is None:
            continue
        text = _WHITESPACE.sub(" ", anchor.get_text(" ", strip=True)).strip()
        links.append(Link(href=href, text=text))
    return links


def extract_student_name(html: str) -> str | None:
    """Student name from a hidden ``studentName`` input, whitespace collapsed."""
    soup = _soup(html)
    pattern = re.compile(r"^studentName$", re.IGNORECASE)
    tag = soup.find("input", attrs={"name": pattern}) or soup.find("input", attrs={"id": pattern})
    if tag is None:
        return None
    value = _WHITESPACE.sub(" ", tag.get("value") or "").strip()
    return value or None
