"""Shared helpers for URL handling, lenient number parsing, and HTML budgets."""

import math
import re
from urllib.parse import urldefrag, urljoin, urlsplit

from src.unitrack.errors import InvalidRequestError

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")

# Schemes that never point at a fetchable page.
_NON_HTTP_PREFIXES: tuple[str, ...] = ("javascript:", "mailto:", "tel:", "data:", "#")


def normalize_origin(url: str) -> str:
    """Reduce a pasted ERP URL to its origin (scheme + host [+ port]).

    Users often paste a deep link such as ``https://erp.example.edu/home.htm``.
    A URL without a scheme is treated as https.

    Raises:
        InvalidRequestError: If no http(s) host can be recovered.
    """
    candidate = (url or "").strip()
    if not candidate:
        raise InvalidRequestError("empty ERP URL")
    if "://" not in candidate:
        candidate = f"https://{candidate}"

    try:
        parts = urlsplit(candidate)
        port = parts.port
    except ValueError as e:
        raise InvalidRequestError(f"unparseable ERP URL: {e}", user_message="Invalid ERP URL.") from e

    if parts.scheme.lower() not in ("http", "https") or not parts.hostname:
        raise InvalidRequestError(f"not an http(s) URL: {url!r}", user_message="Invalid ERP URL.")

    host = parts.hostname.lower()
    netloc = f"{host}:{port}" if port else host
    return f"{parts.scheme.lower()}://{netloc}"


def resolve_url(base_url: str, href: str) -> str | None:
    """Resolve ``href`` against ``base_url``, dropping the fragment.

    Returns None for links that cannot be fetched (javascript:, mailto:, bare
    anchors) and for malformed ones such as ``http://[broken/x``.
    """
    href = (href or "").strip()
    if not href or href.lower().startswith(_NON_HTTP_PREFIXES):
        return None
    try:
        absolute, _ = urldefrag(urljoin(base_url, href))
        scheme = urlsplit(absolute).scheme
    except ValueError:
        return None
    if scheme not in ("http", "https"):
        return None
    return absolute


def same_origin(url: str, origin: str) -> bool:
    """True when ``url`` lives on ``origin``."""
    try:
        return normalize_origin(url) == origin
    except InvalidRequestError:
        return False


def url_key(url: str) -> str:
    """Normalized form used to collapse duplicate candidate URLs."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    path = parts.path.rstrip("/") or "/"
    query = f"?{parts.query}" if parts.query else ""
    return f"{parts.scheme.lower()}://{parts.netloc.lower()}{path}{query}"


def location_path(location: str) -> str:
    """Path part of a ``Location`` header, relative or absolute, lowercased."""
    try:
        return urlsplit(location or "").path.lower()
    except ValueError:
        return (location or "").split("?", 1)[0].lower()


def parse_int(value: object) -> int | None:
    """Parse an integer the way lenient web APIs mean it.

    Accepts ints, floats (truncated) and strings with a leading integer
    (``"12"``, ``" 12 classes"``). Returns None when nothing numeric is found.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        if match:
            return int(match.group(1))
    return None


def truncate_html(html: str, max_chars: int) -> str:
    """Cut ``html`` to the first ``max_chars`` characters."""
    if max_chars <= 0 or len(html) <= max_chars:
        return html
    return html[:max_chars]
