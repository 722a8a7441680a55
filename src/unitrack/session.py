"""Per-scrape HTTP session: cookie jar plus time-bounded requests.

Each scrape invocation owns exactly one ErpSession. Nothing here is shared
between invocations, so cancelling a scrape only has to abandon in-flight
requests and drop the session.
"""

import asyncio
from types import TracebackType
from typing import Any, Mapping

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from src.unitrack.config import ScraperConfig
from src.unitrack.errors import ErpUnreachableError, RequestTimeoutError
from src.unitrack.logging import get_logger
from src.unitrack.utils import resolve_url

logger = get_logger(__name__)


class CookieJar:
    """Accumulates ``Set-Cookie`` headers into one request ``Cookie`` header.

    Cookies are keyed by name, last write wins. ERPs reissue session cookies
    along redirect chains, so the newest value is the live one. Expiry and
    domain/path scoping are not modelled: a jar lives for one scrape against
    one origin.
    """

    def __init__(self) -> None:
        self._cookies: dict[str, str] = {}

    def update(self, headers: httpx.Headers | Mapping[str, str]) -> None:
        """Ingest every ``Set-Cookie`` entry of a response's headers."""
        if isinstance(headers, httpx.Headers):
            set_cookies = headers.get_list("set-cookie")
        else:
            set_cookies = [v for k, v in headers.items() if k.lower() == "set-cookie"]

        for raw in set_cookies:
            name_value = raw.split(";", 1)[0].strip()
            name, sep, value = name_value.partition("=")
            name = name.strip()
            if not sep or not name:
                continue
            self._cookies[name] = value.strip()

    def get(self, name: str) -> str | None:
        return self._cookies.get(name)

    def __len__(self) -> int:
        return len(self._cookies)

    def __str__(self) -> str:
        return "; ".join(f"{name}={value}" for name, value in self._cookies.items())


class ErpSession:
    """HTTP access to one ERP origin with a cookie jar and per-call timeouts.

    Redirects are never followed automatically; callers inspect ``Location``
    themselves. Timeouts surface as RequestTimeoutError and connection
    failures as ErpUnreachableError so callers can tell "server slow" from
    "server gone".

    Usage:
        async with ErpSession(origin, config) as session:
            page = await session.get(f"{origin}/login.htm")
    """

    def __init__(
        self,
        origin: str,
        config: ScraperConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize ErpSession.

        Args:
            origin: ERP origin (scheme + host) this session talks to.
            config: Scraper configuration (timeouts, user agent).
            transport: Optional httpx transport, used by tests to fake the ERP.
        """
        self.origin = origin
        self.config = config
        self.jar = CookieJar()
        self._client = httpx.AsyncClient(
            transport=transport,
            follow_redirects=False,
            headers={
                "User-Agent": config.user_agent,
                "Accept": "text/html,application/xhtml+xml,application/json;q=0.9,*/*;q=0.8",
                "Cache-Control": "no-store",
            },
        )

    async def __aenter__(self) -> "ErpSession":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_with_timeout(
        self,
        method: str,
        url: str,
        *,
        timeout: float,
        data: Mapping[str, str] | None = None,
        params: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        """Issue one request, abandoning it after ``timeout`` seconds.

        The session's cookies are sent with the request and every
        ``Set-Cookie`` on the response is recorded in the jar.

        Raises:
            RequestTimeoutError: No complete response within ``timeout``.
            ErpUnreachableError: Connection-level failure.
        """
        request_headers: dict[str, str] = dict(headers or {})
        cookie_header = str(self.jar)
        if cookie_header:
            request_headers["Cookie"] = cookie_header

        kwargs: dict[str, Any] = {"headers": request_headers, "timeout": timeout}
        if data is not None:
            kwargs["data"] = dict(data)
        if params is not None:
            kwargs["params"] = dict(params)

        try:
            response = await asyncio.wait_for(
                self._client.request(method, url, **kwargs), timeout=timeout
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.warning("request_timeout", method=method, url=url, timeout=timeout)
            raise RequestTimeoutError(f"{method} {url} timed out after {timeout}s") from e
        except httpx.TransportError as e:
            logger.warning(
                "request_unreachable", method=method, url=url, error=str(e), type=type(e).__name__
            )
            raise ErpUnreachableError(f"{method} {url} failed: {e}") from e

        self.jar.update(response.headers)
        # The jar is the single source of cookies; keep httpx's own store empty
        self._client.cookies.clear()

        logger.debug(
            "response_received",
            method=method,
            url=url,
            status=response.status_code,
            location=response.headers.get("location"),
        )
        return response

    async def fetch_page(
        self,
        url: str,
        *,
        timeout: float | None = None,
        params: Mapping[str, str] | None = None,
        follow_redirects: bool = False,
    ) -> httpx.Response:
        """GET ``url`` once, without retries.

        With ``follow_redirects`` up to ``max_redirect_hops`` redirects are
        followed by hand, recording cookies at every hop. Each hop gets its
        own ``timeout``. A redirect whose ``Location`` cannot be resolved is
        returned as is.
        """
        budget = timeout if timeout is not None else self.config.request_timeout_seconds
        response = await self.fetch_with_timeout("GET", url, timeout=budget, params=params)

        hops = 0
        while follow_redirects and response.is_redirect and hops < self.config.max_redirect_hops:
            location = response.headers.get("location", "")
            next_url = resolve_url(str(response.url), location)
            if next_url is None:
                logger.debug("redirect_unresolvable", url=str(response.url), location=location)
                break
            response = await self.fetch_with_timeout("GET", next_url, timeout=budget)
            hops += 1
        return response

    @retry(
        stop=stop_after_attempt(2),
        wait=wait_fixed(0.5),
        retry=retry_if_exception_type(ErpUnreachableError),
        reraise=True,
    )
    async def get(
        self,
        url: str,
        *,
        timeout: float | None = None,
        params: Mapping[str, str] | None = None,
        follow_redirects: bool = False,
    ) -> httpx.Response:
        """Like ``fetch_page``, but connection failures are retried once.

        Timeouts are not retried.
        """
        return await self.fetch_page(
            url, timeout=timeout, params=params, follow_redirects=follow_redirects
        )

    async def submit(
        self,
        url: str,
        fields: Mapping[str, str],
        *,
        method: str = "POST",
        timeout: float | None = None,
    ) -> httpx.Response:
        """Submit url-encoded form ``fields``. Never retried.

        GET forms send the fields as query parameters.
        """
        budget = timeout if timeout is not None else self.config.login_timeout_seconds
        if method.upper() == "GET":
            return await self.fetch_with_timeout("GET", url, timeout=budget, params=fields)
        return await self.fetch_with_timeout(
            "POST",
            url,
            timeout=budget,
            data=fields,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
