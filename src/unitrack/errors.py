"""Error hierarchy for attendance scraping.

Transient failures (network, timeouts, quota) may succeed on a later attempt;
permanent failures (bad credentials, unsupported ERP layout) will not. The
hierarchy lets tenacity retry decorators classify failures automatically:

    @retry(retry=retry_if_exception_type(ErpUnreachableError), stop=stop_after_attempt(2))
    async def get(self, url: str) -> httpx.Response:
        ...

Every error carries a ``user_message`` that is safe to show to the end user.
The exception text itself holds diagnostic detail and is only ever logged.
"""


class ScrapingError(Exception):
    """Base exception for all scraping errors."""

    user_message = "Could not fetch attendance data. This ERP may not be supported yet."

    def __init__(self, detail: str = "", *, user_message: str | None = None) -> None:
        super().__init__(detail or self.user_message)
        if user_message is not None:
            self.user_message = user_message


class TransientError(ScrapingError):
    """Temporary failure that may succeed on retry."""


class ErpUnreachableError(TransientError):
    """The ERP host did not answer at all (DNS, refused connection, TLS)."""

    user_message = "Could not reach the ERP server. Check the URL and try again."


class RequestTimeoutError(TransientError):
    """A single request exceeded its own time budget."""

    user_message = "The ERP server took too long to respond. Please try again later."


class OverallTimeoutError(TransientError):
    """The whole scrape invocation exceeded its wall-clock budget."""

    user_message = "Fetching attendance took too long. The ERP may be slow right now, please try again."


class RateLimitError(TransientError):
    """Every content-extraction model refused the request for quota reasons."""

    user_message = "AI service is temporarily unavailable. Please try again in a few minutes."


class PermanentError(ScrapingError):
    """Failure that won't succeed on retry."""


class ConfigurationError(PermanentError):
    """A required secret is missing; raised before any network call."""

    user_message = "Attendance extraction is not configured on the server."


class InvalidRequestError(PermanentError):
    """Caller supplied missing or malformed input."""

    user_message = "ERP URL, username and password are required."


class AuthenticationError(PermanentError):
    """The ERP rejected the username/password.

    Never retried with the same credentials.
    """

    user_message = "Login failed. Check your username and password."


class LoginFormNotFoundError(PermanentError):
    """No form with a password input exists on the ERP landing page."""

    user_message = "Could not detect a login form on the ERP page."


class AccessError(PermanentError):
    """Authenticated, but the dashboard or attendance page could not be reached."""

    user_message = "Logged in, but could not open the attendance page on the ERP."


class ExtractionError(PermanentError):
    """Attendance content was reachable but yielded no usable rows."""

    user_message = "No attendance data found for this semester."
