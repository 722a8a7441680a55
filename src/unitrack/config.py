"""Scraper configuration loaded from environment variables."""

from pydantic import Field
from pydantic_settings import BaseSettings

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36"
)


class ScraperConfig(BaseSettings):
    """Scraper configuration loaded from environment variables.

    Settings are loaded from environment variables with sensible defaults.
    For local development, create a .env file in the project root.
    """

    # Content-extraction service (generic path only)
    gemini_api_key: str = Field(
        default="",
        description="API key for the content-extraction model; empty disables the generic path",
    )
    extraction_models: list[str] = Field(
        default=["gemini-2.0-flash", "gemini-1.5-flash", "gemini-2.0-flash-lite"],
        description="Model identifiers tried in order, falling back on quota errors",
    )
    extraction_max_html_chars: int = Field(
        default=60000,
        description="HTML sent to the model is truncated to this many characters",
    )

    # Attendance policy
    default_threshold: float = Field(
        default=75,
        description="Minimum attendance percentage when the caller passes none",
    )

    # Timeouts (seconds)
    login_timeout_seconds: float = Field(
        default=20,
        description="Budget for the credential submission request",
    )
    request_timeout_seconds: float = Field(
        default=15,
        description="Budget for ordinary page and endpoint requests",
    )
    secondary_timeout_seconds: float = Field(
        default=8,
        description="Budget for lookups that may fail without aborting the scrape",
    )
    overall_timeout_seconds: float = Field(
        default=45,
        description="Wall-clock budget for one whole scrape invocation",
    )

    # Generic path crawling
    candidate_batch_size: int = Field(
        default=5,
        description="Concurrent candidate page fetches per batch",
    )
    max_candidate_pages: int = Field(
        default=25,
        description="Maximum candidate attendance URLs fetched per scrape",
    )
    max_redirect_hops: int = Field(
        default=3,
        description="Redirects followed by hand when a request allows following",
    )

    user_agent: str = Field(
        default=DEFAULT_USER_AGENT,
        description="User-Agent header sent to ERP servers",
    )

    # Logging
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format (for production)",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = {
        "env_prefix": "",
        "case_sensitive": False,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


# Singleton pattern
_config: ScraperConfig | None = None


def get_config() -> ScraperConfig:
    """Get the scraper configuration singleton.

    Returns:
        ScraperConfig: Scraper configuration instance
    """
    global _config
    if _config is None:
        _config = ScraperConfig()
    return _config
