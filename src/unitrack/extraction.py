"""Content-extraction model adapter for the generic scraping path.

Sends trimmed page HTML (or an image) to a hosted content-understanding model
with a strict output contract and turns the reply into attendance rows. Models
are tried in order; a quota/rate-limit refusal moves on to the next model, any
other failure stops immediately.

The adapter is constructed explicitly (``ContentExtractor.from_config``) and
handed to the engine. Construction fails with ConfigurationError when no API
key is configured, before any network call is attempted.
"""

import json
import re
from typing import Any, Protocol, Sequence

from google import genai
from google.genai import types
from pydantic import BaseModel, ConfigDict

from src.unitrack.config import ScraperConfig
from src.unitrack.errors import ConfigurationError, ExtractionError, RateLimitError
from src.unitrack.logging import get_logger
from src.unitrack.utils import parse_int, truncate_html

log = get_logger(__name__)

ATTENDANCE_PROMPT = """You are reading the HTML of a page from a university ERP portal.
Extract the student's subject-wise attendance.

Return ONLY a JSON array, no markdown, no explanation. Each element must be:
{"name": "<subject name>", "code": "<subject code, or empty string>", "attended": <classes attended, integer>, "total": <total classes held, integer>}

Rules:
- One element per subject. Skip header rows and grand-total rows.
- If a subject shows only a percentage and no counts, skip it. Never invent counts.
- If the page contains no attendance data, return [].

HTML:
"""

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)

# Fragments of error messages that mean "over quota, try another model".
_QUOTA_MARKERS: tuple[str, ...] = (
    "quota",
    "rate limit",
    "rate_limit",
    "ratelimit",
    "resource_exhausted",
    "resource exhausted",
)


class ModelClient(Protocol):
    """Anything that can run one prompt against one named model."""

    async def generate(
        self,
        model: str,
        prompt: str,
        *,
        image: bytes | None = None,
        mime_type: str = "image/png",
    ) -> str: ...


class GeminiModelClient:
    """ModelClient backed by the google-genai SDK."""

    def __init__(self, api_key: str) -> None:
        self._client = genai.Client(api_key=api_key)

    async def generate(
        self,
        model: str,
        prompt: str,
        *,
        image: bytes | None = None,
        mime_type: str = "image/png",
    ) -> str:
        contents: list[Any] = [prompt]
        if image is not None:
            contents.append(types.Part.from_bytes(data=image, mime_type=mime_type))
        response = await self._client.aio.models.generate_content(model=model, contents=contents)
        return (response.text or "").strip()


class ExtractedRow(BaseModel):
    """One subject as reported by the model, after coercion."""

    model_config = ConfigDict(frozen=True)

    name: str
    code: str = ""
    attended: int
    total: int


def is_quota_error(exc: BaseException) -> bool:
    """True when ``exc`` reports quota exhaustion or rate limiting."""
    if getattr(exc, "code", None) == 429:
        return True
    message = str(exc).lower()
    return any(marker in message for marker in _QUOTA_MARKERS)


def strip_code_fence(text: str) -> str:
    """Return the body of the first fenced code block, or the text itself."""
    match = _FENCED_BLOCK.search(text or "")
    if match:
        return match.group(1).strip()
    return (text or "").strip()


def parse_json_reply(text: str) -> Any:
    """Decode a model reply that should be JSON, tolerating a code fence.

    Raises:
        ExtractionError: The reply is not valid JSON.
    """
    payload = strip_code_fence(text)
    try:
        return json.loads(payload)
    except json.JSONDecodeError as e:
        raise ExtractionError(f"model reply is not JSON: {e}") from e


def coerce_rows(items: Any) -> list[ExtractedRow]:
    """Validate model output into rows.

    Non-numeric counts fall back to zero; rows with no classes held are
    dropped because they carry no percentage.
    """
    if not isinstance(items, list):
        return []

    rows: list[ExtractedRow] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        total = parse_int(item.get("total")) or 0
        if total <= 0:
            continue
        attended = max(0, parse_int(item.get("attended")) or 0)
        rows.append(
            ExtractedRow(
                name=str(item.get("name") or "").strip(),
                code=str(item.get("code") or "").strip(),
                attended=min(attended, total),
                total=total,
            )
        )
    return rows


class ContentExtractor:
    """Turns arbitrary attendance HTML into rows via a hosted model."""

    def __init__(
        self,
        client: ModelClient,
        models: Sequence[str],
        *,
        max_html_chars: int = 60000,
    ) -> None:
        if not models:
            raise ConfigurationError("no extraction models configured")
        self.client = client
        self.models = list(models)
        self.max_html_chars = max_html_chars

    @classmethod
    def from_config(cls, config: ScraperConfig) -> "ContentExtractor":
        """Build the production extractor.

        Raises:
            ConfigurationError: ``GEMINI_API_KEY`` is not set.
        """
        if not config.gemini_api_key:
            raise ConfigurationError("GEMINI_API_KEY is not set")
        return cls(
            GeminiModelClient(config.gemini_api_key),
            config.extraction_models,
            max_html_chars=config.extraction_max_html_chars,
        )

    async def generate(
        self,
        prompt: str,
        *,
        image: bytes | None = None,
        mime_type: str = "image/png",
    ) -> str:
        """Run ``prompt`` on the first model that is not over quota.

        Raises:
            RateLimitError: Every model refused for quota reasons.
            ExtractionError: A model failed for any other reason.
        """
        last_error: BaseException | None = None
        for model in self.models:
            try:
                text = await self.client.generate(model, prompt, image=image, mime_type=mime_type)
            except Exception as e:
                if is_quota_error(e):
                    log.warning("extraction_model_quota", model=model, error=str(e))
                    last_error = e
                    continue
                log.error("extraction_model_failed", model=model, error=str(e), type=type(e).__name__)
                raise ExtractionError(
                    f"model {model} failed: {e}",
                    user_message="Could not read the attendance page right now. Please try again later.",
                ) from e
            log.info("extraction_model_replied", model=model, reply_chars=len(text))
            return text

        raise RateLimitError(f"all extraction models over quota: {last_error}") from last_error

    async def extract_subjects(self, html: str) -> list[ExtractedRow]:
        """Extract attendance rows from a page.

        Only the first ``max_html_chars`` characters are sent, so subjects at
        the tail of a very large page can be missed.

        Raises:
            ExtractionError: The reply was unparseable or held no usable rows.
        """
        trimmed = truncate_html(html, self.max_html_chars)
        if len(trimmed) < len(html):
            log.info("extraction_html_truncated", original_chars=len(html), sent_chars=len(trimmed))

        reply = await self.generate(ATTENDANCE_PROMPT + trimmed)
        rows = coerce_rows(parse_json_reply(reply))
        if not rows:
            raise ExtractionError("model returned no usable attendance rows")

        log.info("extraction_rows_parsed", rows=len(rows))
        return rows
