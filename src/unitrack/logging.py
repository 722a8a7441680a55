"""Structured logging for the attendance engine.

Console output during development, JSON lines in production. Modules log
through ``get_logger(__name__)``; per-scrape context (``scrape_id``, ``origin``)
is carried in structlog context variables so concurrent scrapes stay apart.
"""

import logging
import sys
import uuid
from contextlib import contextmanager
from typing import Iterator

import structlog
from structlog.typing import EventDict, WrappedLogger

# Event keys whose values must never reach a log sink.
_SECRET_KEYS: frozenset[str] = frozenset(
    {"password", "j_password", "cookie", "set_cookie", "api_key"}
)


def _redact_secrets(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    for key in _SECRET_KEYS.intersection(event_dict):
        event_dict[key] = "***"
    return event_dict


def setup_logging(json_output: bool = False, log_level: str = "INFO") -> None:
    """Configure structlog processors and the output renderer.

    Args:
        json_output: If True, render JSON lines. If False, human-readable console.
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    processors = [
        structlog.contextvars.merge_contextvars,
        _redact_secrets,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    # Diagnostics go to stderr; stdout is reserved for CLI payloads
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # Bridge stdlib logging (httpx, google-genai) to the same stream
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=numeric_level)
    logging.getLogger().handlers = []
    logging.getLogger().addHandler(logging.StreamHandler(sys.stderr))
    logging.getLogger("httpx").setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: str) -> structlog.BoundLogger:
    """Module logger; call as ``log = get_logger(__name__)``."""
    return structlog.get_logger(name)


@contextmanager
def scrape_context(origin: str) -> Iterator[str]:
    """Bind a fresh ``scrape_id`` and the ERP origin for one invocation."""
    scrape_id = uuid.uuid4().hex[:12]
    with structlog.contextvars.bound_contextvars(scrape_id=scrape_id, origin=origin):
        yield scrape_id
