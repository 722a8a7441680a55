import structlog

from src.unitrack.logging import _redact_secrets, scrape_context


def test_scrape_context_binds_and_clears_ids():
    with scrape_context("https://erp.example.edu") as scrape_id:
        bound = structlog.contextvars.get_contextvars()
        assert bound == {"scrape_id": scrape_id, "origin": "https://erp.example.edu"}
        assert len(scrape_id) == 12

    assert "scrape_id" not in structlog.contextvars.get_contextvars()


def test_each_scrape_gets_its_own_id():
    with scrape_context("https://a.example.edu") as first:
        pass
    with scrape_context("https://a.example.edu") as second:
        pass
    assert first != second


def test_secret_values_are_redacted():
    event = _redact_secrets(None, "info", {"event": "login", "password": "hunter2", "url": "/x"})
    assert event == {"event": "login", "password": "***", "url": "/x"}
