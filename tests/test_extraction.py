import pytest

from src.unitrack.config import ScraperConfig
from src.unitrack.errors import ConfigurationError, ExtractionError, RateLimitError
from src.unitrack.extraction import (
    ATTENDANCE_PROMPT,
    ContentExtractor,
    coerce_rows,
    is_quota_error,
    parse_json_reply,
    strip_code_fence,
)
from tests.fakes import make_extractor

ROWS_JSON = (
    '[{"name": "Maths", "code": "MA101", "attended": 30, "total": 36},'
    ' {"name": "Physics", "code": "PH101", "attended": "18", "total": "20"}]'
)


class QuotaExceeded(Exception):
    code = 429


def test_strip_code_fence():
    assert strip_code_fence('```json\n[{"a": 1}]\n```') == '[{"a": 1}]'
    assert strip_code_fence("Here you go:\n```\n[]\n```\nThanks") == "[]"
    assert strip_code_fence("  [1, 2]  ") == "[1, 2]"


def test_parse_json_reply_rejects_prose():
    with pytest.raises(ExtractionError):
        parse_json_reply("I could not find attendance on this page.")


def test_coerce_rows_normalizes_counts():
    rows = coerce_rows(
        [
            {"name": " Maths ", "code": None, "attended": "12", "total": 15},
            {"name": "Lab", "attended": 14, "total": 10},
            {"name": "Seminar", "attended": 0, "total": 0},
            {"name": "Sports", "attended": "n/a", "total": "abc"},
            {"name": "Library", "attended": "abc", "total": 8},
            "not a row",
        ]
    )

    assert [(r.name, r.code, r.attended, r.total) for r in rows] == [
        ("Maths", "", 12, 15),
        ("Lab", "", 10, 10),
        ("Library", "", 0, 8),
    ]


def test_coerce_rows_ignores_non_list_payloads():
    assert coerce_rows({"subjects": []}) == []
    assert coerce_rows(None) == []


def test_is_quota_error():
    assert is_quota_error(QuotaExceeded("too many"))
    assert is_quota_error(Exception("429 RESOURCE_EXHAUSTED"))
    assert is_quota_error(Exception("Quota exceeded for metric"))
    assert not is_quota_error(Exception("could not generate content"))
    assert not is_quota_error(ValueError("invalid argument"))


def test_token_counts_are_not_mistaken_for_rate_limits():
    assert not is_quota_error(Exception("prompt used 4290 tokens, limit exceeded"))
    assert not is_quota_error(RuntimeError("response truncated at 1429 characters"))


async def test_extract_subjects_from_fenced_reply():
    extractor = make_extractor(f"```json\n{ROWS_JSON}\n```")

    rows = await extractor.extract_subjects("<table>...</table>")

    assert [(r.name, r.attended, r.total) for r in rows] == [("Maths", 30, 36), ("Physics", 18, 20)]
    model, prompt = extractor.client.calls[0]
    assert model == "model-a"
    assert prompt.startswith(ATTENDANCE_PROMPT)
    assert prompt.endswith("<table>...</table>")


async def test_empty_array_means_no_attendance_data():
    extractor = make_extractor("```json\n[]\n```")

    with pytest.raises(ExtractionError) as exc_info:
        await extractor.extract_subjects("<p>nothing here</p>")
    assert exc_info.value.user_message == "No attendance data found for this semester."


async def test_invalid_json_is_an_extraction_error():
    extractor = make_extractor("Sorry, I can't help with that.")

    with pytest.raises(ExtractionError):
        await extractor.extract_subjects("<p>page</p>")


async def test_quota_error_falls_back_to_next_model():
    extractor = make_extractor(QuotaExceeded("over quota"), ROWS_JSON)

    rows = await extractor.extract_subjects("<table></table>")

    assert len(rows) == 2
    assert [model for model, _ in extractor.client.calls] == ["model-a", "model-b"]


async def test_non_quota_error_stops_immediately():
    extractor = make_extractor(RuntimeError("invalid API key"), ROWS_JSON)

    with pytest.raises(ExtractionError) as exc_info:
        await extractor.extract_subjects("<table></table>")

    assert [model for model, _ in extractor.client.calls] == ["model-a"]
    assert "try again later" in exc_info.value.user_message


async def test_all_models_over_quota_is_a_rate_limit_error():
    extractor = make_extractor(QuotaExceeded("a"), Exception("Rate limit reached"))

    with pytest.raises(RateLimitError) as exc_info:
        await extractor.extract_subjects("<table></table>")
    assert exc_info.value.user_message.startswith("AI service is temporarily unavailable")


async def test_html_is_truncated_before_sending():
    extractor = make_extractor(ROWS_JSON, max_html_chars=100)

    await extractor.extract_subjects("x" * 500)

    _, prompt = extractor.client.calls[0]
    assert prompt == ATTENDANCE_PROMPT + "x" * 100


async def test_generate_passes_images_through():
    extractor = make_extractor('{"ok": true}')

    reply = await extractor.generate("read this timetable", image=b"\x89PNG")

    assert reply == '{"ok": true}'
    assert extractor.client.calls == [("model-a", "read this timetable")]


def test_from_config_requires_api_key():
    with pytest.raises(ConfigurationError):
        ContentExtractor.from_config(ScraperConfig(_env_file=None, gemini_api_key=""))


def test_extractor_requires_models():
    with pytest.raises(ConfigurationError):
        ContentExtractor(object(), [])
