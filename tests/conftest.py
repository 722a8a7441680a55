import pytest

from src.unitrack.config import ScraperConfig
from src.unitrack.session import ErpSession
from tests.fakes import ORIGIN, FakeErp


@pytest.fixture
def config() -> ScraperConfig:
    return ScraperConfig(
        _env_file=None,
        gemini_api_key="test-key",
        extraction_models=["model-a", "model-b"],
        overall_timeout_seconds=10,
        login_timeout_seconds=5,
        request_timeout_seconds=5,
        secondary_timeout_seconds=2,
    )


@pytest.fixture
def erp() -> FakeErp:
    return FakeErp()


@pytest.fixture
async def session(erp: FakeErp, config: ScraperConfig):
    async with ErpSession(ORIGIN, config, transport=erp.transport) as s:
        yield s
