import pytest
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from services.automation.app.config import AutomationSettings
from services.automation.app.domain.cost_monitor import CostMonitor
from services.automation.app.domain.types import AutomationJob
from services.automation.app.persistence.db import init_db

from support import RecordingSinks, email_sheet_job, make_settings


@pytest.fixture
def settings() -> AutomationSettings:
    return make_settings()


@pytest.fixture
def cost_monitor(settings) -> CostMonitor:
    return CostMonitor(settings.budget)


@pytest.fixture
def sinks() -> RecordingSinks:
    return RecordingSinks()


@pytest.fixture
def job() -> AutomationJob:
    return email_sheet_job()


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'automation.db'}")
    await init_db(engine)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()
