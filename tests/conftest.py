import os

# Point the app at SQLite before anything reads the settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["RUN_MIGRATIONS"] = "false"

import json
from datetime import date

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import StaticPool
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sse_starlette.sse import AppStatus

from app.main import app
from app.api.endpoints.sales import get_model_factory
from app.core import models
from app.core.database import Base, get_db
from app.core.exceptions import TrainingInterrupted
from app.core.forecast.orchestrator import TrainingStats

TEST_DATABASE_URL = "sqlite+aiosqlite://"


class FakeModel:
    """Stands in for the GRU: walks the iterations and forecasts a constant."""

    def __init__(self, value: float = 0.5):
        self.value = value
        self.trained_on = None
        self.forecast_calls = []

    def train(self, series, iterations, error_threshold, on_iteration=None, should_stop=None):
        self.trained_on = list(series)
        error = 1.0
        for iteration in range(1, iterations + 1):
            error = 1.0 / iteration
            if on_iteration is not None:
                on_iteration(iteration, error)
            if should_stop is not None and should_stop():
                raise TrainingInterrupted(iteration)
        return TrainingStats(iterations=iterations, error=error)

    def forecast(self, series, steps):
        self.forecast_calls.append((len(series), steps))
        return [self.value] * steps


class BrokenSession:
    """Session whose every query fails like a lost connection."""

    async def execute(self, *args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("connection refused"))


def parse_events(body: str):
    """Split an event-stream body into decoded JSON payloads."""
    events = []
    for frame in body.split("\n\n"):
        # ": ping" keep-alive comments carry no event
        if frame.strip() and not frame.startswith(":"):
            assert frame.startswith("data: ")
            events.append(json.loads(frame[len("data: "):]))
    return events


# sse-starlette keeps its shutdown event on the class; each test has its own loop
@pytest.fixture(autouse=True)
def reset_sse_app_status():
    if hasattr(AppStatus, "should_exit_event"):
        AppStatus.should_exit_event = None
    yield


# Fresh in-memory database per test
@pytest_asyncio.fixture(scope="function")
async def db_session():
    test_engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    TestingSessionLocal = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with TestingSessionLocal() as session:
        yield session

    await test_engine.dispose()


@pytest.fixture
def fake_model():
    return FakeModel()


# Client
@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, fake_model: FakeModel):
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_model_factory] = lambda: (lambda: fake_model)

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def add_sales(db_session: AsyncSession):
    """Insert (date, amount) pairs and commit."""

    async def _add(rows):
        db_session.add_all(
            models.Sale(date=day, actualsales=amount) for day, amount in rows
        )
        await db_session.commit()

    return _add


def monthly_rows(start_year: int, start_month: int, totals):
    """One sale on the 15th of each consecutive month, starting at start_year/start_month."""
    rows = []
    year, month = start_year, start_month
    for total in totals:
        rows.append((date(year, month, 15), total))
        month += 1
        if month > 12:
            month = 1
            year += 1
    return rows


# 13 months, December 2022 to December 2023; December 2023 totals 1000 over two days
@pytest_asyncio.fixture(scope="function")
async def thirteen_months(add_sales):
    rows = monthly_rows(2022, 12, [200] + [500] * 11)
    rows += [(date(2023, 12, 5), 600), (date(2023, 12, 20), 400)]
    await add_sales(rows)
    return rows
