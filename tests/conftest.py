"""Shared test fixtures."""
from datetime import datetime, timedelta
from typing import Generator
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Import all models so SQLModel.metadata knows about them
from stationsync.models.catalog import Category, Company, Item  # noqa: F401
from stationsync.models.locations import (  # noqa: F401
    City,
    Moon,
    Outpost,
    Planet,
    PointOfInterest,
    SpaceStation,
    StarSystem,
)
from stationsync.models.sync import SyncConfig, SyncState  # noqa: F401
from stationsync.sync.policy import SyncPolicy


class FakeClock:
    """Settable naive-UTC clock for SyncPolicy."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine) -> Generator[Session, None, None]:
    """Provides a DB session connected to in-memory SQLite."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="clock")
def clock_fixture() -> FakeClock:
    return FakeClock(datetime(2025, 3, 1, 2, 0))


@pytest.fixture(name="policy")
def policy_fixture(engine, clock) -> SyncPolicy:
    return SyncPolicy(engine, clock=clock)


@pytest.fixture(name="no_sleep")
def no_sleep_fixture() -> AsyncMock:
    """Stands in for asyncio.sleep so backoff and pauses are instant."""
    return AsyncMock()
