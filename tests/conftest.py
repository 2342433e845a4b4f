"""
Pytest fixtures shared across all test modules.

Provides:
- A KeyValueStore over a fresh SQLite database per test
- A deterministic clock so timestamps and event order are predictable
- Session, event, ingestion and analytics services wired to that store
"""

import os
from datetime import datetime, timedelta, timezone

# Must be set before session_tracking.core.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("REDIS_URL", "redis://localhost:1/0")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from session_tracking.core.store import KeyValueStore
from session_tracking.services.analytics import AnalyticsService
from session_tracking.services.events import EventStore
from session_tracking.services.ingestion import IngestionService
from session_tracking.services.sessions import SessionStore

START = datetime(2024, 1, 1, 9, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Returns START, START + step, START + 2 * step, ..."""

    def __init__(self, start: datetime = START, step: timedelta = timedelta(seconds=1)):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now += self.step
        return current


@pytest.fixture()
def clock():
    return FakeClock()


@pytest_asyncio.fixture()
async def store(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'sessions.db'}")
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    kv_store = KeyValueStore(session_factory)
    await kv_store.create_tables()
    yield kv_store

    await engine.dispose()


@pytest.fixture()
def sessions(store, clock):
    return SessionStore(store, clock=clock)


@pytest.fixture()
def events(store, sessions, clock):
    return EventStore(store, sessions, clock=clock)


@pytest.fixture()
def ingestion(sessions, events):
    return IngestionService(sessions, events, max_batch_size=25, concurrency=5)


@pytest.fixture()
def analytics(sessions, events):
    return AnalyticsService(sessions, events)
