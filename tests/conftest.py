"""
Shared fixtures for the validation engine tests.
"""

from datetime import datetime, timezone

import pytest

from core.clock import MockClock
from core.settings import VeritasSettings
from database.engine import create_all_tables, create_database_engine, create_session_factory
from source_reliability import SourceReliabilityTracker


@pytest.fixture
def engine():
    """In-memory SQLite engine with the veritas tables created."""
    engine = create_database_engine("sqlite://")
    create_all_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def clock():
    return MockClock(datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def tracker(clock):
    return SourceReliabilityTracker(clock=clock)


@pytest.fixture
def settings():
    return VeritasSettings(
        enabled=True,
        email_enabled=True,
        recipients=["ops@example.com"],
        persistence_timeout_seconds=1.0,
        email_timeout_seconds=1.0,
    )
