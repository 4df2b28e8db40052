"""Pytest configuration and fixtures for LineSentry tests."""

import itertools
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from linesentry.config import get_settings
from linesentry.models import Base, ScoredRecommendation
from linesentry.services.ingestion import MarketKeyData, SnapshotStore
from linesentry.services.signals import SignalConfigRepository
from linesentry.services.signals.config import build_config, load_seed_data

# Fixed reference time: 20:00 UTC, outside the early-morning window
NOW = datetime(2026, 10, 19, 20, 0, tzinfo=timezone.utc)


@pytest.fixture
def defaults():
    """Parsed defaults.yaml."""
    return get_settings().load_defaults_config()


@pytest.fixture
def config(defaults):
    """DEFAULT SignalConfig as seeded from defaults.yaml."""
    return build_config(load_seed_data("DEFAULT", defaults), sport="DEFAULT")


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def fake_key():
    """Factory for an unsaved market key with just the fields detection reads."""

    def make(commence_in_hours: float | None = 5, at: datetime = NOW, **overrides):
        fields = {
            "id": 1,
            "sport": "NBA",
            "market_type": "spreads",
            "outcome_name": "Boston Celtics",
            "commence_time": (
                at + timedelta(hours=commence_in_hours)
                if commence_in_hours is not None
                else None
            ),
        }
        fields.update(overrides)
        return SimpleNamespace(**fields)

    return make


@pytest.fixture
def snap():
    """Factory for a snapshot-like value."""

    def make(price: int, captured_at: datetime, point: float | None = None):
        return SimpleNamespace(price=price, point=point, captured_at=captured_at)

    return make


@pytest.fixture
def key_data():
    """Factory for MarketKeyData with sensible defaults."""

    def make(**overrides) -> MarketKeyData:
        fields = {
            "event_id": "evt-1",
            "sport": "NBA",
            "bookmaker": "draftkings",
            "market_type": "spreads",
            "outcome_name": "Boston Celtics",
            "description": "New York Knicks @ Boston Celtics",
            "commence_time": NOW + timedelta(hours=2),
        }
        fields.update(overrides)
        return MarketKeyData(**fields)

    return make


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """File-backed SQLite engine with the full schema."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'linesentry.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session(db_engine) -> AsyncSession:
    factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session


@pytest_asyncio.fixture
async def market_key(session, key_data):
    """Persisted NBA spreads market key."""
    key = await SnapshotStore(session).get_or_create_market_key(key_data())
    await session.commit()
    return key


@pytest_asyncio.fixture
async def nba_config(session, defaults):
    """Seeded NBA SignalConfig (version 1)."""
    config = await SignalConfigRepository(session, defaults).get_active("NBA")
    await session.commit()
    return config


@pytest.fixture
def add_recommendation(session):
    """Factory inserting a ScoredRecommendation with neutral movement fields."""
    counter = itertools.count()

    async def make(
        market_key_id: int,
        signal_config_id: int,
        confidence: float = 0.65,
        classification: str = "PICK",
        signals: list[dict] | None = None,
        **fields,
    ):
        values = {
            "market_key_id": market_key_id,
            "scored_at": NOW + timedelta(seconds=next(counter)),
            "signal_config_id": signal_config_id,
            "sharp_score": 90.0,
            "trap_score": 20.0,
            "composite_score": 70.0,
            "classification": classification,
            "confidence": confidence,
            "signals_detected": signals or [],
            "opening_price": -110,
            "latest_price": -128,
            "opening_point": -3.5,
            "latest_point": -4.5,
            "price_delta": -18,
            "point_delta": -1.0,
            "magnitude": 18.0,
            "magnitude_bucket": "moderate",
            "time_bucket": "late",
            "books_reporting": 4,
        }
        values.update(fields)
        recommendation = ScoredRecommendation(**values)
        session.add(recommendation)
        await session.flush()
        return recommendation

    return make
