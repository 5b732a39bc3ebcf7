"""
Test Configuration

Pytest fixtures and configuration for Plutus tests.
"""

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from plutus.config import Settings, get_settings
from plutus.services.engine import PlutusEngine
from plutus.services.persistence import InMemoryPersistence
from plutus.services.targeting import StaticIdentityProvider, UserProfile

# Tuesday
START_TIME = datetime(2024, 6, 11, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: datetime = START_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now

    def set(self, now: datetime) -> datetime:
        self.now = now
        return now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def persistence() -> InMemoryPersistence:
    return InMemoryPersistence()


@pytest.fixture
def identity() -> StaticIdentityProvider:
    """Identity provider with a few known users."""
    return StaticIdentityProvider([
        UserProfile(id="vip-user", segments=["vip"], country="US", purchase_count=12),
        UserProfile(id="new-user", segments=["new"], country="DE", purchase_count=0),
        UserProfile(id="regular-user", segments=["regular"], country="US", purchase_count=3),
    ])


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        persistence_backend="memory",
        persistence_timeout_seconds=1.0,
        recalculation_interval_seconds=60.0,
        admin_api_key="",
    )


@pytest.fixture
def engine(persistence, identity, clock, test_settings) -> PlutusEngine:
    return PlutusEngine(persistence, identity=identity, clock=clock, settings=test_settings)


@pytest_asyncio.fixture
async def client(engine, test_settings) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to an app serving the test engine."""
    from plutus.main import create_app

    app = create_app()
    app.state.engine = engine
    app.dependency_overrides[get_settings] = lambda: test_settings

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    await engine.promotions.cancel_timers()
    app.dependency_overrides.clear()


def experiment_definition(**overrides):
    """Two-variant 50/50 package design experiment."""
    definition = {
        "name": "Package Color Test",
        "variants": [
            {
                "id": "control",
                "name": "Blue",
                "traffic_split": 50,
                "is_control": True,
                "config": {"package_design": {"color_scheme": "blue"}},
            },
            {
                "id": "variant_b",
                "name": "Gold",
                "traffic_split": 50,
                "config": {"package_design": {"color_scheme": "gold"}},
            },
        ],
        "metrics": {"minimum_sample_size": 100},
        "traffic_allocation": 100,
    }
    definition.update(overrides)
    return definition


def promotion_definition(clock: FakeClock, **overrides):
    """Active promotion running one day either side of the clock."""
    definition = {
        "name": "Summer Sale",
        "status": "active",
        "priority": 1,
        "start_date": (clock() - timedelta(days=1)).isoformat(),
        "end_date": (clock() + timedelta(days=1)).isoformat(),
        "discount": {"kind": "percentage_off", "percentage": 20},
    }
    definition.update(overrides)
    return definition


@pytest.fixture
def make_experiment():
    return experiment_definition


@pytest.fixture
def make_promotion(clock):
    return lambda **overrides: promotion_definition(clock, **overrides)
