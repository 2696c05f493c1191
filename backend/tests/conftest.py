"""
Pytest configuration and shared fixtures for backend tests.

WHAT: Centralized test configuration with markers and shared builders
WHY: Every test gets an isolated SQLite file, a frozen clock and a pinned
     random draw
HOW: Define pytest markers, fixtures, and test helpers
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from negotiator.core.config import Settings
from negotiator.core.database import Database
from negotiator.core.listing_catalog import SqlListingCatalog
from negotiator.core.models import Listing
from negotiator.core.session_store import SessionStore
from negotiator.models.negotiation import Aggressiveness
from negotiator.services.counter_strategies import RandomBandStrategy
from negotiator.services.orchestrator import NegotiationOrchestrator
from negotiator.services.policy_engine import PolicyEngine
from tests.fixtures.doubles import FixedRandom, FrozenClock


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (isolated component tests)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (multiple components)"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take significant time to run"
    )


@pytest.fixture
def test_settings(tmp_path):
    """
    Settings isolated from the environment.

    WHAT: Test configuration pointing at tmp_path
    WHY: Tests must not read a developer's .env or write to ./data
    HOW: Explicit values, env file disabled
    """
    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite:///{tmp_path / 'test.db'}",
        LOG_FILE=str(tmp_path / "logs" / "app.log"),
        LOG_LEVEL="DEBUG",
        LLM_ENABLED=False,
        LLM_RETRY_DELAY=0,
        RANDOM_SEED=42,
        CORS_ORIGINS="http://localhost:3000",
    )


@pytest.fixture
def database(test_settings):
    """Fresh database with all tables created."""
    db = Database(test_settings.DATABASE_URL)
    db.init()
    yield db
    db.close()


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def fixed_random():
    """Band draw pinned at r = 0.70."""
    return FixedRandom(0.70)


@pytest.fixture
def add_listing(database):
    """
    Factory fixture inserting a listing row.

    Usage:
        add_listing("item-1", price=100, minimum_price=70)
    """
    def _add(
        listing_id: str = "item-1",
        price=Decimal("100"),
        minimum_price=Decimal("70"),
        title: str = "Vintage Lamp",
        status: str = "active",
        aggressiveness: Aggressiveness = Aggressiveness.BALANCED,
        negotiation_enabled: bool = True,
    ) -> str:
        with database.session() as session:
            session.add(
                Listing(
                    id=listing_id,
                    title=title,
                    status=status,
                    price=Decimal(str(price)),
                    minimum_price=Decimal(str(minimum_price)) if minimum_price is not None else None,
                    aggressiveness=aggressiveness,
                    negotiation_enabled=negotiation_enabled,
                )
            )
        return listing_id

    return _add


@pytest.fixture
def store(database):
    return SessionStore(database, session_ttl=timedelta(days=7))


@pytest.fixture
def orchestrator(database, store, clock, fixed_random):
    """Orchestrator over the test database with a frozen clock and r = 0.70."""
    engine = PolicyEngine(strategy=RandomBandStrategy(rng=fixed_random))
    return NegotiationOrchestrator(
        store=store,
        catalog=SqlListingCatalog(database),
        engine=engine,
        counter_validity=timedelta(minutes=10),
        clock=clock,
    )

