"""
Shared test fixtures
"""
import pytest
from datetime import datetime, timedelta

from fastapi.testclient import TestClient

from callshield.core.config import ConfigManager, Settings
from callshield.domain.services.risk_cache import TieredRiskCache
from callshield.infrastructure.storage.memory_store import InMemoryRiskStore


class FakeClock:
    """Manually advanced clock for expiry / retention tests"""

    def __init__(self, start: datetime = datetime(2026, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryRiskStore()


@pytest.fixture
def cache(store, clock):
    return TieredRiskCache(store, clock=clock)


@pytest.fixture
def client():
    """App on an in-memory database with the repo's config files"""
    from callshield.main import create_app

    settings = Settings(environment="testing", database_url="sqlite://")
    app = create_app(settings, ConfigManager(env="testing"))
    with TestClient(app) as test_client:
        yield test_client
