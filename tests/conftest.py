"""
Pytest fixtures for the ledger test suite.

Provides:
- In-memory repositories over a shared store (one store per test)
- A LedgerService with a deterministic, strictly increasing clock
- An httpx client bound to the FastAPI app with auth and persistence overridden
"""

import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import httpx
import pytest

from services.ledger_service import LedgerService
from services.locks import KeyedLock
from services.repository import InMemoryInventoryRepository, InMemoryStore

TEST_USER_ID = uuid.UUID("00000000-0000-0000-0000-00000000a11c")


class TickingClock:
    """Returns a new instant, one millisecond later, on every call."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        self.now = self.now + timedelta(milliseconds=1)
        return self.now


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def repository(store):
    return InMemoryInventoryRepository(store)


@pytest.fixture
def locks():
    return KeyedLock()


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def ledger(repository, locks, clock):
    return LedgerService(repository, locks=locks, clock=clock)


@pytest.fixture
def fresh_repository(store):
    """A second unit of work over the same store; sees committed state only."""
    return InMemoryInventoryRepository(store)


@pytest.fixture
def test_user():
    return SimpleNamespace(id=TEST_USER_ID, email="operator@example.com", is_active=True, is_superuser=True)


@pytest.fixture
async def client(store, test_user):
    from core.auth import current_active_user
    from main import app
    from routers.ledger import get_inventory_repository

    app.dependency_overrides[get_inventory_repository] = lambda: InMemoryInventoryRepository(store)
    app.dependency_overrides[current_active_user] = lambda: test_user

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
