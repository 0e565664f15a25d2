import os
import time

# settings are read at import time, configure before importing the app
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SEED_DEMO_DATA"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["ENVIRONMENT"] = "development"
os.environ["INDEXER_DEMO_MODE"] = "false"
os.environ["REDIS_HOST"] = ""
os.environ["BLOCKFROST_API_KEY"] = ""

from datetime import datetime, timezone
from typing import Any, Dict, Generator, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from littlefish.core.cache import cache_manager
from littlefish.core.config import ADA_HANDLE_POLICY_ID
from littlefish.core.security import hash_password
from littlefish.db.base import Base
from littlefish.db.session import get_db
from littlefish.models.users import User
from littlefish.services.challenge_registry import ChallengeRegistry, get_challenge_registry
from littlefish.services.indexer import (
    AssetNotFound,
    Indexer,
    IndexerResolver,
    IndexerUnavailable,
    get_resolver,
)

TEST_PASSWORD = "password123"
CHALLENGE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db() -> Generator:
    """Override database dependency for testing"""
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


class FixedClock:
    """Clock that only moves when told to"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class StubIndexer(Indexer):
    """In-memory indexer, set ``fail`` to simulate an outage"""

    def __init__(self):
        self.amounts: Dict[str, List[Dict[str, Any]]] = {}
        self.assets: Dict[str, Dict[str, Any]] = {}
        self.holders: Dict[str, List[Dict[str, Any]]] = {}
        self.fail = False
        self.delay: Optional[float] = None

    def _check(self):
        if self.delay:
            time.sleep(self.delay)
        if self.fail:
            raise IndexerUnavailable("stub indexer down")

    def address_amounts(self, address: str) -> List[Dict[str, Any]]:
        self._check()
        return self.amounts.get(address, [])

    def asset(self, unit: str) -> Dict[str, Any]:
        self._check()
        if unit not in self.assets:
            raise AssetNotFound(unit)
        return self.assets[unit]

    def asset_addresses(self, unit: str) -> List[Dict[str, Any]]:
        self._check()
        if unit not in self.holders:
            raise AssetNotFound(unit)
        return self.holders[unit]


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clear_cache():
    cache_manager.clear_memory()
    yield
    cache_manager.clear_memory()


@pytest.fixture
def db() -> Generator[Session, None, None]:
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(CHALLENGE_TIME)


@pytest.fixture
def stub_indexer() -> StubIndexer:
    return StubIndexer()


@pytest.fixture
def client(clock: FixedClock, stub_indexer: StubIndexer) -> TestClient:
    """Create a test client for the FastAPI application"""
    registry = ChallengeRegistry(ttl_seconds=300, service_name="Littlefish Foundation", clock=clock)
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_challenge_registry] = lambda: registry
    app.dependency_overrides[get_resolver] = lambda: IndexerResolver(
        stub_indexer,
        timeout=0.5,
        handle_policy_id=ADA_HANDLE_POLICY_ID,
        cache=cache_manager,
    )
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def user(db: Session) -> User:
    """Seeded account with no linked wallet"""
    record = User(
        username="jsmith",
        password=hash_password(TEST_PASSWORD, rounds=4),
        name="John Smith",
        email="john@example.com",
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


@pytest.fixture
def logged_in_client(client: TestClient, user: User) -> TestClient:
    response = client.post("/api/login", json={"username": user.username, "password": TEST_PASSWORD})
    assert response.status_code == 200
    return client
