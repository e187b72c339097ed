"""
Test fixtures - in-memory SQLite database, a deployed registry and an HTTP client
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app import app, get_db
from database import Base
from registry import Registry

# local development accounts
OWNER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
FARMER = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
VERIFIER = "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC"
OTHER = "0x90F79bf6EB2c4f870365E785982E1f101E93b906"


class FakeClock:
    def __init__(self, now: int = 1_700_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int = 1) -> None:
        self.now += seconds


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def registry(db_session, clock):
    return Registry.deploy(db_session, OWNER, clock=clock)


@pytest.fixture()
def product_id(registry):
    return registry.register_product(FARMER, "Test Product", "Category", "Location", "")


@pytest.fixture()
def client(session_factory, registry):
    """TestClient whose requests run against the deployed in-memory registry"""

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
