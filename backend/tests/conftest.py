import os

# Settings are read at import time; keep the app off the filesystem and off the network
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RATE_LIMIT_STORAGE_URI", "memory://")

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from limits.storage import MemoryStorage
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from gatelink.api import links as links_api
from gatelink.core.access import AccessVerifier
from gatelink.core.rate_limit import TieredRateLimiter
from gatelink.core.telemetry import TelemetryRecorder
from gatelink.database import Base, get_db
from gatelink.dependencies import get_access_verifier, get_rate_limiter, get_safety_checker, get_telemetry
from gatelink.main import app
from gatelink.models import Link


HOLDER = "0x" + "1" * 40
TOKEN_CONTRACT = "0x" + "a" * 40
NFT_CONTRACT = "0x" + "b" * 40
BASE_CHAIN_ID = 8453


class FakeSafetyChecker:
    """Flags exactly the URLs in ``unsafe_urls``"""

    def __init__(self, unsafe_urls=()):
        self.unsafe_urls = set(unsafe_urls)
        self.checked = []

    async def is_unsafe(self, url: str) -> bool:
        self.checked.append(url)
        return url in self.unsafe_urls


class FakeChainClient:
    """In-memory stand-in for ChainClient"""

    def __init__(self, decimals: int = 18, balances=None, error: Exception = None):
        self.decimals_value = decimals
        self.balances = dict(balances or {})
        self.error = error
        self.calls = []

    async def decimals(self, contract: str) -> int:
        self.calls.append(("decimals", contract))
        if self.error:
            raise self.error
        return self.decimals_value

    async def balance_of(self, contract: str, holder: str) -> int:
        self.calls.append(("balanceOf", contract, holder))
        if self.error:
            raise self.error
        return self.balances.get((contract.lower(), holder.lower()), 0)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def make_link(db_session):
    """Insert a link directly, bypassing the creation pipeline"""
    counter = iter(range(1, 10_000))

    def _make_link(**overrides) -> Link:
        values = {
            "short_code": f"code{next(counter):03d}",
            "original_url": "https://example.com/target",
            "expires_at": datetime.now(timezone.utc) + timedelta(days=1),
            "is_active": True,
        }
        values.update(overrides)
        link = Link(**values)
        db_session.add(link)
        db_session.commit()
        db_session.refresh(link)
        return link

    return _make_link


@pytest.fixture
def token_policy() -> dict:
    return {"type": "token", "contractAddress": TOKEN_CONTRACT, "minBalance": "100", "chainId": BASE_CHAIN_ID}


@pytest.fixture
def nft_policy() -> dict:
    return {"type": "nft", "contractAddress": NFT_CONTRACT, "minBalance": "1", "chainId": BASE_CHAIN_ID}


@pytest.fixture
def chain_client() -> FakeChainClient:
    return FakeChainClient()


@pytest.fixture
def access_verifier(chain_client) -> AccessVerifier:
    return AccessVerifier({BASE_CHAIN_ID: chain_client})


@pytest.fixture
def rate_limiter() -> TieredRateLimiter:
    return TieredRateLimiter(MemoryStorage(), anon_daily=5, anon_minute=3, wallet_daily=50, wallet_minute=15)


@pytest.fixture
def safety_checker() -> FakeSafetyChecker:
    return FakeSafetyChecker(unsafe_urls={"https://malware.example/payload"})


@pytest.fixture
def client(session_factory, rate_limiter, safety_checker, access_verifier):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_rate_limiter] = lambda: rate_limiter
    app.dependency_overrides[get_safety_checker] = lambda: safety_checker
    app.dependency_overrides[get_access_verifier] = lambda: access_verifier
    app.dependency_overrides[get_telemetry] = lambda: TelemetryRecorder(session_factory)
    links_api.limiter.reset()

    yield TestClient(app, follow_redirects=False)

    app.dependency_overrides.clear()


