# tests/conftest.py
import os

# repricer.database builds its engine at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from typing import Any, Callable, Dict, List, Tuple, Union
from urllib.parse import parse_qsl

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from repricer import models  # noqa: F401
from repricer.core.config import Settings, get_settings
from repricer.database import Base
from repricer.dependencies import get_db
from repricer.main import app
from repricer.schemas.erp import TokenPair
from repricer.services.erp.client import ErpClient
from repricer.services.erp.token_store import TokenStore

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
ERP_BASE_URL = "https://erp.test"


@pytest.fixture
def settings():
    """Provide test settings with every pacing delay switched off"""
    return Settings(
        _env_file=None,
        DATABASE_URL=TEST_DATABASE_URL,
        CRON_SECRET="test-cron-secret",
        ERP_API_BASE_URL=ERP_BASE_URL,
        ERP_CLIENT_ID="test-client-id",
        ERP_CLIENT_SECRET="test-client-secret",
        ERP_INITIAL_ACCESS_TOKEN="initial-access",
        ERP_INITIAL_REFRESH_TOKEN="initial-refresh",
        BASE_URL="https://repricer.test",
        PRODUCT_UPDATE_DELAY_SECONDS=0,
        SYNC_BATCH_DELAY_SECONDS=0,
        SYNC_RETRY_BACKOFF_SECONDS=0,
        PRICE_FEED_URL="https://feed.test/prices",
    )


@pytest.fixture(scope="function")
async def test_engine():
    """In-memory SQLite engine with all tables created (function-scoped)."""
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def db_session(test_engine):
    """Provide a database session for tests"""
    async_session_local = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with async_session_local() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def stored_tokens(db_session):
    """Seed the token row with a known pair"""
    tokens = TokenPair(access_token="access-1", refresh_token="refresh-1")
    await TokenStore(db_session).save(tokens)
    return tokens


class FakeErp:
    """
    Scripted stand-in for the ERP API, served through httpx.MockTransport.

    Responses are queued per path. The last queued response for a path is
    reused once the queue is down to one item. A queued item can be a JSON
    dict, an httpx.Response, an exception instance (raised as a transport
    error) or a callable taking (request, form).
    """

    def __init__(self):
        self.requests: List[Tuple[str, Dict[str, str]]] = []
        self.routes: Dict[str, List[Union[dict, httpx.Response, Exception, Callable]]] = {}

    def on(self, path: str, *responses: Any) -> "FakeErp":
        self.routes.setdefault(path, []).extend(responses)
        return self

    def calls(self, path: str) -> List[Dict[str, str]]:
        return [form for request_path, form in self.requests if request_path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        form = dict(parse_qsl(request.content.decode(), keep_blank_values=True))
        path = request.url.path
        self.requests.append((path, form))

        queue = self.routes.get(path)
        if not queue:
            return httpx.Response(404, json={"result": "error", "code": "404", "message": f"No route {path}"})
        item = queue.pop(0) if len(queue) > 1 else queue[0]

        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(request, form)
        if isinstance(item, httpx.Response):
            return item
        return httpx.Response(200, json=item)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def fake_erp():
    return FakeErp()


@pytest.fixture
def erp_client(db_session, settings, fake_erp):
    """ErpClient wired to the fake ERP"""
    return ErpClient(db_session, settings=settings, transport=fake_erp.transport)


@pytest.fixture
async def test_client(db_session, settings):
    """Async HTTP client against the app, sharing the test database session"""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(settings):
    return {"Authorization": f"Bearer {settings.CRON_SECRET}"}
