"""
Test configuration and fixtures
"""

import os

# settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./socialize-test.db")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("PUBLISH_RETRY_BACKOFF_SECONDS", "0")
os.environ.setdefault("PUBLISH_MODE", "inline")

from typing import AsyncGenerator, Dict

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from socialize.db.base import Base, load_all_models
from socialize.db.seed import seed
from socialize.db.sessions import get_db
from socialize.main import app
from socialize.services.publishers.registry import register_publisher, unregister_publisher
from socialize.services.storage_service import LocalStorage, get_storage

from helpers import PASSWORD, FakePublisher, bearer, login

load_all_models()


@pytest_asyncio.fixture
async def engine(tmp_path):
    """File backed SQLite so concurrent sessions use separate connections"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def storage(tmp_path) -> LocalStorage:
    return LocalStorage(tmp_path / "storage", "http://test")


@pytest.fixture
def fake_publisher():
    publisher = FakePublisher()
    register_publisher("fake", publisher)
    yield publisher
    unregister_publisher("fake")


@pytest_asyncio.fixture
async def seeded(session_factory):
    async with session_factory() as session:
        await seed(session, password=PASSWORD)


@pytest_asyncio.fixture
async def client(session_factory, storage, seeded) -> AsyncGenerator[AsyncClient, None]:
    """Test client with a fresh database and storage directory"""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def admin_headers(client) -> Dict[str, str]:
    data = await login(client, "admin@example.com")
    return bearer(data["token"]["access_token"])


@pytest_asyncio.fixture
async def user_headers(client) -> Dict[str, str]:
    data = await login(client, "user@example.com")
    return bearer(data["token"]["access_token"])


@pytest_asyncio.fixture
async def default_tenant_id(client, admin_headers) -> str:
    response = await client.get("/api/v1/tenants", headers=admin_headers)
    return response.json()["data"][0]["id"]
