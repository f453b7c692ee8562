"""Shared pytest fixtures for store, allocator, service and API tests.

SQL fixtures run on a throwaway SQLite file through aiosqlite; Redis
fixtures run on fakeredis. Neither needs a running server.
"""

from collections.abc import AsyncGenerator

import fakeredis
import pytest
import pytest_asyncio
import redis.asyncio as redis
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from shortlinks.allocator import RedisSequenceAllocator, SqlSequenceAllocator
from shortlinks.config import Settings
from shortlinks.database import close_db, create_engine, create_session_factory, init_db
from shortlinks.dependencies import _service_manager
from shortlinks.enums import StoreBackend
from shortlinks.link_service import LinkService
from shortlinks.main import app
from shortlinks.redis_store import RedisLinkStore
from shortlinks.store import SqlLinkStore


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'shortlinks.db'}",
        REDIS_URL="redis://localhost:6379/15",
        BASE_URL="http://short.test",
        STORE_BACKEND=StoreBackend.SQL,
        ALLOCATOR_RETRY_DELAY_SECONDS=0,
    )


@pytest_asyncio.fixture
async def engine(settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    db_engine = create_engine(settings)
    await init_db(db_engine)
    yield db_engine
    await close_db(db_engine)


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def redis_client() -> AsyncGenerator[redis.Redis, None]:
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def sql_store(session_factory) -> SqlLinkStore:
    return SqlLinkStore(session_factory)


@pytest.fixture
def sql_allocator(session_factory) -> SqlSequenceAllocator:
    return SqlSequenceAllocator(session_factory, retry_delay=0)


@pytest.fixture
def redis_store(redis_client) -> RedisLinkStore:
    return RedisLinkStore(redis_client)


@pytest.fixture
def redis_allocator(redis_client) -> RedisSequenceAllocator:
    return RedisSequenceAllocator(redis_client, retry_delay=0)


@pytest.fixture
def link_service(sql_store, sql_allocator, settings) -> LinkService:
    return LinkService(sql_store, sql_allocator, settings=settings)


@pytest_asyncio.fixture(params=[StoreBackend.SQL, StoreBackend.REDIS], ids=["sql", "redis"])
async def client(request, settings, engine, redis_client) -> AsyncGenerator[AsyncClient, None]:
    backend_settings = settings.model_copy(update={"STORE_BACKEND": request.param})
    await _service_manager.initialize(settings=backend_settings, engine=engine, cache=redis_client)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await _service_manager.cleanup()
