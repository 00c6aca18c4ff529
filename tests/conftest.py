"""Test config and shared fixtures."""
import pytest
from typing import AsyncGenerator
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from tablestore.store.sql_client import SqlTableClient, StoreTable, TableRow


# In-memory SQLite for tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="function")
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create a fresh in-memory store schema per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(
            SQLModel.metadata.create_all,
            tables=[StoreTable.__table__, TableRow.__table__],
        )

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def table_client(session_factory: sessionmaker) -> SqlTableClient:
    """Table client over the test database."""
    return SqlTableClient(session_factory)


@pytest.fixture
def small_page_client(session_factory: sessionmaker) -> SqlTableClient:
    """Table client with tiny pages, to exercise continuation tokens."""
    return SqlTableClient(session_factory, page_size=2)


@pytest.fixture
async def library_client(table_client: SqlTableClient) -> SqlTableClient:
    """Table client with the library tables provisioned."""
    from apps.models import provision_tables

    await provision_tables(table_client)
    return table_client


@pytest.fixture
async def client(library_client: SqlTableClient) -> AsyncGenerator[AsyncClient, None]:
    """Create test client."""
    from main import app
    from apps.library.api.router import get_table_client

    app.dependency_overrides[get_table_client] = lambda: library_client

    # ASGITransport does not run the lifespan; tables come from library_client
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
