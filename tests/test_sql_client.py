"""SQL table store client test cases."""
import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from tablestore.exceptions.handler import (
    ConcurrencyConflictError,
    DuplicateKeyError,
    NotFoundError,
    StoreUnavailableError,
)
from tablestore.store.sql_client import SqlTableClient


@pytest.fixture
async def things(table_client: SqlTableClient) -> SqlTableClient:
    await table_client.create_table_if_not_exists("Things")
    return table_client


class TestWrites:
    """Test insert / replace / delete and their etag checks."""

    @pytest.mark.asyncio
    async def test_insert_then_get(self, things: SqlTableClient):
        written = await things.insert("Things", "p", "r", {"color": "red"})

        stored = await things.get("Things", "p", "r")
        assert stored is not None
        assert stored.data == {"color": "red"}
        assert stored.etag == written.etag

    @pytest.mark.asyncio
    async def test_get_missing_row_returns_none(self, things: SqlTableClient):
        assert await things.get("Things", "p", "nope") is None

    @pytest.mark.asyncio
    async def test_insert_duplicate_key(self, things: SqlTableClient):
        await things.insert("Things", "p", "r", {"color": "red"})

        with pytest.raises(DuplicateKeyError):
            await things.insert("Things", "p", "r", {"color": "blue"})

        stored = await things.get("Things", "p", "r")
        assert stored.data == {"color": "red"}

    @pytest.mark.asyncio
    async def test_same_key_in_other_table_is_independent(self, things: SqlTableClient):
        await things.create_table_if_not_exists("Others")
        await things.insert("Things", "p", "r", {"n": 1})
        await things.insert("Others", "p", "r", {"n": 2})

        assert (await things.get("Others", "p", "r")).data == {"n": 2}

    @pytest.mark.asyncio
    async def test_replace_changes_etag(self, things: SqlTableClient):
        first = await things.insert("Things", "p", "r", {"color": "red"})

        second = await things.replace("Things", "p", "r", {"color": "blue"}, etag=first.etag)

        assert second.etag != first.etag
        assert (await things.get("Things", "p", "r")).data == {"color": "blue"}

    @pytest.mark.asyncio
    async def test_replace_with_stale_etag_conflicts(self, things: SqlTableClient):
        first = await things.insert("Things", "p", "r", {"color": "red"})
        await things.replace("Things", "p", "r", {"color": "blue"}, etag=first.etag)

        with pytest.raises(ConcurrencyConflictError):
            await things.replace("Things", "p", "r", {"color": "green"}, etag=first.etag)

        assert (await things.get("Things", "p", "r")).data == {"color": "blue"}

    @pytest.mark.asyncio
    async def test_replace_without_etag_is_unconditional(self, things: SqlTableClient):
        first = await things.insert("Things", "p", "r", {"color": "red"})
        await things.replace("Things", "p", "r", {"color": "blue"}, etag=first.etag)

        await things.replace("Things", "p", "r", {"color": "green"})

        assert (await things.get("Things", "p", "r")).data == {"color": "green"}

    @pytest.mark.asyncio
    async def test_replace_missing_row(self, things: SqlTableClient):
        with pytest.raises(NotFoundError):
            await things.replace("Things", "p", "r", {"color": "blue"})

    @pytest.mark.asyncio
    async def test_delete_with_etag(self, things: SqlTableClient):
        first = await things.insert("Things", "p", "r", {"color": "red"})
        second = await things.replace("Things", "p", "r", {"color": "blue"})

        with pytest.raises(ConcurrencyConflictError):
            await things.delete("Things", "p", "r", etag=first.etag)

        await things.delete("Things", "p", "r", etag=second.etag)
        assert await things.get("Things", "p", "r") is None

    @pytest.mark.asyncio
    async def test_delete_missing_row(self, things: SqlTableClient):
        with pytest.raises(NotFoundError):
            await things.delete("Things", "p", "r")

    @pytest.mark.asyncio
    async def test_missing_table(self, table_client: SqlTableClient):
        with pytest.raises(NotFoundError):
            await table_client.insert("Ghosts", "p", "r", {})
        with pytest.raises(NotFoundError):
            await table_client.query("Ghosts")


class TestQuery:
    """Test partition scans and continuation tokens."""

    @pytest.mark.asyncio
    async def test_query_pages_follow_continuation(self, small_page_client: SqlTableClient):
        await small_page_client.create_table_if_not_exists("Things")
        for row_key in ["c", "a", "e", "b", "d"]:
            await small_page_client.insert("Things", "p1", row_key, {"k": row_key})
        await small_page_client.insert("Things", "p2", "a", {"k": "other"})

        first = await small_page_client.query("Things", partition_key="p1")
        assert [row.row_key for row in first.rows] == ["a", "b"]
        assert first.continuation is not None

        second = await small_page_client.query("Things", partition_key="p1", continuation=first.continuation)
        assert [row.row_key for row in second.rows] == ["c", "d"]

        third = await small_page_client.query("Things", partition_key="p1", continuation=second.continuation)
        assert [row.row_key for row in third.rows] == ["e"]
        assert third.continuation is None

    @pytest.mark.asyncio
    async def test_query_all_spans_partitions(self, small_page_client: SqlTableClient):
        await small_page_client.create_table_if_not_exists("Things")
        keys = [("p1", "a"), ("p1", "b"), ("p2", "a"), ("p2", "b"), ("p3", "a")]
        for partition_key, row_key in keys:
            await small_page_client.insert("Things", partition_key, row_key, {})

        rows = await small_page_client.query_all("Things")

        assert [(row.partition_key, row.row_key) for row in rows] == keys

    @pytest.mark.asyncio
    async def test_query_empty_partition(self, things: SqlTableClient):
        page = await things.query("Things", partition_key="empty")
        assert page.rows == []
        assert page.continuation is None


@pytest.mark.asyncio
async def test_unreachable_database_is_store_unavailable(tmp_path):
    """Test that connection failures surface as StoreUnavailableError."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/missing/dir/store.db")
    client = SqlTableClient(sessionmaker(engine, class_=AsyncSession, expire_on_commit=False))
    try:
        with pytest.raises(StoreUnavailableError):
            await client.create_table_if_not_exists("Things")
    finally:
        await engine.dispose()
