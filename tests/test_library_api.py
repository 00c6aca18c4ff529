"""Library API test cases."""
import pytest
from httpx import AsyncClient

from tablestore.store.sql_client import SqlTableClient

BOOKS = "/api/v1/books"


async def create_book(client: AsyncClient, publisher: str = "ABPress", author: str = "Jo Bloke") -> dict:
    response = await client.post(
        BOOKS,
        json={"title": ".NET Core Journey", "author": author, "publisher": publisher},
        headers={"X-Actor": "librarian"},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["code"] == 200
    return data["data"]


class TestBookCrud:
    """Test book create / read / update / delete."""

    @pytest.mark.asyncio
    async def test_add_book(self, client: AsyncClient):
        book = await create_book(client)

        assert book["publisher"] == "ABPress"
        assert book["partition_key"] == "ABPress"
        assert book["row_key"] == book["id"]
        assert book["etag"]
        assert book["created_by"] == "librarian"
        assert book["is_deleted"] is False

    @pytest.mark.asyncio
    async def test_get_missing_book(self, client: AsyncClient):
        response = await client.get(f"{BOOKS}/ABPress/unknown")

        assert response.status_code == 200
        assert response.json()["code"] == 404

    @pytest.mark.asyncio
    async def test_update_author(self, client: AsyncClient):
        book = await create_book(client)

        response = await client.put(
            f"{BOOKS}/ABPress/{book['id']}",
            json={"author": "Josephine Bloke", "etag": book["etag"]},
        )

        data = response.json()
        assert data["code"] == 200
        assert data["data"]["author"] == "Josephine Bloke"
        assert data["data"]["etag"] != book["etag"]

    @pytest.mark.asyncio
    async def test_update_with_stale_etag_conflicts(self, client: AsyncClient):
        book = await create_book(client)
        await client.put(f"{BOOKS}/ABPress/{book['id']}", json={"author": "Second"})

        response = await client.put(
            f"{BOOKS}/ABPress/{book['id']}",
            json={"author": "Third", "etag": book["etag"]},
        )

        assert response.json()["code"] == 409
        current = (await client.get(f"{BOOKS}/ABPress/{book['id']}")).json()["data"]
        assert current["author"] == "Second"

    @pytest.mark.asyncio
    async def test_remove_book_is_soft(self, client: AsyncClient):
        book = await create_book(client)

        response = await client.delete(f"{BOOKS}/ABPress/{book['id']}")
        assert response.json()["data"]["is_deleted"] is True

        listed = (await client.get(f"{BOOKS}/ABPress")).json()["data"]
        assert listed == []

        with_deleted = (await client.get(f"{BOOKS}/ABPress", params={"include_deleted": True})).json()["data"]
        assert [b["id"] for b in with_deleted] == [book["id"]]

    @pytest.mark.asyncio
    async def test_list_by_publisher(self, client: AsyncClient):
        first = await create_book(client, publisher="ABPress")
        second = await create_book(client, publisher="ABPress")
        await create_book(client, publisher="Other")

        listed = (await client.get(f"{BOOKS}/ABPress")).json()["data"]

        assert sorted(b["id"] for b in listed) == sorted([first["id"], second["id"]])


class TestBookHistory:
    """Test the audit trail endpoint."""

    @pytest.mark.asyncio
    async def test_history_grows_with_each_change(self, client: AsyncClient):
        book = await create_book(client)
        book_id = book["id"]
        await client.put(f"{BOOKS}/ABPress/{book_id}", json={"author": "Josephine Bloke"})
        await client.delete(f"{BOOKS}/ABPress/{book_id}")

        history = (await client.get(f"{BOOKS}/ABPress/{book_id}/history")).json()["data"]

        assert [entry["author"] for entry in history] == ["Jo Bloke", "Josephine Bloke", "Josephine Bloke"]
        assert [entry["is_deleted"] for entry in history] == [False, False, True]
        assert {entry["partition_key"] for entry in history} == {f"ABPress-{book_id}"}


class TestRepublish:
    """Test the two-partition move and its rollback."""

    @pytest.mark.asyncio
    async def test_republish_moves_book(self, client: AsyncClient):
        book = await create_book(client)

        response = await client.post(f"{BOOKS}/ABPress/{book['id']}/republish", json={"new_publisher": "NewPress"})

        assert response.json()["data"]["publisher"] == "NewPress"
        old = (await client.get(f"{BOOKS}/ABPress/{book['id']}")).json()["data"]
        assert old["is_deleted"] is True
        moved = (await client.get(f"{BOOKS}/NewPress/{book['id']}")).json()["data"]
        assert moved["author"] == "Jo Bloke"

    @pytest.mark.asyncio
    async def test_failed_republish_leaves_no_copy(
        self,
        client: AsyncClient,
        library_client: SqlTableClient,
        monkeypatch,
    ):
        from tablestore.repository.base import TableRepository
        from tablestore.exceptions.handler import StoreUnavailableError

        book = await create_book(client)

        async def failing_delete(self, entity):
            raise StoreUnavailableError("store went away")

        monkeypatch.setattr(TableRepository, "delete", failing_delete)

        response = await client.post(f"{BOOKS}/ABPress/{book['id']}/republish", json={"new_publisher": "NewPress"})

        assert response.json()["code"] == 503
        assert await library_client.get("BookEntity", "NewPress", book["id"]) is None
        history_rows = await library_client.query_all("BookEntityAudit", partition_key=f"NewPress-{book['id']}")
        assert history_rows == []
