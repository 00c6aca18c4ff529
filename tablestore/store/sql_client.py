"""SQL implementation of the table store (SQLModel over any SQLAlchemy async engine)."""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, Optional, Set
from sqlalchemy import Column, JSON, and_, delete, or_, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.orm import sessionmaker
from sqlmodel import Field, SQLModel, col, select
from sqlmodel.ext.asyncio.session import AsyncSession
from tablestore.config import settings
from tablestore.exceptions.handler import (
    ConcurrencyConflictError,
    DuplicateKeyError,
    NotFoundError,
    StoreUnavailableError,
)
from tablestore.logging.logger import get_logger
from .base import ContinuationToken, QueryPage, StoredRow, TableClient, new_etag, utcnow

logger = get_logger("sql_table_client")


class StoreTable(SQLModel, table=True):
    """Registry of logical tables."""
    __tablename__ = "store_tables"

    name: str = Field(primary_key=True, max_length=63)
    created_at: datetime = Field(default_factory=utcnow)


class TableRow(SQLModel, table=True):
    """One row of a logical table; domain fields live in the JSON document."""
    __tablename__ = "table_rows"

    table_name: str = Field(primary_key=True, max_length=63)
    partition_key: str = Field(primary_key=True, max_length=255)
    row_key: str = Field(primary_key=True, max_length=255)
    etag: str = Field(max_length=64)
    data: Dict = Field(default_factory=dict, sa_column=Column(JSON))
    timestamp: datetime = Field(default_factory=utcnow)


def _to_stored(row: TableRow) -> StoredRow:
    return StoredRow(
        partition_key=row.partition_key,
        row_key=row.row_key,
        etag=row.etag,
        data=dict(row.data or {}),
        timestamp=row.timestamp,
    )


class SqlTableClient(TableClient):
    """Table store client; every call runs in its own short session and commits immediately."""

    def __init__(self, session_factory: sessionmaker, page_size: Optional[int] = None):
        self.session_factory = session_factory
        self.page_size = page_size or settings.STORE_PAGE_SIZE
        self._known_tables: Set[str] = set()

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self.session_factory() as session:
                yield session
        except (OperationalError, InterfaceError) as e:
            logger.error(f"Table store unreachable: {str(e)}")
            raise StoreUnavailableError(f"Table store unavailable: {e}") from e

    async def _require_table(self, session: AsyncSession, table: str) -> None:
        if table in self._known_tables:
            return
        result = await session.exec(select(StoreTable).where(StoreTable.name == table))
        if result.first() is None:
            raise NotFoundError(f"Table {table} does not exist")
        self._known_tables.add(table)

    async def _fetch(self, session: AsyncSession, table: str, partition_key: str, row_key: str) -> Optional[TableRow]:
        statement = select(TableRow).where(
            TableRow.table_name == table,
            TableRow.partition_key == partition_key,
            TableRow.row_key == row_key,
        )
        result = await session.exec(statement)
        return result.first()

    async def create_table_if_not_exists(self, table: str) -> bool:
        async with self._session() as session:
            result = await session.exec(select(StoreTable).where(StoreTable.name == table))
            if result.first() is not None:
                self._known_tables.add(table)
                return False
            session.add(StoreTable(name=table))
            try:
                await session.commit()
            except IntegrityError:
                # Created concurrently by another client
                await session.rollback()
                self._known_tables.add(table)
                return False
        self._known_tables.add(table)
        logger.info(f"Table {table} created")
        return True

    async def get(self, table: str, partition_key: str, row_key: str) -> Optional[StoredRow]:
        async with self._session() as session:
            await self._require_table(session, table)
            row = await self._fetch(session, table, partition_key, row_key)
            return _to_stored(row) if row is not None else None

    async def insert(self, table: str, partition_key: str, row_key: str, data: Dict[str, Any]) -> StoredRow:
        stored = StoredRow(
            partition_key=partition_key,
            row_key=row_key,
            etag=new_etag(),
            data=dict(data),
            timestamp=utcnow(),
        )
        async with self._session() as session:
            await self._require_table(session, table)
            session.add(TableRow(
                table_name=table,
                partition_key=stored.partition_key,
                row_key=stored.row_key,
                etag=stored.etag,
                data=stored.data,
                timestamp=stored.timestamp,
            ))
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise DuplicateKeyError(
                    f"Row ({partition_key}, {row_key}) already exists in {table}"
                ) from e
        return stored

    async def replace(
        self,
        table: str,
        partition_key: str,
        row_key: str,
        data: Dict[str, Any],
        etag: Optional[str] = None,
    ) -> StoredRow:
        stored = StoredRow(
            partition_key=partition_key,
            row_key=row_key,
            etag=new_etag(),
            data=dict(data),
            timestamp=utcnow(),
        )
        statement = update(TableRow).where(
            TableRow.table_name == table,
            TableRow.partition_key == partition_key,
            TableRow.row_key == row_key,
        )
        if etag is not None:
            statement = statement.where(TableRow.etag == etag)
        statement = statement.values(data=stored.data, etag=stored.etag, timestamp=stored.timestamp)

        async with self._session() as session:
            await self._require_table(session, table)
            result = await session.execute(statement)
            if result.rowcount == 0:
                await session.rollback()
                await self._raise_write_rejected(session, table, partition_key, row_key)
            await session.commit()
        return stored

    async def delete(self, table: str, partition_key: str, row_key: str, etag: Optional[str] = None) -> None:
        statement = delete(TableRow).where(
            TableRow.table_name == table,
            TableRow.partition_key == partition_key,
            TableRow.row_key == row_key,
        )
        if etag is not None:
            statement = statement.where(TableRow.etag == etag)

        async with self._session() as session:
            await self._require_table(session, table)
            result = await session.execute(statement)
            if result.rowcount == 0:
                await session.rollback()
                await self._raise_write_rejected(session, table, partition_key, row_key)
            await session.commit()

    async def _raise_write_rejected(self, session: AsyncSession, table: str, partition_key: str, row_key: str) -> None:
        """Tell a missing row from a stale etag after a conditional write matched nothing."""
        if await self._fetch(session, table, partition_key, row_key) is None:
            raise NotFoundError(f"Row ({partition_key}, {row_key}) not found in {table}")
        raise ConcurrencyConflictError(
            f"Row ({partition_key}, {row_key}) in {table} was modified by another writer"
        )

    async def query(
        self,
        table: str,
        partition_key: Optional[str] = None,
        continuation: Optional[ContinuationToken] = None,
    ) -> QueryPage:
        statement = select(TableRow).where(TableRow.table_name == table)
        if partition_key is not None:
            statement = statement.where(TableRow.partition_key == partition_key)
        if continuation is not None:
            statement = statement.where(or_(
                TableRow.partition_key > continuation.next_partition_key,
                and_(
                    TableRow.partition_key == continuation.next_partition_key,
                    TableRow.row_key >= continuation.next_row_key,
                ),
            ))
        statement = statement.order_by(col(TableRow.partition_key), col(TableRow.row_key)).limit(self.page_size + 1)

        async with self._session() as session:
            await self._require_table(session, table)
            result = await session.exec(statement)
            rows = list(result.all())

        next_token = None
        if len(rows) > self.page_size:
            extra = rows[self.page_size]
            next_token = ContinuationToken(extra.partition_key, extra.row_key)
            rows = rows[:self.page_size]
        return QueryPage(rows=[_to_stored(row) for row in rows], continuation=next_token)
