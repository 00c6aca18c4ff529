from sqlmodel import SQLModel
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession
from tablestore.store.sql_client import SqlTableClient, StoreTable, TableRow
from .base import BaseDatabaseDriver

class SQLDriver(BaseDatabaseDriver):
    def __init__(self, url: str):
        self.engine = create_async_engine(url, echo=False, future=True)
        self.session_factory = sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )
        self._table_client = None

    async def connect(self):
        """Connect to database and create the store schema if missing."""
        async with self.engine.begin() as conn:
            await conn.run_sync(
                SQLModel.metadata.create_all,
                tables=[StoreTable.__table__, TableRow.__table__],
            )

    async def disconnect(self):
        """Disconnect from database."""
        await self.engine.dispose()

    def get_table_client(self) -> SqlTableClient:
        if self._table_client is None:
            self._table_client = SqlTableClient(self.session_factory)
        return self._table_client
