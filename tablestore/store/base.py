"""
Table store client contract.

A table store addresses rows by (table, partition_key, row_key). Every
successful write assigns a fresh etag; writes may be made conditional on the
etag the caller last saw. There is no multi-row atomicity.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def new_etag() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class StoredRow:
    """A row as the store currently holds it."""
    partition_key: str
    row_key: str
    etag: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class ContinuationToken:
    """Resume point of a query: the first key of the next page."""
    next_partition_key: str
    next_row_key: str


@dataclass(frozen=True)
class QueryPage:
    rows: List[StoredRow]
    continuation: Optional[ContinuationToken] = None


class TableClient(ABC):
    """Asynchronous client of a partitioned, non-transactional table store."""

    @abstractmethod
    async def create_table_if_not_exists(self, table: str) -> bool:
        """Create the table; return False when it already existed."""
        pass

    @abstractmethod
    async def get(self, table: str, partition_key: str, row_key: str) -> Optional[StoredRow]:
        """Get one row, or None when absent."""
        pass

    @abstractmethod
    async def insert(self, table: str, partition_key: str, row_key: str, data: Dict[str, Any]) -> StoredRow:
        """Insert a new row. Raises DuplicateKeyError when the key exists."""
        pass

    @abstractmethod
    async def replace(
        self,
        table: str,
        partition_key: str,
        row_key: str,
        data: Dict[str, Any],
        etag: Optional[str] = None,
    ) -> StoredRow:
        """
        Replace an existing row.

        Args:
            etag: Expected current etag; None replaces unconditionally.

        Raises:
            NotFoundError: row absent
            ConcurrencyConflictError: etag mismatch
        """
        pass

    @abstractmethod
    async def delete(self, table: str, partition_key: str, row_key: str, etag: Optional[str] = None) -> None:
        """Physically delete a row (same etag semantics as replace)."""
        pass

    @abstractmethod
    async def query(
        self,
        table: str,
        partition_key: Optional[str] = None,
        continuation: Optional[ContinuationToken] = None,
    ) -> QueryPage:
        """Fetch one page of rows ordered by (partition_key, row_key)."""
        pass

    async def query_all(self, table: str, partition_key: Optional[str] = None) -> List[StoredRow]:
        """Follow continuation tokens until the store reports no more pages."""
        rows: List[StoredRow] = []
        continuation = None
        while True:
            page = await self.query(table, partition_key=partition_key, continuation=continuation)
            rows.extend(page.rows)
            continuation = page.continuation
            if continuation is None:
                return rows

    async def close(self) -> None:
        """Release client resources (no-op by default)."""
        return None
