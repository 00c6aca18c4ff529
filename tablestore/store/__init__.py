"""
Table store clients: partition/row addressed rows with etag-based optimistic concurrency.
"""

from .base import ContinuationToken, QueryPage, StoredRow, TableClient
from .redis_client import RedisTableClient
from .sql_client import SqlTableClient, StoreTable, TableRow

__all__ = [
    "ContinuationToken",
    "QueryPage",
    "StoredRow",
    "TableClient",
    "RedisTableClient",
    "SqlTableClient",
    "StoreTable",
    "TableRow",
]
