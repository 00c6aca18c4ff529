"""
Redis implementation of the table store.

Layout per logical table (all keys carry the configured prefix):
    {prefix}tables               set of table names
    {prefix}t:{table}            hash, field "{partition}\\x00{row}" -> JSON row envelope
    {prefix}t:{table}:index      sorted set (score 0) of the same fields, for ordered scans

Keys never contain control characters, so "\\x00" is a safe separator and the
lexicographic order of the index is (partition_key, row_key) order.
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional
import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError, TimeoutError as RedisTimeoutError, WatchError
from tablestore.config import settings
from tablestore.exceptions.handler import (
    ConcurrencyConflictError,
    DuplicateKeyError,
    NotFoundError,
    StoreUnavailableError,
)
from tablestore.logging.logger import get_logger
from .base import ContinuationToken, QueryPage, StoredRow, TableClient, new_etag, utcnow

logger = get_logger("redis_table_client")

SEPARATOR = "\x00"
# Optimistic write retries when another row of the same table changes under WATCH
MAX_WRITE_ATTEMPTS = 5


def _member(partition_key: str, row_key: str) -> str:
    return f"{partition_key}{SEPARATOR}{row_key}"


def _encode(row: StoredRow) -> str:
    return json.dumps({
        "etag": row.etag,
        "data": row.data,
        "timestamp": row.timestamp.isoformat() if row.timestamp else None,
    })


def _decode(partition_key: str, row_key: str, raw: str) -> StoredRow:
    payload = json.loads(raw)
    timestamp = payload.get("timestamp")
    return StoredRow(
        partition_key=partition_key,
        row_key=row_key,
        etag=payload["etag"],
        data=payload.get("data") or {},
        timestamp=datetime.fromisoformat(timestamp) if timestamp else None,
    )


class RedisTableClient(TableClient):
    """Table store client over a redis.asyncio client created with decode_responses=True."""

    def __init__(self, client: redis.Redis, key_prefix: Optional[str] = None, page_size: Optional[int] = None):
        self.client = client
        self.key_prefix = key_prefix if key_prefix is not None else settings.REDIS_KEY_PREFIX
        self.page_size = page_size or settings.STORE_PAGE_SIZE

    def _tables_key(self) -> str:
        return f"{self.key_prefix}tables"

    def _rows_key(self, table: str) -> str:
        return f"{self.key_prefix}t:{table}"

    def _index_key(self, table: str) -> str:
        return f"{self.key_prefix}t:{table}:index"

    async def _require_table(self, table: str) -> None:
        if not await self.client.sismember(self._tables_key(), table):
            raise NotFoundError(f"Table {table} does not exist")

    async def create_table_if_not_exists(self, table: str) -> bool:
        try:
            created = await self.client.sadd(self._tables_key(), table)
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise StoreUnavailableError(f"Table store unavailable: {e}") from e
        if created:
            logger.info(f"Table {table} created")
        return bool(created)

    async def get(self, table: str, partition_key: str, row_key: str) -> Optional[StoredRow]:
        try:
            await self._require_table(table)
            raw = await self.client.hget(self._rows_key(table), _member(partition_key, row_key))
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise StoreUnavailableError(f"Table store unavailable: {e}") from e
        return _decode(partition_key, row_key, raw) if raw is not None else None

    async def _read_for_write(self, pipe, rows_key: str, member: str) -> Optional[str]:
        """Watch the table hash and read the target row; the write only lands if nothing changed since."""
        await pipe.watch(rows_key)
        return await pipe.hget(rows_key, member)

    async def _conditional_write(self, table: str, partition_key: str, row_key: str, check, stage) -> None:
        """
        Optimistic WATCH/MULTI write of one row.

        ``check(current)`` validates the row as read under WATCH and raises the
        store error that applies. ``stage(pipe)`` queues the write. The watch
        covers the whole table hash, so an EXEC aborted by a write to another
        row is retried; the retry re-runs ``check`` and only a change of the
        target row itself ends in an error.
        """
        rows_key = self._rows_key(table)
        member = _member(partition_key, row_key)
        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            async with self.client.pipeline(transaction=True) as pipe:
                current = await self._read_for_write(pipe, rows_key, member)
                check(current)
                pipe.multi()
                stage(pipe, rows_key, member)
                try:
                    await pipe.execute()
                    return
                except WatchError:
                    logger.debug(f"{table} changed during write of ({partition_key}, {row_key}), attempt {attempt}")
        raise ConcurrencyConflictError(
            f"Row ({partition_key}, {row_key}) in {table} could not be written after {MAX_WRITE_ATTEMPTS} attempts"
        )

    async def insert(self, table: str, partition_key: str, row_key: str, data: Dict[str, Any]) -> StoredRow:
        stored = StoredRow(partition_key, row_key, new_etag(), dict(data), utcnow())

        def check(current):
            if current is not None:
                raise DuplicateKeyError(f"Row ({partition_key}, {row_key}) already exists in {table}")

        def stage(pipe, rows_key, member):
            pipe.hset(rows_key, member, _encode(stored))
            pipe.zadd(self._index_key(table), {member: 0})

        try:
            await self._require_table(table)
            await self._conditional_write(table, partition_key, row_key, check, stage)
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise StoreUnavailableError(f"Table store unavailable: {e}") from e
        return stored

    async def replace(
        self,
        table: str,
        partition_key: str,
        row_key: str,
        data: Dict[str, Any],
        etag: Optional[str] = None,
    ) -> StoredRow:
        stored = StoredRow(partition_key, row_key, new_etag(), dict(data), utcnow())

        def check(current):
            self._check_current(table, partition_key, row_key, current, etag)

        def stage(pipe, rows_key, member):
            pipe.hset(rows_key, member, _encode(stored))

        try:
            await self._require_table(table)
            await self._conditional_write(table, partition_key, row_key, check, stage)
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise StoreUnavailableError(f"Table store unavailable: {e}") from e
        return stored

    async def delete(self, table: str, partition_key: str, row_key: str, etag: Optional[str] = None) -> None:
        def check(current):
            self._check_current(table, partition_key, row_key, current, etag)

        def stage(pipe, rows_key, member):
            pipe.hdel(rows_key, member)
            pipe.zrem(self._index_key(table), member)

        try:
            await self._require_table(table)
            await self._conditional_write(table, partition_key, row_key, check, stage)
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise StoreUnavailableError(f"Table store unavailable: {e}") from e

    @staticmethod
    def _check_current(table: str, partition_key: str, row_key: str, current: Optional[str], etag: Optional[str]) -> None:
        if current is None:
            raise NotFoundError(f"Row ({partition_key}, {row_key}) not found in {table}")
        if etag is not None and json.loads(current)["etag"] != etag:
            raise ConcurrencyConflictError(
                f"Row ({partition_key}, {row_key}) in {table} was modified by another writer"
            )

    async def query(
        self,
        table: str,
        partition_key: Optional[str] = None,
        continuation: Optional[ContinuationToken] = None,
    ) -> QueryPage:
        if continuation is not None:
            lower = "[" + _member(continuation.next_partition_key, continuation.next_row_key)
        elif partition_key is not None:
            lower = "[" + partition_key + SEPARATOR
        else:
            lower = "-"
        # "\x01" sorts right after the separator, closing the partition range
        upper = "(" + partition_key + "\x01" if partition_key is not None else "+"

        try:
            await self._require_table(table)
            members: List[str] = await self.client.zrangebylex(
                self._index_key(table), lower, upper, start=0, num=self.page_size + 1
            )
            next_token = None
            if len(members) > self.page_size:
                next_pk, next_rk = members[self.page_size].split(SEPARATOR, 1)
                next_token = ContinuationToken(next_pk, next_rk)
                members = members[:self.page_size]
            raws = await self.client.hmget(self._rows_key(table), members) if members else []
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise StoreUnavailableError(f"Table store unavailable: {e}") from e

        rows = []
        for member, raw in zip(members, raws):
            # Index and hash are written in one MULTI; a missing hash entry means
            # the row was deleted between the two reads
            if raw is None:
                continue
            pk, rk = member.split(SEPARATOR, 1)
            rows.append(_decode(pk, rk, raw))
        return QueryPage(rows=rows, continuation=next_token)
