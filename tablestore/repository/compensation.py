"""
Compensations: inert records that undo exactly one completed write.

A repository builds one record per successful write and hands it to its unit
of work. Nothing is executed until the unit of work rolls back, at which point
``execute_compensation`` interprets each record against the store.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple
from tablestore.logging.logger import get_logger
from tablestore.store.base import StoredRow, TableClient

logger = get_logger("compensation")

RowAddress = Tuple[str, str, str]


class CompensationKind(str, Enum):
    UNDO_INSERT = "undo_insert"
    UNDO_REPLACE = "undo_replace"
    UNDO_DELETE = "undo_delete"


@dataclass(frozen=True)
class Compensation:
    """
    Undo record for one write.

    Attributes:
        kind: Which write is being undone
        table: Table the write went to (primary or audit)
        partition_key / row_key: Address of the written row
        written_etag: Etag the forward write produced
        snapshot: Server copy of the row read just before the write
            (replace and soft delete only)
        is_audit: True for writes to the audit table
    """
    kind: CompensationKind
    table: str
    partition_key: str
    row_key: str
    written_etag: str
    snapshot: Optional[StoredRow] = None
    is_audit: bool = False

    @property
    def address(self) -> RowAddress:
        return (self.table, self.partition_key, self.row_key)

    @classmethod
    def undo_insert(cls, table: str, written: StoredRow, is_audit: bool = False) -> "Compensation":
        return cls(
            kind=CompensationKind.UNDO_INSERT,
            table=table,
            partition_key=written.partition_key,
            row_key=written.row_key,
            written_etag=written.etag,
            is_audit=is_audit,
        )

    @classmethod
    def undo_replace(cls, table: str, before: StoredRow, written: StoredRow) -> "Compensation":
        return cls(
            kind=CompensationKind.UNDO_REPLACE,
            table=table,
            partition_key=written.partition_key,
            row_key=written.row_key,
            written_etag=written.etag,
            snapshot=before,
        )

    @classmethod
    def undo_delete(cls, table: str, before: StoredRow, written: StoredRow) -> "Compensation":
        return cls(
            kind=CompensationKind.UNDO_DELETE,
            table=table,
            partition_key=written.partition_key,
            row_key=written.row_key,
            written_etag=written.etag,
            snapshot=before,
        )

    def describe(self) -> str:
        return f"{self.kind.value} {self.table}({self.partition_key}, {self.row_key})"


@dataclass(frozen=True)
class CompensationFailure:
    compensation: Compensation
    error: Exception


async def execute_compensation(
    client: TableClient,
    compensation: Compensation,
    current_etags: Dict[RowAddress, str],
) -> None:
    """
    Undo one write.

    ``current_etags`` maps row addresses to the etag the row holds right now as
    far as this rollback knows. A row not in the map still carries the etag of
    the write being undone; after a restore the map is updated so that an older
    compensation for the same row presents the token the restore produced.
    """
    address = compensation.address
    etag = current_etags.get(address, compensation.written_etag)

    if compensation.kind == CompensationKind.UNDO_INSERT:
        await client.delete(compensation.table, compensation.partition_key, compensation.row_key, etag=etag)
        current_etags.pop(address, None)

    elif compensation.kind in (CompensationKind.UNDO_REPLACE, CompensationKind.UNDO_DELETE):
        data = dict(compensation.snapshot.data)
        if compensation.kind == CompensationKind.UNDO_DELETE and "is_deleted" in data:
            data["is_deleted"] = False
        restored = await client.replace(
            compensation.table,
            compensation.partition_key,
            compensation.row_key,
            data,
            etag=etag,
        )
        current_etags[address] = restored.etag

    else:
        raise ValueError(f"Unknown compensation kind: {compensation.kind}")

    logger.debug(f"Compensation applied: {compensation.describe()}")
