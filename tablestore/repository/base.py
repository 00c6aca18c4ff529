"""
Repository abstract base class and generic table implementation.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Generic, List, Optional, Tuple, Type, TypeVar
from tablestore.config import settings
from tablestore.entity import BaseEntity, TableEntity, is_audit_tracked, snapshot
from tablestore.exceptions.handler import NotFoundError
from tablestore.logging.logger import get_logger
from tablestore.store.base import StoredRow, utcnow
from .audit import audit_clock, audit_partition_key
from .compensation import Compensation

if TYPE_CHECKING:
    from .unit_of_work import UnitOfWork

T = TypeVar("T", bound=TableEntity)

logger = get_logger("repository")


class IRepository(ABC, Generic[T]):
    """Repository interface; defines standard data access API."""

    @abstractmethod
    async def insert(self, entity: T) -> T:
        """Insert a new entity."""
        pass

    @abstractmethod
    async def update(self, entity: T) -> T:
        """Replace an existing entity."""
        pass

    @abstractmethod
    async def delete(self, entity: T) -> T:
        """Soft delete an entity."""
        pass

    @abstractmethod
    async def find_by_key(self, partition_key: str, row_key: str) -> Optional[T]:
        """Get entity by key."""
        pass

    @abstractmethod
    async def find_all_in_partition(self, partition_key: str) -> List[T]:
        """Get all entities of one partition."""
        pass

    @abstractmethod
    async def find_all(self) -> List[T]:
        """Get all entities of the table."""
        pass

    @abstractmethod
    async def find_audit_history(self, partition_key: str, row_key: str) -> List[T]:
        """Get the audit entries of one record, oldest first."""
        pass

    @abstractmethod
    async def ensure_table_exists(self) -> None:
        """Create the backing table(s) if missing."""
        pass


class TableRepository(IRepository[T]):
    """
    Generic repository over one table of the store.

    Every write goes to the store immediately. For each successful write a
    compensation is handed to the owning unit of work, which replays them if
    it is closed without commit. Entity types marked ``AuditTracked`` also get
    one new row in "{table}Audit" per write.
    """

    def __init__(self, uow: "UnitOfWork", model: Type[T]):
        """Initialize repository bound to a unit of work and an entity type."""
        self.uow = uow
        self.client = uow.client
        self.model = model
        self.table = model.table_name()
        self.audit_tracked = is_audit_tracked(model)
        self.audit_table = f"{self.table}{settings.AUDIT_TABLE_SUFFIX}" if self.audit_tracked else None

    def _to_entity(self, row: StoredRow) -> T:
        return self.model.from_document(row.partition_key, row.row_key, row.etag, row.data)

    async def insert(self, entity: T) -> T:
        """Insert entity; fails with DuplicateKeyError when the key is taken."""
        self.uow.ensure_open()
        now = utcnow()
        if isinstance(entity, BaseEntity):
            entity.created_date = now
            entity.modified_date = now
            entity.is_deleted = False
            if self.uow.actor:
                entity.created_by = self.uow.actor
                entity.modified_by = self.uow.actor

        written = await self.client.insert(self.table, entity.partition_key, entity.row_key, entity.to_document())
        self.uow.register(Compensation.undo_insert(self.table, written))
        entity.etag = written.etag
        logger.debug(f"Inserted {self.table}({entity.partition_key}, {entity.row_key})")

        await self._write_audit(entity)
        return entity

    async def update(self, entity: T) -> T:
        """
        Replace entity.

        The stored version is read first and kept as the undo target. The write
        is conditional on the caller's etag when present, otherwise on the etag
        of the version just read. The caller's entity is only stamped once the
        write went through.
        """
        self.uow.ensure_open()
        stamped = self._stamp_modified(entity, deleted=False)

        before, written = await self._replace(stamped)
        self.uow.register(Compensation.undo_replace(self.table, before, written))
        self._apply_stamp(entity, stamped, written)
        logger.debug(f"Updated {self.table}({entity.partition_key}, {entity.row_key})")

        await self._write_audit(entity)
        return entity

    async def delete(self, entity: T) -> T:
        """Soft delete: flag the entity and replace it; the row stays readable."""
        if not isinstance(entity, BaseEntity):
            raise TypeError(f"{self.model.__name__} has no soft-delete flag; derive it from BaseEntity")
        self.uow.ensure_open()
        stamped = self._stamp_modified(entity, deleted=True)

        before, written = await self._replace(stamped)
        self.uow.register(Compensation.undo_delete(self.table, before, written))
        self._apply_stamp(entity, stamped, written)
        logger.debug(f"Soft deleted {self.table}({entity.partition_key}, {entity.row_key})")

        await self._write_audit(entity)
        return entity

    def _stamp_modified(self, entity: T, deleted: bool) -> T:
        stamped = snapshot(entity)
        if isinstance(stamped, BaseEntity):
            stamped.modified_date = utcnow()
            stamped.is_deleted = deleted
            if self.uow.actor:
                stamped.modified_by = self.uow.actor
        return stamped

    @staticmethod
    def _apply_stamp(entity: T, stamped: T, written: StoredRow) -> None:
        if isinstance(entity, BaseEntity):
            entity.modified_date = stamped.modified_date
            entity.is_deleted = stamped.is_deleted
            entity.modified_by = stamped.modified_by
        entity.etag = written.etag

    async def _replace(self, entity: T) -> Tuple[StoredRow, StoredRow]:
        before = await self.client.get(self.table, entity.partition_key, entity.row_key)
        if before is None:
            raise NotFoundError(f"{self.model.__name__} ({entity.partition_key}, {entity.row_key}) not found")
        written = await self.client.replace(
            self.table,
            entity.partition_key,
            entity.row_key,
            entity.to_document(),
            etag=entity.etag or before.etag,
        )
        return before, written

    async def _write_audit(self, entity: T) -> None:
        if not self.audit_tracked:
            return
        audit_entity = snapshot(entity)
        audit_entity.partition_key = audit_partition_key(entity.partition_key, entity.row_key)
        audit_entity.row_key = audit_clock.next_row_key()

        written = await self.client.insert(
            self.audit_table, audit_entity.partition_key, audit_entity.row_key, audit_entity.to_document()
        )
        self.uow.register(Compensation.undo_insert(self.audit_table, written, is_audit=True))
        logger.debug(f"Audit entry {self.audit_table}({written.partition_key}, {written.row_key}) written")

    async def find_by_key(self, partition_key: str, row_key: str) -> Optional[T]:
        """Get entity by key; soft-deleted entities are returned as-is."""
        row = await self.client.get(self.table, partition_key, row_key)
        return self._to_entity(row) if row is not None else None

    async def find_all_in_partition(self, partition_key: str) -> List[T]:
        rows = await self.client.query_all(self.table, partition_key=partition_key)
        return [self._to_entity(row) for row in rows]

    async def find_all(self) -> List[T]:
        rows = await self.client.query_all(self.table)
        return [self._to_entity(row) for row in rows]

    async def find_audit_history(self, partition_key: str, row_key: str) -> List[T]:
        """
        Audit entries of one record, oldest first.

        Each entry is a copy of the entity as written, keyed by
        ("{partition_key}-{row_key}", write timestamp).
        """
        if not self.audit_tracked:
            raise TypeError(f"{self.model.__name__} is not audit tracked")
        rows = await self.client.query_all(
            self.audit_table, partition_key=audit_partition_key(partition_key, row_key)
        )
        return [self._to_entity(row) for row in rows]

    async def ensure_table_exists(self) -> None:
        """Create the primary table and, for audit tracked types, the audit table."""
        if await self.client.create_table_if_not_exists(self.table):
            logger.info(f"Provisioned table {self.table}")
        if self.audit_tracked and await self.client.create_table_if_not_exists(self.audit_table):
            logger.info(f"Provisioned audit table {self.audit_table}")
