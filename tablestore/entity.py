"""
Entity model for the table store.

Entities are pydantic models addressed by (partition_key, row_key). The store
keeps the domain fields as a JSON document next to the key and the etag.
"""

from datetime import datetime
from typing import Any, ClassVar, Dict, Optional, Type, TypeVar
from pydantic import BaseModel, ConfigDict, Field

E = TypeVar("E", bound="TableEntity")

# Fields owned by the store envelope, never part of the stored document
KEY_FIELDS = {"partition_key", "row_key", "etag"}


class TableEntity(BaseModel):
    """A record addressed by (partition_key, row_key) with an opaque concurrency token."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    # Overrides the table name; defaults to the class name
    __tablename__: ClassVar[Optional[str]] = None

    partition_key: str = Field(description="Groups records for range queries")
    row_key: str = Field(description="Unique within a partition")
    etag: Optional[str] = Field(default=None, description="Store-assigned concurrency token")

    @classmethod
    def table_name(cls) -> str:
        return cls.__tablename__ or cls.__name__

    def to_document(self) -> Dict[str, Any]:
        """Domain fields as a JSON-compatible dict (key and etag excluded)."""
        return self.model_dump(mode="json", exclude=KEY_FIELDS)

    @classmethod
    def from_document(
        cls: Type[E],
        partition_key: str,
        row_key: str,
        etag: Optional[str],
        document: Dict[str, Any],
    ) -> E:
        return cls.model_validate(
            {**document, "partition_key": partition_key, "row_key": row_key, "etag": etag}
        )


class BaseEntity(TableEntity):
    """Entity with a soft-delete flag and audit timestamps maintained by the repository."""

    is_deleted: bool = False
    created_by: Optional[str] = None
    created_date: Optional[datetime] = None
    modified_by: Optional[str] = None
    modified_date: Optional[datetime] = None


class AuditTracked:
    """Marker: every mutation of this entity type is mirrored into "{TableName}Audit"."""


def is_audit_tracked(entity_type: type) -> bool:
    return issubclass(entity_type, AuditTracked)


def snapshot(entity: E) -> E:
    """Deep, detached copy of an entity built from its public fields only."""
    return type(entity).model_validate_json(entity.model_dump_json())
