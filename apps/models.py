"""
Entity registration for table provisioning: every entity type whose tables must exist at startup.
When adding/removing apps, add/remove the corresponding entity here.
"""
from apps.library.models import BookEntity
from tablestore.repository.unit_of_work import UnitOfWork
from tablestore.store.base import TableClient

ENTITY_TYPES = [BookEntity]

__all__ = ["BookEntity", "ENTITY_TYPES", "provision_tables"]


async def provision_tables(client: TableClient) -> None:
    """Create the primary (and audit) table of every registered entity type."""
    async with UnitOfWork(client=client) as uow:
        for entity_type in ENTITY_TYPES:
            await uow.get_repository(entity_type).ensure_table_exists()
        await uow.commit()
