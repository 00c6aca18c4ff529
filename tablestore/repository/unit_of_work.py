"""
Unit of Work: owns the compensation log and the repositories of one logical transaction.
"""

from enum import Enum
from typing import Dict, List, Optional, Tuple, Type, TypeVar
from tablestore.entity import TableEntity
from tablestore.exceptions.handler import CompensationError, UnitOfWorkStateError
from tablestore.logging.logger import get_logger
from tablestore.store.base import TableClient
from .base import TableRepository
from .compensation import Compensation, CompensationFailure, RowAddress, execute_compensation

T = TypeVar("T", bound=TableEntity)

logger = get_logger("unit_of_work")


class UnitOfWorkState(str, Enum):
    OPEN = "open"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class UnitOfWork:
    """
    Pseudo-transaction over a non-transactional table store.

    Writes made through the repositories of this unit of work hit the store
    immediately; each one leaves a compensation in the log. ``commit`` discards
    the log. Closing the unit of work while still open (explicitly, or by
    leaving ``async with``, including on an exception) replays the log most
    recent first and then empties it.

    Usage:
        async with UnitOfWork(client) as uow:
            books = uow.get_repository(BookEntity)
            await books.insert(book)
            await uow.commit()

    Not safe for concurrent use: one caller drives one unit of work.
    """

    def __init__(self, client: Optional[TableClient] = None, actor: Optional[str] = None):
        """Initialize UnitOfWork; client must be provided (e.g. UnitOfWork.from_manager())."""
        if client is None:
            raise ValueError("Table client must be provided. Use UnitOfWork.from_manager() or pass client explicitly.")

        self.client = client
        self.actor = actor
        self.state = UnitOfWorkState.OPEN
        self._compensations: List[Compensation] = []
        self._repositories: Dict[type, TableRepository] = {}

    @classmethod
    def from_manager(cls, manager=None, actor: Optional[str] = None) -> "UnitOfWork":
        """Create UnitOfWork over the table client of the configured backend."""
        if manager is None:
            from tablestore.database.manager import DatabaseManager
            manager = DatabaseManager.get_instance()
        return cls(client=manager.get_table_client(), actor=actor)

    @property
    def pending_compensations(self) -> Tuple[Compensation, ...]:
        """Compensations queued so far, oldest first."""
        return tuple(self._compensations)

    def get_repository(self, model_class: Type[T], repo_class: Optional[type] = None) -> TableRepository[T]:
        """
        Get or create the repository for an entity type (one per type per unit of work).

        Args:
            model_class: Entity type
            repo_class: TableRepository subclass whose __init__ takes only the
                unit of work; defaults to a plain TableRepository
        """
        repository = self._repositories.get(model_class)
        if repository is None:
            if repo_class is None:
                repository = TableRepository(self, model_class)
            else:
                repository = repo_class(self)
                if repository.model is not model_class:
                    raise TypeError(f"{repo_class.__name__} serves {repository.model.__name__}, not {model_class.__name__}")
            self._repositories[model_class] = repository
        elif repo_class is not None and not isinstance(repository, repo_class):
            raise TypeError(
                f"{model_class.__name__} is already served by {type(repository).__name__} in this unit of work"
            )
        return repository

    def ensure_open(self) -> None:
        if self.state != UnitOfWorkState.OPEN:
            raise UnitOfWorkStateError(f"Unit of work is {self.state.value}; no further writes are accepted")

    def register(self, compensation: Compensation) -> None:
        """Queue the compensation of a write that has just succeeded."""
        if self.state != UnitOfWorkState.OPEN:
            logger.error(f"Write completed after unit of work closed, left uncompensated: {compensation.describe()}")
            raise UnitOfWorkStateError(f"Unit of work is {self.state.value}; {compensation.describe()} cannot be queued")
        self._compensations.append(compensation)

    async def commit(self) -> None:
        """Mark the work as complete; data is already written, only the rollback is suppressed."""
        self.ensure_open()
        discarded = len(self._compensations)
        self._compensations.clear()
        self.state = UnitOfWorkState.COMMITTED
        logger.info(f"Unit of work committed, {discarded} compensation(s) discarded")

    async def rollback(self) -> None:
        """
        Undo every write of this unit of work, most recent first.

        A failing compensation does not stop the others. The log is emptied in
        any case; if anything failed, CompensationError lists every failure.
        """
        self.ensure_open()
        pending = list(reversed(self._compensations))
        failures: List[CompensationFailure] = []
        current_etags: Dict[RowAddress, str] = {}

        logger.info(f"Rolling back unit of work, {len(pending)} compensation(s) queued")
        try:
            for compensation in pending:
                try:
                    await execute_compensation(self.client, compensation, current_etags)
                except Exception as e:
                    logger.warning(f"Compensation failed: {compensation.describe()} | Error: {str(e)}")
                    failures.append(CompensationFailure(compensation, e))
        finally:
            self._compensations.clear()
            self.state = UnitOfWorkState.ROLLED_BACK

        if failures:
            logger.error(f"Rollback incomplete: {len(failures)} of {len(pending)} compensation(s) failed")
            raise CompensationError(failures)
        logger.info("Unit of work rolled back")

    async def close(self) -> None:
        """End the scope; rolls back unless committed. Safe to call more than once."""
        if self.state == UnitOfWorkState.OPEN:
            await self.rollback()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None and self.state == UnitOfWorkState.OPEN:
            logger.warning(f"Unit of work aborted by {exc_type.__name__}: {exc_val}")
        await self.close()
