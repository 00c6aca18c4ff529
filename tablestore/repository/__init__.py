"""
Repository pattern over the table store: every write is compensated by the unit of work that issued it.
"""

from .base import IRepository, TableRepository
from .compensation import Compensation, CompensationFailure, CompensationKind
from .unit_of_work import UnitOfWork, UnitOfWorkState

__all__ = [
    "IRepository",
    "TableRepository",
    "Compensation",
    "CompensationFailure",
    "CompensationKind",
    "UnitOfWork",
    "UnitOfWorkState",
]
