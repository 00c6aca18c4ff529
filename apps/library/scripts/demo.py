#!/usr/bin/env python3
"""
Unit of work walkthrough against the configured table store.

Usage:
    python -m apps.library.scripts.demo
    python -m apps.library.scripts.demo --fail-after-delete

Steps:
    1. Insert a book in one unit of work and commit
    2. Change its author in a second unit of work and commit
    3. Soft delete it in a third; with --fail-after-delete the scope raises
       before commit and the delete is compensated
    4. Print the book and its audit trail
"""

import argparse
import asyncio
import sys

from tablestore.database.manager import DatabaseManager
from tablestore.exceptions.handler import CompensationError
from tablestore.logging.logger import LogConfig, get_logger
from tablestore.repository.unit_of_work import UnitOfWork
from apps.library.models import BookEntity
from apps.library.repository import BookRepository
from apps.models import provision_tables

logger = get_logger("library_demo")

PUBLISHER = "ABPress"


class SimulatedFailure(RuntimeError):
    """Raised on purpose to abandon a unit of work."""


async def run(fail_after_delete: bool) -> int:
    manager = DatabaseManager.get_instance()
    await manager.connect()
    client = manager.get_table_client()
    try:
        await provision_tables(client)

        async with UnitOfWork(client=client, actor="demo") as uow:
            books = uow.get_repository(BookEntity, BookRepository)
            book = await books.insert(BookEntity.new(PUBLISHER, title=".NET Core Journey", author="Jo Bloke"))
            await uow.commit()
        book_id = book.row_key
        logger.info(f"Inserted {book_id}: {book.title} by {book.author}")

        async with UnitOfWork(client=client, actor="demo") as uow:
            books = uow.get_repository(BookEntity, BookRepository)
            book = await books.get_by_id(PUBLISHER, book_id)
            book.author = "Josephine Bloke"
            book = await books.update(book)
            await uow.commit()
        logger.info(f"Updated {book_id}: author is now {book.author}")

        try:
            async with UnitOfWork(client=client, actor="demo") as uow:
                books = uow.get_repository(BookEntity, BookRepository)
                book = await books.get_by_id(PUBLISHER, book_id)
                await books.delete(book)
                if fail_after_delete:
                    raise SimulatedFailure("Rollback deleted book")
                await uow.commit()
            logger.info(f"Deleted {book_id}")
        except SimulatedFailure as e:
            logger.warning(f"Delete abandoned ({e}); compensations replayed")

        async with UnitOfWork(client=client) as uow:
            books = uow.get_repository(BookEntity, BookRepository)
            book = await books.get_by_id(PUBLISHER, book_id)
            history = await books.find_audit_history(PUBLISHER, book_id)
            await uow.commit()

        print(f"Book {book_id}: author={book.author!r} is_deleted={book.is_deleted}")
        for entry in history:
            print(f"  {entry.row_key}  author={entry.author!r} is_deleted={entry.is_deleted}")
        return 0
    except CompensationError as e:
        logger.error(f"Rollback left data partially undone: {e.message}")
        return 2
    finally:
        await manager.disconnect()


def main():
    parser = argparse.ArgumentParser(description="Unit of work walkthrough")
    parser.add_argument("--fail-after-delete", action="store_true", help="Abandon the delete scope before commit")
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level")
    args = parser.parse_args()

    LogConfig.setup_cli_logging("library_demo", verbose=args.verbose)
    sys.exit(asyncio.run(run(args.fail_after_delete)))


if __name__ == "__main__":
    main()
