from typing import List, Optional
from loguru import logger
from tablestore.exceptions.handler import BusinessException
from tablestore.repository.unit_of_work import UnitOfWork
from .models import BookEntity
from .repository import BookRepository

class LibraryService:
    """
    Book operations, one unit of work per call.

    Every method runs inside ``async with self.uow`` and commits on success,
    so any failure rolls back all writes the call made.
    """

    def __init__(self, uow: UnitOfWork):
        """Initialize Library Service with UnitOfWork."""
        self.uow = uow
        self.books: BookRepository = uow.get_repository(BookEntity, BookRepository)

    async def _require(self, publisher: str, book_id: str) -> BookEntity:
        book = await self.books.get_by_id(publisher, book_id)
        if book is None:
            raise BusinessException(f"Book {book_id} not found for publisher {publisher}", code=404)
        return book

    async def add_book(self, title: str, author: str, publisher: str) -> BookEntity:
        """Add a new book."""
        async with self.uow:
            book = await self.books.insert(BookEntity.new(publisher, title=title, author=author))
            await self.uow.commit()
        logger.info(f"Book {book.row_key} added for publisher {publisher}")
        return book

    async def get_book(self, publisher: str, book_id: str) -> BookEntity:
        async with self.uow:
            book = await self._require(publisher, book_id)
            await self.uow.commit()
        return book

    async def list_books(self, publisher: str, include_deleted: bool = False) -> List[BookEntity]:
        async with self.uow:
            books = await self.books.list_by_publisher(publisher, include_deleted=include_deleted)
            await self.uow.commit()
        return books

    async def update_book(
        self,
        publisher: str,
        book_id: str,
        title: Optional[str] = None,
        author: Optional[str] = None,
        etag: Optional[str] = None,
    ) -> BookEntity:
        """Change title and/or author; etag, when given, must match the stored book."""
        async with self.uow:
            book = await self._require(publisher, book_id)
            if book.is_deleted:
                raise BusinessException(f"Book {book_id} is deleted", code=410)
            if title is not None:
                book.title = title
            if author is not None:
                book.author = author
            if etag is not None:
                book.etag = etag
            book = await self.books.update(book)
            await self.uow.commit()
        logger.info(f"Book {book_id} updated")
        return book

    async def remove_book(self, publisher: str, book_id: str) -> BookEntity:
        """Soft delete a book; its history stays available."""
        async with self.uow:
            book = await self._require(publisher, book_id)
            book = await self.books.delete(book)
            await self.uow.commit()
        logger.info(f"Book {book_id} removed")
        return book

    async def republish(self, publisher: str, book_id: str, new_publisher: str) -> BookEntity:
        """
        Move a book to another publisher.

        Two writes in two partitions: a copy is inserted under the new
        publisher and the original is soft deleted. If the second write fails
        the copy is removed again by the rollback.
        """
        async with self.uow:
            book = await self._require(publisher, book_id)
            if book.is_deleted:
                raise BusinessException(f"Book {book_id} is deleted", code=410)
            moved = BookEntity.new(new_publisher, title=book.title, author=book.author, book_id=book.id)
            moved = await self.books.insert(moved)
            await self.books.delete(book)
            await self.uow.commit()
        logger.info(f"Book {book_id} moved from {publisher} to {new_publisher}")
        return moved

    async def book_history(self, publisher: str, book_id: str) -> List[BookEntity]:
        """Audit entries of a book, oldest first."""
        async with self.uow:
            history = await self.books.find_audit_history(publisher, book_id)
            await self.uow.commit()
        return history
