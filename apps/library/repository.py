"""Library module repository implementation."""

from typing import List, Optional
from tablestore.repository.base import TableRepository
from .models import BookEntity


class BookRepository(TableRepository[BookEntity]):
    """Book repository."""

    def __init__(self, uow):
        super().__init__(uow, BookEntity)

    async def get_by_id(self, publisher: str, book_id: str) -> Optional[BookEntity]:
        """Get book by publisher and id."""
        return await self.find_by_key(publisher, book_id)

    async def list_by_publisher(self, publisher: str, include_deleted: bool = False) -> List[BookEntity]:
        """
        List a publisher's books ordered by id.

        Args:
            publisher: Publisher (partition key)
            include_deleted: Also return soft-deleted books

        Returns:
            List of books
        """
        books = await self.find_all_in_partition(publisher)
        if include_deleted:
            return books
        return [book for book in books if not book.is_deleted]
