import uuid
from typing import Optional
from pydantic import Field
from tablestore.entity import AuditTracked, BaseEntity

class BookEntity(BaseEntity, AuditTracked):
    """Book, partitioned by publisher; every change is kept in BookEntityAudit."""

    id: uuid.UUID = Field(description="Book id, also the row key")
    title: Optional[str] = None
    author: Optional[str] = None
    publisher: str = Field(description="Publisher name, also the partition key")

    @classmethod
    def new(
        cls,
        publisher: str,
        title: Optional[str] = None,
        author: Optional[str] = None,
        book_id: Optional[uuid.UUID] = None,
    ) -> "BookEntity":
        book_id = book_id or uuid.uuid4()
        return cls(
            partition_key=publisher,
            row_key=str(book_id),
            id=book_id,
            publisher=publisher,
            title=title,
            author=author,
        )
