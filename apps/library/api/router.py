from typing import Optional
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from tablestore.database.manager import DatabaseManager
from tablestore.repository.unit_of_work import UnitOfWork
from tablestore.response import ResponseModel
from tablestore.store.base import TableClient
from ..service import LibraryService

router = APIRouter()

class BookCreateSchema(BaseModel):
    title: str
    author: str
    publisher: str

class BookUpdateSchema(BaseModel):
    title: Optional[str] = None
    author: Optional[str] = None
    etag: Optional[str] = None

class RepublishSchema(BaseModel):
    new_publisher: str

def get_table_client() -> TableClient:
    return DatabaseManager.get_instance().get_table_client()

def get_uow(
    request: Request,
    client: TableClient = Depends(get_table_client)
) -> UnitOfWork:
    """Dependency: create UnitOfWork for the calling actor."""
    return UnitOfWork(client=client, actor=getattr(request.state, "actor", None))

def get_library_service(uow: UnitOfWork = Depends(get_uow)) -> LibraryService:
    """Dependency: create LibraryService."""
    return LibraryService(uow)

@router.post("")
async def add_book(
    data: BookCreateSchema,
    service: LibraryService = Depends(get_library_service)
):
    """Add a book."""
    book = await service.add_book(data.title, data.author, data.publisher)
    return ResponseModel.success(data=book)

@router.get("/{publisher}")
async def list_books(
    publisher: str,
    include_deleted: bool = False,
    service: LibraryService = Depends(get_library_service)
):
    """List a publisher's books."""
    books = await service.list_books(publisher, include_deleted=include_deleted)
    return ResponseModel.success(data=books)

@router.get("/{publisher}/{book_id}")
async def get_book(
    publisher: str,
    book_id: str,
    service: LibraryService = Depends(get_library_service)
):
    book = await service.get_book(publisher, book_id)
    return ResponseModel.success(data=book)

@router.put("/{publisher}/{book_id}")
async def update_book(
    publisher: str,
    book_id: str,
    data: BookUpdateSchema,
    service: LibraryService = Depends(get_library_service)
):
    """Update title/author; send the etag from a previous read for optimistic concurrency."""
    book = await service.update_book(publisher, book_id, title=data.title, author=data.author, etag=data.etag)
    return ResponseModel.success(data=book)

@router.delete("/{publisher}/{book_id}")
async def remove_book(
    publisher: str,
    book_id: str,
    service: LibraryService = Depends(get_library_service)
):
    book = await service.remove_book(publisher, book_id)
    return ResponseModel.success(data=book)

@router.post("/{publisher}/{book_id}/republish")
async def republish(
    publisher: str,
    book_id: str,
    data: RepublishSchema,
    service: LibraryService = Depends(get_library_service)
):
    """Move a book to another publisher (insert + soft delete, rolled back together)."""
    book = await service.republish(publisher, book_id, data.new_publisher)
    return ResponseModel.success(data=book)

@router.get("/{publisher}/{book_id}/history")
async def book_history(
    publisher: str,
    book_id: str,
    service: LibraryService = Depends(get_library_service)
):
    """Audit trail of a book, oldest first."""
    history = await service.book_history(publisher, book_id)
    return ResponseModel.success(data=history)
