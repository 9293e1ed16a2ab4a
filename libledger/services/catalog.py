"""Catalog store: books and their copy counts.

``available_copies`` only moves through :func:`decrement_available` and
:func:`increment_available`, each a single conditional UPDATE so concurrent
borrow transitions can't push it outside ``[0, total_copies]``.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from libledger.core.database import atomic
from libledger.core.errors import InvalidInput, NotFound, PreconditionFailed
from libledger.core.log import get_logger
from libledger.models.models import Book

logger = get_logger("catalog")

BOOK_FIELDS = ("title", "author", "category", "isbn", "description", "total_copies", "available_copies")


def validate_copies(total_copies: Any, available_copies: Any) -> None:
    if not isinstance(total_copies, int) or total_copies <= 0:
        raise InvalidInput("total_copies must be a positive integer")
    if not isinstance(available_copies, int) or not 0 <= available_copies <= total_copies:
        raise InvalidInput("available_copies must be between 0 and total_copies")


def add_book(db: Session, fields: Dict[str, Any]) -> Book:
    data = {k: v for k, v in fields.items() if k in BOOK_FIELDS}
    if not (data.get("title") or "").strip() or not (data.get("author") or "").strip():
        raise InvalidInput("title and author are required")
    total = data.get("total_copies", 1)
    if data.get("available_copies") is None:
        data["available_copies"] = total
    validate_copies(total, data["available_copies"])
    data["title"] = data["title"].strip()
    data["author"] = data["author"].strip()
    data["category"] = (data.get("category") or "").strip()
    data["total_copies"] = total
    with atomic(db):
        book = Book(**data)
        db.add(book)
    db.refresh(book)
    logger.info(f"Created book id={book.id} title={book.title} copies={book.available_copies}/{book.total_copies}")
    return book


def get_book(db: Session, book_id: int, include_deleted: bool = False) -> Book:
    book = db.get(Book, book_id)
    if book is None or (book.deleted and not include_deleted):
        raise NotFound(f"Book {book_id} not found")
    return book


def update_book(db: Session, book_id: int, patch: Dict[str, Any]) -> Book:
    data = {k: v for k, v in patch.items() if k in BOOK_FIELDS}
    with atomic(db):
        book = get_book(db, book_id)
        seen_available = book.available_copies
        total = data.get("total_copies", book.total_copies)
        available = data.get("available_copies")
        if available is None:
            available = seen_available
        validate_copies(total, available)
        data["total_copies"] = total
        data["available_copies"] = available
        if "category" in data:
            data["category"] = (data["category"] or "").strip()
        for key in ("title", "author"):
            if key in data:
                if not (data[key] or "").strip():
                    raise InvalidInput(f"{key} must not be blank")
                data[key] = data[key].strip()
        values = {getattr(Book, k): v for k, v in data.items()}
        # refuse to overwrite a stock move that landed after our read
        updated = (
            db.query(Book)
            .filter(Book.id == book_id, Book.available_copies == seen_available)
            .update(values, synchronize_session=False)
        )
        if not updated:
            raise PreconditionFailed(f"Book {book_id} stock changed concurrently; retry the update")
    db.refresh(book)
    logger.info(f"Updated book id={book_id}")
    return book


def soft_delete_book(db: Session, book_id: int) -> None:
    with atomic(db):
        updated = (
            db.query(Book)
            .filter(Book.id == book_id)
            .update({Book.deleted: True}, synchronize_session=False)
        )
        if not updated:
            raise NotFound(f"Book {book_id} not found")
    logger.info(f"Soft-deleted book id={book_id}")


def list_books(
    db: Session,
    q: Optional[str] = None,
    category: Optional[str] = None,
    skip: int = 0,
    limit: int = 20,
) -> List[Book]:
    query = db.query(Book).filter(Book.deleted == False)  # noqa: E712
    if q:
        like_q = f"%{q}%"
        query = query.filter(
            (Book.title.ilike(like_q)) | (Book.author.ilike(like_q)) | (Book.isbn.ilike(like_q))
        )
    if category:
        query = query.filter(Book.category == category)
    return query.order_by(Book.title).offset(skip).limit(limit).all()


def categories(db: Session) -> List[str]:
    rows = (
        db.query(Book.category)
        .filter(Book.deleted == False, Book.category != "")  # noqa: E712
        .distinct()
        .order_by(Book.category)
        .all()
    )
    return [r[0] for r in rows]


def decrement_available(db: Session, book_id: int) -> bool:
    """Take one copy off the shelf; False (no-op) at zero or for an unknown book.

    Runs inside the caller's transaction.
    """
    updated = (
        db.query(Book)
        .filter(Book.id == book_id, Book.available_copies > 0)
        .update({Book.available_copies: Book.available_copies - 1}, synchronize_session=False)
    )
    return bool(updated)


def increment_available(db: Session, book_id: int) -> bool:
    """Put one copy back, never above ``total_copies``. Runs inside the caller's transaction."""
    updated = (
        db.query(Book)
        .filter(Book.id == book_id, Book.available_copies < Book.total_copies)
        .update({Book.available_copies: Book.available_copies + 1}, synchronize_session=False)
    )
    return bool(updated)


def book_exists(db: Session, book_id: int) -> bool:
    return db.query(Book.id).filter(Book.id == book_id).first() is not None
