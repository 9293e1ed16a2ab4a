import enum

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, String

from libledger.core.database import Base, utcnow


class BorrowStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    RETURNED = "returned"
    LOST = "lost"


class FineStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PAID = "paid"


class Person(Base):
    __tablename__ = "people"
    person_id = Column(String(64), primary_key=True)
    full_name = Column(String, nullable=False, index=True)
    email = Column(String, nullable=True)
    registered_at = Column(DateTime, default=utcnow)


class Entry(Base):
    __tablename__ = "entries"
    id = Column(Integer, primary_key=True, index=True)
    person_id = Column(String(64), nullable=False, index=True)
    name = Column(String, nullable=True)
    purpose = Column(String, nullable=False, default="")
    check_in_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    check_out_at = Column(DateTime, nullable=True)

Index("ix_entries_person_check_in", Entry.person_id, Entry.check_in_at)


class OpenSession(Base):
    """Points at the one open Entry of a person; the primary key keeps it unique."""

    __tablename__ = "open_sessions"
    person_id = Column(String(64), primary_key=True)
    entry_id = Column(Integer, ForeignKey("entries.id"), nullable=False, unique=True)


class Book(Base):
    __tablename__ = "books"
    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False, index=True)
    author = Column(String, nullable=False, index=True)
    category = Column(String, nullable=False, default="", index=True)
    isbn = Column(String, nullable=True, index=True)
    description = Column(String, nullable=True)
    available_copies = Column(Integer, nullable=False, default=1)
    total_copies = Column(Integer, nullable=False, default=1)
    deleted = Column(Boolean, nullable=False, default=False, index=True)
    added_at = Column(DateTime, default=utcnow)

Index("ix_books_title_author", Book.title, Book.author)


class BorrowRecord(Base):
    __tablename__ = "borrow_records"
    id = Column(Integer, primary_key=True, index=True)
    # no FK: a record outlives a physically missing book row
    book_id = Column(Integer, nullable=False, index=True)
    book_title = Column(String, nullable=False, default="")
    person_id = Column(String(64), nullable=False, index=True)
    person_name = Column(String, nullable=True)
    borrow_date = Column(DateTime, nullable=False, default=utcnow, index=True)
    due_date = Column(DateTime, nullable=False)
    return_date = Column(DateTime, nullable=True)
    status = Column(String(16), nullable=False, default=BorrowStatus.PENDING.value, index=True)
    rejection_reason = Column(String, nullable=True)
    lost_penalty = Column(Float, nullable=True)
    fine_status = Column(String(16), nullable=True, index=True)
    fine_paid_date = Column(DateTime, nullable=True)


class Notification(Base):
    __tablename__ = "notifications"
    id = Column(Integer, primary_key=True, index=True)
    person_id = Column(String(64), nullable=False, index=True)
    title = Column(String, nullable=False)
    message = Column(String, nullable=False)
    severity = Column(String(16), nullable=False, default="info")
    related_book_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)
    read = Column(Boolean, nullable=False, default=False, index=True)
