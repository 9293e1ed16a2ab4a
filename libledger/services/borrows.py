"""Borrow ledger: the lending state machine.

    pending --approve--> approved --return--> returned
       |                    |
       +--reject--> rejected +--mark_lost--> lost

Each transition is a conditional UPDATE on the expected source status,
committed in the same transaction as its stock adjustment. A caller that
loses a race gets ``PreconditionFailed`` and nothing changes. Notifications go
out only after the commit.
"""

from __future__ import annotations

import math
from dataclasses import asdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from libledger.core.config import Settings, get_settings
from libledger.core.database import atomic, utcnow
from libledger.core.errors import (
    BorrowingBlocked,
    InvalidInput,
    NotFound,
    OutOfStock,
    PreconditionFailed,
)
from libledger.core.log import get_logger
from libledger.models.models import BorrowRecord, BorrowStatus, FineStatus
from libledger.services import catalog, fines
from libledger.services.notifications import LoggingNotificationSink, NotificationSink
from libledger.services.people import display_name

logger = get_logger("borrows")

DEFAULT_REJECTION_REASON = "Request rejected"

# source states each transition accepts
TRANSITIONS = {
    BorrowStatus.APPROVED: (BorrowStatus.PENDING,),
    BorrowStatus.REJECTED: (BorrowStatus.PENDING,),
    BorrowStatus.RETURNED: (BorrowStatus.APPROVED,),
    BorrowStatus.LOST: (BorrowStatus.APPROVED,),
}


def _get_record(db: Session, borrow_id: int) -> BorrowRecord:
    record = db.get(BorrowRecord, borrow_id)
    if record is None:
        raise NotFound(f"Borrow record {borrow_id} not found")
    return record


def _transition(db: Session, record: BorrowRecord, target: BorrowStatus, **values: Any) -> None:
    sources = [s.value for s in TRANSITIONS[target]]
    values["status"] = target.value
    updated = (
        db.query(BorrowRecord)
        .filter(BorrowRecord.id == record.id, BorrowRecord.status.in_(sources))
        .update({getattr(BorrowRecord, k): v for k, v in values.items()}, synchronize_session=False)
    )
    if not updated:
        db.refresh(record)
        raise PreconditionFailed(
            f"Borrow record {record.id} is {record.status}; cannot move to {target.value}"
        )


def _notify(sink: Optional[NotificationSink], record: BorrowRecord, title: str, message: str, severity: str) -> None:
    sink = sink or LoggingNotificationSink()
    try:
        sink.emit(record.person_id, title, message, severity, record.book_id)
    except Exception:
        logger.exception(f"Notification '{title}' for borrow {record.id} failed")


def request_borrow(
    db: Session,
    book_id: int,
    person_id: str,
    person_name: Optional[str] = None,
    settings: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> BorrowRecord:
    """Create a pending request. Stock is checked at approval, not here."""
    settings = settings or get_settings()
    now = now or utcnow()
    if not person_id or not person_id.strip():
        raise InvalidInput("person_id is required")
    book = catalog.get_book(db, book_id)
    if settings.block_borrowing_with_fines and not can_borrow(db, person_id, settings=settings, now=now):
        raise BorrowingBlocked(f"{person_id} has unpaid fines")
    with atomic(db):
        record = BorrowRecord(
            book_id=book.id,
            book_title=book.title,
            person_id=person_id,
            person_name=person_name or display_name(db, person_id),
            borrow_date=now,
            due_date=now + timedelta(days=settings.borrow_period_days),
            status=BorrowStatus.PENDING.value,
        )
        db.add(record)
    db.refresh(record)
    logger.info(f"Borrow request {record.id}: person={person_id} book={book_id} due={record.due_date.isoformat()}")
    return record


def approve_borrow(
    db: Session,
    borrow_id: int,
    settings: Optional[Settings] = None,
    sink: Optional[NotificationSink] = None,
) -> BorrowRecord:
    settings = settings or get_settings()
    with atomic(db):
        record = _get_record(db, borrow_id)
        _transition(db, record, BorrowStatus.APPROVED)
        if not catalog.decrement_available(db, record.book_id):
            if not catalog.book_exists(db, record.book_id):
                if settings.strict_inventory:
                    raise NotFound(f"Book {record.book_id} not found")
                logger.warning(f"Approved borrow {borrow_id} but book {record.book_id} is missing; stock untouched")
            else:
                if settings.strict_inventory:
                    raise OutOfStock(f"No copies of book {record.book_id} available")
                logger.warning(f"Approved borrow {borrow_id} with book {record.book_id} at zero stock")
    db.refresh(record)
    logger.info(f"Borrow {borrow_id} approved")
    _notify(
        sink, record, "Borrow Request Approved",
        f'Your request for "{record.book_title}" has been approved. Please collect your book.',
        "success",
    )
    return record


def reject_borrow(
    db: Session,
    borrow_id: int,
    reason: Optional[str] = None,
    sink: Optional[NotificationSink] = None,
) -> BorrowRecord:
    with atomic(db):
        record = _get_record(db, borrow_id)
        _transition(db, record, BorrowStatus.REJECTED, rejection_reason=reason or DEFAULT_REJECTION_REASON)
    db.refresh(record)
    logger.info(f"Borrow {borrow_id} rejected: {record.rejection_reason}")
    _notify(
        sink, record, "Borrow Request Rejected",
        f'Your request for "{record.book_title}" was rejected. Reason: {reason or "Not specified"}',
        "error",
    )
    return record


def return_book(
    db: Session,
    borrow_id: int,
    settings: Optional[Settings] = None,
    sink: Optional[NotificationSink] = None,
    now: Optional[datetime] = None,
) -> BorrowRecord:
    settings = settings or get_settings()
    now = now or utcnow()
    with atomic(db):
        record = _get_record(db, borrow_id)
        _transition(db, record, BorrowStatus.RETURNED, return_date=now)
        if not catalog.increment_available(db, record.book_id):
            if not catalog.book_exists(db, record.book_id):
                if settings.strict_inventory:
                    raise NotFound(f"Book {record.book_id} not found")
                logger.warning(f"Returned borrow {borrow_id} but book {record.book_id} is missing; stock untouched")
            else:
                # only reachable after an over-committed approve
                logger.warning(f"Book {record.book_id} already at total copies; return of {borrow_id} not restocked")
    db.refresh(record)
    logger.info(f"Borrow {borrow_id} returned")
    _notify(
        sink, record, "Book Returned",
        f'You have successfully returned "{record.book_title}". Thank you!',
        "info",
    )
    return record


def mark_lost(
    db: Session,
    borrow_id: int,
    penalty: float,
    sink: Optional[NotificationSink] = None,
) -> BorrowRecord:
    if penalty is None or not math.isfinite(penalty) or penalty <= 0:
        raise InvalidInput("penalty must be a finite amount greater than zero")
    with atomic(db):
        record = _get_record(db, borrow_id)
        _transition(
            db, record, BorrowStatus.LOST,
            lost_penalty=float(penalty),
            fine_status=FineStatus.UNPAID.value,
        )
    db.refresh(record)
    logger.info(f"Borrow {borrow_id} marked lost, penalty={penalty:.2f}")
    _notify(
        sink, record, "Book Marked as Lost",
        f'The book "{record.book_title}" has been marked as lost. You have been charged a penalty '
        f"of {penalty:.2f}. Please visit the library office to settle this.",
        "error",
    )
    return record


def mark_fine_paid(
    db: Session,
    borrow_id: int,
    settings: Optional[Settings] = None,
    sink: Optional[NotificationSink] = None,
    now: Optional[datetime] = None,
) -> BorrowRecord:
    settings = settings or get_settings()
    now = now or utcnow()
    with atomic(db):
        record = _get_record(db, borrow_id)
        assessment = fines.assess(record, now, settings.fine_per_day)
        if assessment.outstanding <= 0:
            raise PreconditionFailed(f"Borrow record {borrow_id} has no outstanding fine")
        seen = record.fine_status
        status_filter = BorrowRecord.fine_status.is_(None) if seen is None else BorrowRecord.fine_status == seen
        updated = (
            db.query(BorrowRecord)
            .filter(BorrowRecord.id == borrow_id, BorrowRecord.status == record.status, status_filter)
            .update(
                {BorrowRecord.fine_status: FineStatus.PAID.value, BorrowRecord.fine_paid_date: now},
                synchronize_session=False,
            )
        )
        if not updated:
            raise PreconditionFailed(f"Borrow record {borrow_id} changed while recording payment")
    db.refresh(record)
    logger.info(f"Fine of {assessment.fine_amount:.2f} on borrow {borrow_id} paid")
    _notify(
        sink, record, "Fine Payment Confirmed",
        f'Your fine of {assessment.fine_amount:.2f} for "{record.book_title}" has been recorded as paid. Thank you!',
        "success",
    )
    return record


def send_overdue_reminder(
    db: Session,
    borrow_id: int,
    settings: Optional[Settings] = None,
    sink: Optional[NotificationSink] = None,
    now: Optional[datetime] = None,
) -> BorrowRecord:
    settings = settings or get_settings()
    record = _get_record(db, borrow_id)
    if not fines.assess(record, now or utcnow(), settings.fine_per_day).is_overdue:
        raise PreconditionFailed(f"Borrow record {borrow_id} is not overdue")
    _notify(
        sink, record, "Overdue Book Reminder",
        f'Please return "{record.book_title}" as soon as possible. It is overdue.',
        "warning",
    )
    return record


def get_borrow(db: Session, borrow_id: int) -> BorrowRecord:
    return _get_record(db, borrow_id)


def list_borrow_records(
    db: Session,
    person_id: Optional[str] = None,
    status: Optional[str] = None,
    book_id: Optional[int] = None,
    overdue: Optional[bool] = None,
    skip: int = 0,
    limit: int = 50,
    settings: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> List[Tuple[BorrowRecord, fines.FineAssessment]]:
    """Records newest first, each paired with its fine assessment at ``now``."""
    settings = settings or get_settings()
    now = now or utcnow()
    query = db.query(BorrowRecord).order_by(BorrowRecord.borrow_date.desc(), BorrowRecord.id.desc())
    if person_id:
        query = query.filter(BorrowRecord.person_id == person_id)
    if status:
        if status not in {s.value for s in BorrowStatus}:
            raise InvalidInput(f"Unknown status {status!r}")
        query = query.filter(BorrowRecord.status == status)
    if book_id is not None:
        query = query.filter(BorrowRecord.book_id == book_id)
    if overdue is None:
        records = query.offset(skip).limit(limit).all()
        return [(r, fines.assess(r, now, settings.fine_per_day)) for r in records]
    # overdue is derived, so filter before paginating
    assessed = [(r, fines.assess(r, now, settings.fine_per_day)) for r in query.all()]
    assessed = [pair for pair in assessed if pair[1].is_overdue == overdue]
    return assessed[skip:skip + limit]


def person_records(db: Session, person_id: str) -> Sequence[BorrowRecord]:
    return db.query(BorrowRecord).filter(BorrowRecord.person_id == person_id).all()


def get_total_unpaid_fines(
    db: Session,
    person_id: str,
    settings: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> float:
    settings = settings or get_settings()
    return float(fines.total_unpaid(person_records(db, person_id), now or utcnow(), settings.fine_per_day))


def can_borrow(
    db: Session,
    person_id: str,
    settings: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> bool:
    return get_total_unpaid_fines(db, person_id, settings=settings, now=now) == 0


def with_fines(record: BorrowRecord, assessment: fines.FineAssessment) -> Dict[str, Any]:
    """Column values of ``record`` overlaid with the derived fine fields."""
    data = {c.name: getattr(record, c.name) for c in BorrowRecord.__table__.columns}
    data.update(asdict(assessment))
    return data
