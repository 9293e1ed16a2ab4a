from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from libledger.core.config import Settings, get_settings
from libledger.core.database import get_db, utcnow
from libledger.models import models
from libledger.schemas import schemas
from libledger.services import borrows, catalog, entries, fines, notifications, people
from libledger.services.notifications import StoreNotificationSink

router = APIRouter()


def require_admin(
    x_admin_token: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
):
    if not x_admin_token or x_admin_token != settings.admin_token:
        raise HTTPException(status_code=403, detail="Admin access required")


def get_sink(db: Session = Depends(get_db)) -> StoreNotificationSink:
    return StoreNotificationSink(db)


def borrow_out(record, assessment) -> schemas.BorrowOut:
    return schemas.BorrowOut(**borrows.with_fines(record, assessment))


def _single_borrow_out(record, settings: Settings) -> schemas.BorrowOut:
    return borrow_out(record, fines.assess(record, utcnow(), settings.fine_per_day))


# -----------------------------
# People
# -----------------------------
@router.post("/people/", response_model=schemas.PersonOut)
def register_person(person_in: schemas.PersonCreate, db: Session = Depends(get_db)):
    return people.register_person(db, person_in.person_id, person_in.full_name, person_in.email)


@router.get("/people/", response_model=List[schemas.PersonOut])
def list_people(skip: int = 0, limit: int = 50, db: Session = Depends(get_db)):
    return people.list_people(db, skip=skip, limit=limit)


@router.get("/people/{person_id}", response_model=schemas.PersonOut)
def read_person(person_id: str, db: Session = Depends(get_db)):
    return people.get_person(db, person_id)


@router.get("/people/{person_id}/fines", response_model=schemas.FinesOut)
def person_fines(person_id: str, db: Session = Depends(get_db), settings: Settings = Depends(get_settings)):
    total = borrows.get_total_unpaid_fines(db, person_id, settings=settings)
    return schemas.FinesOut(person_id=person_id, total_unpaid=total, can_borrow=total == 0)


# -----------------------------
# Entries (check-in / check-out)
# -----------------------------
@router.post("/entries/check-in", response_model=schemas.EntryOut)
def check_in(body: schemas.CheckInRequest, db: Session = Depends(get_db)):
    return entries.check_in(db, body.person_id, body.purpose, name=body.name)


@router.post("/entries/check-out", response_model=schemas.EntryOut)
def check_out(body: schemas.CheckOutRequest, db: Session = Depends(get_db)):
    return entries.check_out(db, body.person_id)


@router.post("/entries/scan", response_model=schemas.ScanOut)
def scan(body: schemas.CheckInRequest, db: Session = Depends(get_db)):
    action, entry = entries.scan(db, body.person_id, body.purpose, name=body.name)
    return schemas.ScanOut(action=action, entry=schemas.EntryOut.model_validate(entry))


@router.get("/entries/", response_model=List[schemas.EntryOut])
def list_entries(
    limit: int = 100,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    return entries.list_recent(db, limit=limit, settings=settings)


@router.get("/entries/latest/{person_id}", response_model=Optional[schemas.EntryOut])
def latest_entry(person_id: str, db: Session = Depends(get_db)):
    return entries.latest_entry(db, person_id)


# -----------------------------
# Books
# -----------------------------
@router.post("/books/", response_model=schemas.BookOut, dependencies=[Depends(require_admin)])
def create_book(book_in: schemas.BookCreate, db: Session = Depends(get_db)):
    return catalog.add_book(db, book_in.model_dump())


@router.get("/books/", response_model=List[schemas.BookOut])
def list_books(
    q: Optional[str] = Query(None, description="search title, author or ISBN"),
    category: Optional[str] = None,
    skip: int = 0,
    limit: int = 20,
    db: Session = Depends(get_db),
):
    return catalog.list_books(db, q=q, category=category, skip=skip, limit=limit)


@router.get("/books/categories", response_model=List[str])
def book_categories(db: Session = Depends(get_db)):
    return catalog.categories(db)


@router.get("/books/{book_id}", response_model=schemas.BookOut)
def read_book(book_id: int, db: Session = Depends(get_db)):
    return catalog.get_book(db, book_id)


@router.patch("/books/{book_id}", response_model=schemas.BookOut, dependencies=[Depends(require_admin)])
def update_book(book_id: int, book_upd: schemas.BookUpdate, db: Session = Depends(get_db)):
    return catalog.update_book(db, book_id, book_upd.model_dump(exclude_unset=True))


@router.delete("/books/{book_id}", dependencies=[Depends(require_admin)])
def delete_book(book_id: int, db: Session = Depends(get_db)):
    catalog.soft_delete_book(db, book_id)
    return {"ok": True}


# -----------------------------
# Borrowing
# -----------------------------
@router.post("/borrows/", response_model=schemas.BorrowOut)
def request_borrow(
    body: schemas.BorrowCreate,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    record = borrows.request_borrow(db, body.book_id, body.person_id, body.person_name, settings=settings)
    return _single_borrow_out(record, settings)


@router.get("/borrows/", response_model=List[schemas.BorrowOut])
def list_borrows(
    person_id: Optional[str] = None,
    status: Optional[str] = None,
    book_id: Optional[int] = None,
    overdue: Optional[bool] = None,
    skip: int = 0,
    limit: int = 50,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    pairs = borrows.list_borrow_records(
        db, person_id=person_id, status=status, book_id=book_id, overdue=overdue,
        skip=skip, limit=limit, settings=settings,
    )
    return [borrow_out(record, assessment) for record, assessment in pairs]


@router.get("/borrows/{borrow_id}", response_model=schemas.BorrowOut)
def read_borrow(borrow_id: int, db: Session = Depends(get_db), settings: Settings = Depends(get_settings)):
    return _single_borrow_out(borrows.get_borrow(db, borrow_id), settings)


@router.post("/borrows/{borrow_id}/approve", response_model=schemas.BorrowOut, dependencies=[Depends(require_admin)])
def approve_borrow(
    borrow_id: int,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    sink: StoreNotificationSink = Depends(get_sink),
):
    record = borrows.approve_borrow(db, borrow_id, settings=settings, sink=sink)
    return _single_borrow_out(record, settings)


@router.post("/borrows/{borrow_id}/reject", response_model=schemas.BorrowOut, dependencies=[Depends(require_admin)])
def reject_borrow(
    borrow_id: int,
    body: Optional[schemas.RejectRequest] = None,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    sink: StoreNotificationSink = Depends(get_sink),
):
    record = borrows.reject_borrow(db, borrow_id, reason=body.reason if body else None, sink=sink)
    return _single_borrow_out(record, settings)


@router.post("/borrows/{borrow_id}/return", response_model=schemas.BorrowOut, dependencies=[Depends(require_admin)])
def return_book(
    borrow_id: int,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    sink: StoreNotificationSink = Depends(get_sink),
):
    record = borrows.return_book(db, borrow_id, settings=settings, sink=sink)
    return _single_borrow_out(record, settings)


@router.post("/borrows/{borrow_id}/lost", response_model=schemas.BorrowOut, dependencies=[Depends(require_admin)])
def mark_lost(
    borrow_id: int,
    body: schemas.LostRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    sink: StoreNotificationSink = Depends(get_sink),
):
    record = borrows.mark_lost(db, borrow_id, body.penalty, sink=sink)
    return _single_borrow_out(record, settings)


@router.post("/borrows/{borrow_id}/pay", response_model=schemas.BorrowOut, dependencies=[Depends(require_admin)])
def mark_fine_paid(
    borrow_id: int,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    sink: StoreNotificationSink = Depends(get_sink),
):
    record = borrows.mark_fine_paid(db, borrow_id, settings=settings, sink=sink)
    return _single_borrow_out(record, settings)


@router.post("/borrows/{borrow_id}/remind", response_model=schemas.BorrowOut, dependencies=[Depends(require_admin)])
def send_reminder(
    borrow_id: int,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    sink: StoreNotificationSink = Depends(get_sink),
):
    record = borrows.send_overdue_reminder(db, borrow_id, settings=settings, sink=sink)
    return _single_borrow_out(record, settings)


# -----------------------------
# Notifications
# -----------------------------
@router.get("/notifications/{person_id}", response_model=List[schemas.NotificationOut])
def list_notifications(person_id: str, limit: int = 20, db: Session = Depends(get_db)):
    return notifications.list_notifications(db, person_id, limit=limit)


@router.post("/notifications/{notification_id}/read", response_model=schemas.NotificationOut)
def mark_notification_read(notification_id: int, db: Session = Depends(get_db)):
    return notifications.mark_read(db, notification_id)


@router.post("/notifications/read-all/{person_id}")
def mark_all_notifications_read(person_id: str, db: Session = Depends(get_db)):
    return {"updated": notifications.mark_all_read(db, person_id)}


# -----------------------------
# Dashboard counters
# -----------------------------
@router.get("/stats", response_model=schemas.StatsOut)
def stats(db: Session = Depends(get_db), settings: Settings = Depends(get_settings)):
    status_counts = dict(
        db.query(models.BorrowRecord.status, func.count(models.BorrowRecord.id))
        .group_by(models.BorrowRecord.status)
        .all()
    )
    open_records = (
        db.query(models.BorrowRecord)
        .filter(models.BorrowRecord.status.in_([
            models.BorrowStatus.APPROVED.value, models.BorrowStatus.LOST.value,
        ]))
        .all()
    )
    now = utcnow()
    assessed = [fines.assess(r, now, settings.fine_per_day) for r in open_records]
    return schemas.StatsOut(
        people_inside=entries.count_inside(db),
        total_books=db.query(func.count(models.Book.id)).filter(models.Book.deleted == False).scalar(),  # noqa: E712
        pending_requests=status_counts.get(models.BorrowStatus.PENDING.value, 0),
        active_borrows=status_counts.get(models.BorrowStatus.APPROVED.value, 0),
        overdue_borrows=sum(1 for a in assessed if a.is_overdue),
        outstanding_fines=sum(a.outstanding for a in assessed),
        categories=catalog.categories(db),
    )
