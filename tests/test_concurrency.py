import threading
from dataclasses import replace
from datetime import datetime

import pytest
from sqlalchemy.exc import IntegrityError

from libledger.core.errors import OutOfStock, PreconditionFailed
from libledger.models.models import Book, BorrowRecord, Entry, OpenSession
from libledger.services import borrows, catalog, entries

T0 = datetime(2025, 7, 1, 10, 0, 0)


def run_together(session_factory, calls):
    """Run each ``call(session)`` on its own thread and session, released at once."""
    barrier = threading.Barrier(len(calls))
    results = [None] * len(calls)

    def worker(i, call):
        session = session_factory()
        try:
            barrier.wait()
            results[i] = call(session)
        except Exception as exc:
            results[i] = exc
        finally:
            session.close()

    threads = [threading.Thread(target=worker, args=(i, call)) for i, call in enumerate(calls)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return results


def make_requests(db, settings, copies, count):
    book = catalog.add_book(db, {"title": "Noli Me Tangere", "author": "Jose Rizal", "total_copies": copies})
    ids = [borrows.request_borrow(db, book.id, f"S-{i}", settings=settings, now=T0).id for i in range(count)]
    return book.id, ids


def test_parallel_approvals_keep_stock_in_bounds(db, session_factory, settings):
    book_id, ids = make_requests(db, settings, copies=3, count=8)

    results = run_together(
        session_factory,
        [lambda s, i=i: borrows.approve_borrow(s, i, settings=settings).status for i in ids],
    )

    assert results == ["approved"] * 8
    db.expire_all()
    book = db.get(Book, book_id)
    assert 0 <= book.available_copies <= book.total_copies
    assert book.available_copies == 0


def test_parallel_strict_approvals_never_oversell(db, session_factory, settings):
    strict = replace(settings, strict_inventory=True)
    book_id, ids = make_requests(db, strict, copies=3, count=8)

    results = run_together(
        session_factory,
        [lambda s, i=i: borrows.approve_borrow(s, i, settings=strict).status for i in ids],
    )

    assert results.count("approved") == 3
    assert sum(isinstance(r, OutOfStock) for r in results) == 5
    db.expire_all()
    assert db.get(Book, book_id).available_copies == 0
    approved = db.query(BorrowRecord).filter(BorrowRecord.status == "approved").count()
    assert approved == 3


def test_same_record_approved_twice_in_parallel(db, session_factory, settings):
    book_id, (record_id,) = make_requests(db, settings, copies=2, count=1)

    results = run_together(
        session_factory,
        [lambda s: borrows.approve_borrow(s, record_id, settings=settings).status] * 2,
    )

    assert results.count("approved") == 1
    assert sum(isinstance(r, PreconditionFailed) for r in results) == 1
    db.expire_all()
    assert db.get(Book, book_id).available_copies == 1


def test_parallel_first_check_ins_both_succeed(db, session_factory):
    results = run_together(
        session_factory,
        [lambda s: entries.check_in(s, "S-NEW", "Study", now=T0).id] * 2,
    )

    assert all(isinstance(r, int) for r in results), results
    db.expire_all()
    assert db.query(Entry).filter(Entry.person_id == "S-NEW").count() == 2
    still_open = db.query(Entry).filter(Entry.person_id == "S-NEW", Entry.check_out_at.is_(None)).all()
    assert len(still_open) == 1
    assert db.query(OpenSession).count() == 1
    assert db.get(OpenSession, "S-NEW").entry_id == still_open[0].id


def test_check_in_retries_after_session_collision(db, session_factory, monkeypatch):
    real_open = entries._open_session
    calls = []

    def colliding_open(session, person_id, name, purpose, now):
        calls.append(person_id)
        if len(calls) == 1:
            # another kiosk opens the session between our read and our insert
            other = session_factory()
            try:
                real_open(other, person_id, None, "Printing", now)
            finally:
                other.close()
            raise IntegrityError("INSERT INTO open_sessions", {}, Exception("UNIQUE constraint failed"))
        return real_open(session, person_id, name, purpose, now)

    monkeypatch.setattr(entries, "_open_session", colliding_open)
    entry = entries.check_in(db, "S-7", "Study", now=T0)

    assert len(calls) == 2
    db.expire_all()
    assert db.get(OpenSession, "S-7").entry_id == entry.id
    assert [e.id for e in db.query(Entry).filter(Entry.check_out_at.is_(None))] == [entry.id]


def test_check_in_gives_up_after_second_collision(db, monkeypatch):
    def always_colliding(session, person_id, name, purpose, now):
        raise IntegrityError("INSERT INTO open_sessions", {}, Exception("UNIQUE constraint failed"))

    monkeypatch.setattr(entries, "_open_session", always_colliding)
    with pytest.raises(PreconditionFailed):
        entries.check_in(db, "S-8", "Study", now=T0)
