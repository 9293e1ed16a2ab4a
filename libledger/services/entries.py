"""Entry ledger: who is physically inside the library.

Each person has at most one open session, tracked by an explicit row in
``open_sessions`` rather than inferred from the newest entry. Check-in moves
the pointer, check-out removes it with a compare-and-swap on ``entry_id`` so
a check-out can never close a session that a concurrent check-in replaced.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from libledger.core.config import Settings, get_settings
from libledger.core.database import atomic, utcnow
from libledger.core.errors import AlreadyClosed, NotFound, PreconditionFailed
from libledger.core.log import get_logger
from libledger.models.models import Entry, OpenSession
from libledger.services.people import display_name

logger = get_logger("entries")


def _close_entry(db: Session, entry_id: int, now: datetime) -> int:
    return (
        db.query(Entry)
        .filter(Entry.id == entry_id, Entry.check_out_at.is_(None))
        .update({Entry.check_out_at: now}, synchronize_session=False)
    )


def _open_session(db: Session, person_id: str, name: Optional[str], purpose: str, now: datetime) -> Entry:
    with atomic(db):
        session = (
            db.query(OpenSession)
            .filter(OpenSession.person_id == person_id)
            .with_for_update()
            .first()
        )
        entry = Entry(person_id=person_id, name=name, purpose=purpose, check_in_at=now)
        db.add(entry)
        db.flush()
        if session is None:
            db.add(OpenSession(person_id=person_id, entry_id=entry.id))
        else:
            previous = session.entry_id
            _close_entry(db, previous, now)
            moved = (
                db.query(OpenSession)
                .filter(OpenSession.person_id == person_id, OpenSession.entry_id == previous)
                .update({OpenSession.entry_id: entry.id}, synchronize_session=False)
            )
            if not moved:
                raise PreconditionFailed(f"Session of {person_id} changed during check-in")
            logger.warning(f"Person {person_id} checked in again; closed entry {previous}")
    return entry


def check_in(
    db: Session,
    person_id: str,
    purpose: str = "",
    name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Entry:
    """Open a new entry for ``person_id``, closing any entry still open.

    A first check-in that collides with a concurrent one on the session row is
    retried once against the session the other caller created.
    """
    now = now or utcnow()
    name = name or display_name(db, person_id)
    try:
        entry = _open_session(db, person_id, name, purpose, now)
    except IntegrityError:
        logger.info(f"Check-in for {person_id} raced another check-in; retrying")
        try:
            entry = _open_session(db, person_id, name, purpose, now)
        except IntegrityError as exc:
            raise PreconditionFailed(f"Concurrent check-in for {person_id}") from exc
    db.refresh(entry)
    logger.info(f"Checked in {person_id} entry={entry.id} purpose={purpose!r}")
    return entry


def check_out(db: Session, person_id: str, now: Optional[datetime] = None) -> Entry:
    now = now or utcnow()
    with atomic(db):
        session = (
            db.query(OpenSession)
            .filter(OpenSession.person_id == person_id)
            .with_for_update()
            .first()
        )
        if session is None:
            if latest_entry(db, person_id) is None:
                raise NotFound(f"No check-in record found for {person_id}")
            raise AlreadyClosed(f"{person_id} is already checked out")
        entry_id = session.entry_id
        removed = (
            db.query(OpenSession)
            .filter(OpenSession.person_id == person_id, OpenSession.entry_id == entry_id)
            .delete(synchronize_session=False)
        )
        if not removed or not _close_entry(db, entry_id, now):
            raise AlreadyClosed(f"{person_id} is already checked out")
    entry = db.get(Entry, entry_id)
    logger.info(f"Checked out {person_id} entry={entry_id}")
    return entry


def latest_entry(db: Session, person_id: str) -> Optional[Entry]:
    return (
        db.query(Entry)
        .filter(Entry.person_id == person_id)
        .order_by(Entry.check_in_at.desc(), Entry.id.desc())
        .first()
    )


def scan(
    db: Session,
    person_id: str,
    purpose: str = "",
    name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Tuple[str, Entry]:
    """Kiosk toggle: close the open session if there is one, otherwise open one."""
    latest = latest_entry(db, person_id)
    if latest is not None and latest.check_out_at is None:
        return "check_out", check_out(db, person_id, now=now)
    return "check_in", check_in(db, person_id, purpose, name=name, now=now)


def list_recent(db: Session, limit: int = 100, settings: Optional[Settings] = None) -> List[Entry]:
    settings = settings or get_settings()
    limit = min(max(1, limit), settings.recent_entries_limit)
    return (
        db.query(Entry)
        .order_by(Entry.check_in_at.desc(), Entry.id.desc())
        .limit(limit)
        .all()
    )


def count_inside(db: Session) -> int:
    return db.query(OpenSession).count()
