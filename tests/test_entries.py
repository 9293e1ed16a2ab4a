from datetime import datetime, timedelta

import pytest

from libledger.core.errors import AlreadyClosed, NotFound
from libledger.models.models import Entry, OpenSession
from libledger.services import entries, people

T0 = datetime(2025, 5, 5, 8, 0, 0)


def open_entries(db, person_id):
    return db.query(Entry).filter(Entry.person_id == person_id, Entry.check_out_at.is_(None)).all()


def test_check_in_then_out(db):
    entry = entries.check_in(db, "S-1", "Research", name="Ana", now=T0)
    assert entry.check_out_at is None
    assert entries.count_inside(db) == 1

    closed = entries.check_out(db, "S-1", now=T0 + timedelta(hours=2))
    assert closed.id == entry.id
    assert closed.check_out_at == T0 + timedelta(hours=2)
    assert entries.count_inside(db) == 0


def test_second_check_out_fails_without_mutation(db):
    entries.check_in(db, "S-1", "Study", now=T0)
    first = entries.check_out(db, "S-1", now=T0 + timedelta(hours=1))

    with pytest.raises(AlreadyClosed):
        entries.check_out(db, "S-1", now=T0 + timedelta(hours=5))

    db.expire_all()
    assert db.get(Entry, first.id).check_out_at == T0 + timedelta(hours=1)


def test_check_out_without_any_entry(db):
    with pytest.raises(NotFound):
        entries.check_out(db, "ghost")


def test_repeat_check_in_keeps_one_open_session(db):
    first = entries.check_in(db, "S-2", "Study", now=T0)
    second = entries.check_in(db, "S-2", "Printing", now=T0 + timedelta(minutes=30))

    still_open = open_entries(db, "S-2")
    assert [e.id for e in still_open] == [second.id]
    db.expire_all()
    assert db.get(Entry, first.id).check_out_at == T0 + timedelta(minutes=30)
    assert db.get(OpenSession, "S-2").entry_id == second.id


def test_latest_entry_and_recent_listing(db, settings):
    assert entries.latest_entry(db, "S-3") is None
    entries.check_in(db, "S-3", "Study", now=T0)
    entries.check_out(db, "S-3", now=T0 + timedelta(hours=1))
    latest = entries.check_in(db, "S-3", "Return", now=T0 + timedelta(hours=3))
    entries.check_in(db, "S-4", "Study", now=T0 + timedelta(hours=2))

    assert entries.latest_entry(db, "S-3").id == latest.id
    recent = entries.list_recent(db, limit=10, settings=settings)
    assert [e.check_in_at for e in recent] == sorted((e.check_in_at for e in recent), reverse=True)
    assert len(entries.list_recent(db, limit=2, settings=settings)) == 2
    assert len(entries.list_recent(db, limit=0, settings=settings)) == 1


def test_scan_toggles(db):
    action, entry = entries.scan(db, "S-5", "Study", now=T0)
    assert action == "check_in"
    action, closed = entries.scan(db, "S-5", now=T0 + timedelta(hours=1))
    assert action == "check_out"
    assert closed.id == entry.id
    action, _ = entries.scan(db, "S-5", now=T0 + timedelta(hours=2))
    assert action == "check_in"


def test_registered_name_fills_entry(db):
    people.register_person(db, "S-6", "Carla Cruz")
    entry = entries.check_in(db, "S-6", "Study", now=T0)
    assert entry.name == "Carla Cruz"
