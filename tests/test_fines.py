from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from libledger.services import fines

DUE = datetime(2025, 3, 1, 12, 0, 0)


def record(status="approved", return_date=None, lost_penalty=None, fine_status=None):
    return SimpleNamespace(
        status=status,
        due_date=DUE,
        return_date=return_date,
        lost_penalty=lost_penalty,
        fine_status=fine_status,
    )


def test_three_days_overdue():
    a = fines.assess(record(), DUE + timedelta(days=3), fine_per_day=5)
    assert a.is_overdue is True
    assert a.days_overdue == 3
    assert a.fine_amount == 15
    assert a.fine_status == "unpaid"
    assert a.outstanding == 15


def test_exactly_due_is_not_overdue():
    a = fines.assess(record(), DUE, fine_per_day=5)
    assert a.is_overdue is False
    assert a.days_overdue == 0
    assert a.fine_amount == 0
    assert a.fine_status is None


@pytest.mark.parametrize("late, days", [
    (timedelta(seconds=1), 1),
    (timedelta(days=1), 1),
    (timedelta(days=1, minutes=1), 2),
])
def test_started_days_round_up(late, days):
    assert fines.assess(record(), DUE + late, fine_per_day=5).days_overdue == days


def test_returned_and_pending_accrue_nothing():
    later = DUE + timedelta(days=10)
    assert fines.assess(record(status="returned", return_date=later), later, 5).fine_amount == 0
    assert fines.assess(record(status="pending"), later, 5).is_overdue is False


def test_lost_uses_penalty_instead_of_daily_rate():
    a = fines.assess(record(status="lost", lost_penalty=50), DUE + timedelta(days=30), 5)
    assert a.is_overdue is False
    assert a.fine_amount == 50
    assert a.fine_status == "unpaid"


def test_paid_fine_is_not_outstanding():
    a = fines.assess(record(fine_status="paid"), DUE + timedelta(days=2), 5)
    assert a.is_overdue is True
    assert a.fine_amount == 10
    assert a.outstanding == 0


def test_total_unpaid_sums_overdue_and_lost():
    now = DUE + timedelta(days=3)
    records = [
        record(),
        record(status="lost", lost_penalty=50),
        record(status="lost", lost_penalty=20, fine_status="paid"),
        record(status="returned", return_date=now),
    ]
    assert fines.total_unpaid(records, now, 5) == 65
