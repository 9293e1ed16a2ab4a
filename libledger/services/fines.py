"""Fine calculation.

Overdue state and daily fines are pure functions of a borrow record and the
current time; they are recomputed on every read and never stored. Only the
fields fixed by a human action (``lost_penalty``, ``fine_status``,
``fine_paid_date``) live in the database.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from libledger.models.models import BorrowStatus, FineStatus

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class FineAssessment:
    is_overdue: bool
    days_overdue: int
    fine_amount: float
    # effective status: unpaid when a fine applies and nothing was recorded
    fine_status: Optional[str]

    @property
    def outstanding(self) -> float:
        if self.fine_status == FineStatus.UNPAID.value:
            return self.fine_amount
        return 0.0


def days_overdue(due_date: datetime, now: datetime) -> int:
    """Whole days past due, rounding any started day up; 0 when not past due."""
    if now <= due_date:
        return 0
    return math.ceil((now - due_date) / ONE_DAY)


def assess(record, now: datetime, fine_per_day: float) -> FineAssessment:
    if record.status == BorrowStatus.APPROVED.value and record.return_date is None:
        days = days_overdue(record.due_date, now)
        if days:
            return FineAssessment(
                is_overdue=True,
                days_overdue=days,
                fine_amount=days * fine_per_day,
                fine_status=record.fine_status or FineStatus.UNPAID.value,
            )
    elif record.status == BorrowStatus.LOST.value and record.lost_penalty:
        return FineAssessment(
            is_overdue=False,
            days_overdue=0,
            fine_amount=float(record.lost_penalty),
            fine_status=record.fine_status or FineStatus.UNPAID.value,
        )
    return FineAssessment(False, 0, 0.0, record.fine_status)


def total_unpaid(records: Iterable, now: datetime, fine_per_day: float) -> float:
    return sum(assess(r, now, fine_per_day).outstanding for r in records)
