"""Notification sinks.

The ledger emits an event after each committed borrow transition. Delivery
is fire-and-forget: a failing sink is logged and never undoes or fails the
transition that triggered it.
"""

from __future__ import annotations

from typing import List, Optional, Protocol

from sqlalchemy.orm import Session

from libledger.core.database import atomic
from libledger.core.errors import NotFound
from libledger.core.log import get_logger
from libledger.models.models import Notification

logger = get_logger("notifications")

SEVERITIES = ("info", "success", "warning", "error")


class NotificationSink(Protocol):
    def emit(
        self,
        person_id: str,
        title: str,
        message: str,
        severity: str = "info",
        related_book_id: Optional[int] = None,
    ) -> None: ...


class LoggingNotificationSink:
    def emit(self, person_id, title, message, severity="info", related_book_id=None):
        logger.info(f"[{severity}] to={person_id} book={related_book_id} {title}: {message}")


class StoreNotificationSink:
    """Persists notifications so person-facing screens can poll them."""

    def __init__(self, db: Session):
        self.db = db

    def emit(self, person_id, title, message, severity="info", related_book_id=None):
        if severity not in SEVERITIES:
            severity = "info"
        try:
            with atomic(self.db):
                self.db.add(Notification(
                    person_id=person_id,
                    title=title,
                    message=message,
                    severity=severity,
                    related_book_id=related_book_id,
                ))
        except Exception:
            logger.exception(f"Failed to store notification '{title}' for {person_id}")


def list_notifications(db: Session, person_id: str, limit: int = 20) -> List[Notification]:
    return (
        db.query(Notification)
        .filter(Notification.person_id == person_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(max(1, limit))
        .all()
    )


def mark_read(db: Session, notification_id: int) -> Notification:
    with atomic(db):
        updated = (
            db.query(Notification)
            .filter(Notification.id == notification_id)
            .update({Notification.read: True}, synchronize_session=False)
        )
        if not updated:
            raise NotFound(f"Notification {notification_id} not found")
    return db.get(Notification, notification_id)


def mark_all_read(db: Session, person_id: str) -> int:
    with atomic(db):
        count = (
            db.query(Notification)
            .filter(Notification.person_id == person_id, Notification.read == False)  # noqa: E712
            .update({Notification.read: True}, synchronize_session=False)
        )
    logger.info(f"Marked {count} notification(s) read for {person_id}")
    return count
