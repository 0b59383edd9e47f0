"""Change notifications for submissions and exams.

Result and report views subscribe to learn that their data went stale and
should be fetched again. Notifications carry only the table, the operation and
the row id; they are delivered after the transaction commits and dropped if it
rolls back.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List

from sqlalchemy import event
from sqlalchemy.orm import Session

from exam_portal.models import Exam, Submission

logger = logging.getLogger(__name__)

_PENDING_KEY = "pending_change_notifications"


@dataclass(frozen=True)
class ChangeNotification:
    table: str
    operation: str  # "insert" | "update"
    row_id: int


Subscriber = Callable[[ChangeNotification], None]

_subscribers: List[Subscriber] = []


def subscribe(callback: Subscriber) -> Callable[[], None]:
    """Register ``callback``; returns a function that unregisters it."""
    _subscribers.append(callback)

    def unsubscribe() -> None:
        if callback in _subscribers:
            _subscribers.remove(callback)

    return unsubscribe


def publish(notification: ChangeNotification) -> None:
    for callback in list(_subscribers):
        try:
            callback(notification)
        except Exception:
            logger.exception("Change subscriber failed for %s", notification)


def _watched(obj) -> str | None:
    if isinstance(obj, Submission):
        return "submission"
    if isinstance(obj, Exam):
        return "exam"
    return None


@event.listens_for(Session, "after_flush")
def _collect_changes(session, flush_context):
    pending = session.info.setdefault(_PENDING_KEY, [])
    for obj in session.new:
        table = _watched(obj)
        # Exams only notify on update
        if table == "submission":
            pending.append(ChangeNotification(table, "insert", obj.id))
    for obj in session.dirty:
        table = _watched(obj)
        if table and session.is_modified(obj, include_collections=False):
            pending.append(ChangeNotification(table, "update", obj.id))


@event.listens_for(Session, "after_commit")
def _deliver_changes(session):
    pending = session.info.pop(_PENDING_KEY, [])
    seen = set()
    for notification in pending:
        if notification in seen:
            continue
        seen.add(notification)
        publish(notification)


@event.listens_for(Session, "after_rollback")
def _discard_changes(session):
    session.info.pop(_PENDING_KEY, None)
