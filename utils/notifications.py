from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional

from flask import current_app

from extensions import db
from models import FollowUp, Notification, Payment, Student
from utils.timezone_helpers import to_local

OVERDUE = "overdue"
DUE_SOON = "due_date"
FOLLOW_UP = "follow_up"

TYPE_COLORS = {
    OVERDUE: "text-red-600",
    DUE_SOON: "text-amber-600",
    FOLLOW_UP: "text-blue-600",
}


@dataclass(frozen=True)
class DerivedNotification:
    key: str
    type: str
    student_id: str
    student_name: str
    message: str
    due_date: Optional[date] = None


def _as_date(value) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    return value


def derive_notifications(
    students: Iterable,
    payments: Iterable,
    follow_ups: Iterable,
    now: datetime,
    due_soon_days: int = 3,
    stale_days: int = 7,
) -> List[DerivedNotification]:
    """Classify already-fetched rows into overdue, due-soon and follow-up notices.

    Output depends only on the inputs: keys are built from row ids and the
    result is sorted, so the same snapshot always yields the same list.
    ``now`` is naive UTC; due dates are local dates, so "today" is taken in
    the app timezone.
    """
    students = list(students)
    names = {s.id: s.full_name for s in students}
    today = to_local(now).date()
    horizon = today + timedelta(days=due_soon_days)

    overdue: List[DerivedNotification] = []
    due_soon: List[DerivedNotification] = []
    for p in payments:
        due = _as_date(p.due_date)
        if p.paid or due is None or p.student_id not in names:
            continue
        if due < today:
            overdue.append(DerivedNotification(
                key=f"overdue-{p.id}", type=OVERDUE, student_id=p.student_id,
                student_name=names[p.student_id], message="Overdue payment", due_date=due,
            ))
        elif due <= horizon:
            due_soon.append(DerivedNotification(
                key=f"due-{p.id}", type=DUE_SOON, student_id=p.student_id,
                student_name=names[p.student_id], message="Payment due soon", due_date=due,
            ))

    last_contact: Dict[str, datetime] = {}
    for f in follow_ups:
        seen = last_contact.get(f.student_id)
        if seen is None or f.created_at > seen:
            last_contact[f.student_id] = f.created_at

    cutoff = now - timedelta(days=stale_days)
    stale: List[DerivedNotification] = []
    for s in students:
        reference = last_contact.get(s.id) or s.joining_date or s.created_at
        if reference is None or reference < cutoff:
            stale.append(DerivedNotification(
                key=f"followup-{s.id}", type=FOLLOW_UP, student_id=s.id,
                student_name=s.full_name, message=f"Needs follow-up ({stale_days}+ days)",
            ))

    overdue.sort(key=lambda n: (n.due_date, n.key))
    due_soon.sort(key=lambda n: (n.due_date, n.key))
    stale.sort(key=lambda n: (n.student_name, n.key))
    return overdue + due_soon + stale


def current_notifications(now: Optional[datetime] = None) -> List[DerivedNotification]:
    """Load students, unpaid dated payments and follow-ups, then derive."""
    cfg = current_app.config
    students = Student.query.all()
    payments = Payment.query.filter(Payment.paid.is_(False), Payment.due_date.isnot(None)).all()
    follow_ups = db.session.query(FollowUp.student_id, FollowUp.created_at).all()
    return derive_notifications(
        students,
        payments,
        follow_ups,
        now or datetime.utcnow(),
        due_soon_days=cfg.get("DUE_SOON_DAYS", 3),
        stale_days=cfg.get("FOLLOW_UP_STALE_DAYS", 7),
    )


def refresh_notifications(now: Optional[datetime] = None) -> Dict[str, int]:
    """Sync the stored notification table with a fresh derivation.

    New keys are inserted, surviving keys keep their read flag, vanished keys
    are deleted. Returns counts for logging.
    """
    derived = current_notifications(now)
    by_key = {n.key: n for n in derived}
    stored = {row.key: row for row in Notification.query.all()}

    added = updated = removed = 0
    for key, row in stored.items():
        if key not in by_key:
            db.session.delete(row)
            removed += 1
    for key, n in by_key.items():
        row = stored.get(key)
        if row is None:
            db.session.add(Notification(
                key=n.key, type=n.type, student_id=n.student_id,
                student_name=n.student_name, message=n.message, due_date=n.due_date,
            ))
            added += 1
        elif (row.student_name, row.message, row.due_date) != (n.student_name, n.message, n.due_date):
            row.student_name = n.student_name
            row.message = n.message
            row.due_date = n.due_date
            updated += 1
    db.session.commit()
    return {"total": len(derived), "added": added, "updated": updated, "removed": removed}


def unread_count() -> int:
    return Notification.query.filter_by(is_read=False).count()
