from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from flask import g, has_request_context

from extensions import db
from models import StudentAuditLog, User

CHANGE_TYPE_COLORS = {
    "created": "bg-green-100 text-green-700",
    "status_change": "bg-indigo-100 text-indigo-700",
    "update": "bg-blue-100 text-blue-700",
    "payment_added": "bg-emerald-100 text-emerald-700",
    "payment_received": "bg-emerald-100 text-emerald-700",
    "payment_deleted": "bg-red-100 text-red-700",
    "task_created": "bg-purple-100 text-purple-700",
    "task_completed": "bg-cyan-100 text-cyan-700",
    "task_reopened": "bg-slate-100 text-slate-700",
    "follow_up_created": "bg-orange-100 text-orange-700",
    "delete": "bg-red-100 text-red-700",
}

FIELD_LABELS = {
    "current_status": "Status",
    "full_name": "Name",
    "phone": "Phone",
    "email": "Email",
    "address": "Address",
    "plan_name": "Plan",
    "plan_amount": "Plan Amount",
    "batch": "Batch",
    "tags": "Tags",
}


def _actor_id() -> Optional[str]:
    if not has_request_context():
        return None
    auth = getattr(g, "auth", None)
    return auth.user_id if auth else None


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return str(value)


def record_change(
    student_id: str,
    change_type: str,
    description: str | None = None,
    field_name: str | None = None,
    old_value: Any = None,
    new_value: Any = None,
) -> StudentAuditLog:
    """Append an audit entry to the current session; the caller commits."""
    entry = StudentAuditLog(
        student_id=student_id,
        change_type=change_type,
        field_name=field_name,
        old_value=_text(old_value),
        new_value=_text(new_value),
        description=description,
        changed_by=_actor_id(),
        changed_at=datetime.utcnow(),
    )
    db.session.add(entry)
    return entry


def record_field_changes(student_id: str, before: Dict[str, Any], after: Dict[str, Any]) -> int:
    """One ``update`` entry per field whose value differs; returns how many."""
    count = 0
    for field, new in after.items():
        old = before.get(field)
        if _text(old) == _text(new):
            continue
        label = FIELD_LABELS.get(field, field)
        record_change(
            student_id,
            "update",
            description=f"{label} updated",
            field_name=field,
            old_value=old,
            new_value=new,
        )
        count += 1
    return count


def audit_feed(student_id: str, since: datetime | None = None, limit: int = 200) -> List[Dict[str, Any]]:
    """Entries for a student, newest first, with the actor's email attached.

    ``since`` turns this into an incremental feed for pages that poll.
    """
    q = (
        db.session.query(StudentAuditLog, User.email)
        .outerjoin(User, User.id == StudentAuditLog.changed_by)
        .filter(StudentAuditLog.student_id == student_id)
    )
    if since is not None:
        q = q.filter(StudentAuditLog.changed_at > since)
    rows = q.order_by(StudentAuditLog.changed_at.desc()).limit(limit).all()
    return [
        {
            "id": entry.id,
            "change_type": entry.change_type,
            "color": CHANGE_TYPE_COLORS.get(entry.change_type, "bg-slate-100 text-slate-700"),
            "field_name": entry.field_name,
            "field_label": FIELD_LABELS.get(entry.field_name or "", entry.field_name),
            "old_value": entry.old_value,
            "new_value": entry.new_value,
            "description": entry.description,
            "changed_at": entry.changed_at.isoformat(),
            "changed_by": entry.changed_by,
            "user_email": email or "Unknown User",
        }
        for entry, email in rows
    ]
