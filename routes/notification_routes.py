from __future__ import annotations

from flask import Blueprint, current_app, flash, jsonify, redirect, render_template, request, url_for
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import Notification
from utils import login_required
from utils.notifications import TYPE_COLORS, current_notifications, refresh_notifications, unread_count

notification_bp = Blueprint("notifications", __name__, url_prefix="/notifications")

_TYPE_ORDER = {"overdue": 0, "due_date": 1, "follow_up": 2}


def _persisted() -> bool:
    return bool(current_app.config.get("PERSIST_NOTIFICATIONS", True))


def _items():
    """Notifications as dicts; stored rows when persisted, otherwise freshly derived."""
    if _persisted():
        rows = Notification.query.all()
        rows.sort(key=lambda n: (n.is_read, _TYPE_ORDER.get(n.type, 9), n.due_date or n.created_at.date(), n.key))
        return [
            {
                "id": n.id,
                "key": n.key,
                "type": n.type,
                "student_id": n.student_id,
                "student_name": n.student_name,
                "message": n.message,
                "due_date": n.due_date.isoformat() if n.due_date else None,
                "is_read": n.is_read,
                "color": TYPE_COLORS.get(n.type, "text-slate-600"),
            }
            for n in rows
        ]
    return [
        {
            "id": None,
            "key": n.key,
            "type": n.type,
            "student_id": n.student_id,
            "student_name": n.student_name,
            "message": n.message,
            "due_date": n.due_date.isoformat() if n.due_date else None,
            "is_read": False,
            "color": TYPE_COLORS.get(n.type, "text-slate-600"),
        }
        for n in current_notifications()
    ]


@notification_bp.route("/")
@login_required
def index():
    items = _items()
    return render_template("notifications.html", items=items, persisted=_persisted())


@notification_bp.route("/api")
@login_required
def api():
    items = _items()
    unread = sum(1 for i in items if not i["is_read"])
    return jsonify({"notifications": items, "unread": unread})


@notification_bp.route("/refresh", methods=["POST"])
@login_required
def refresh():
    """Recompute now instead of waiting for the next scheduled run."""
    if not _persisted():
        result = {"total": len(current_notifications()), "added": 0, "updated": 0, "removed": 0}
    else:
        try:
            result = refresh_notifications()
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception("Notification refresh failed")
            if request.is_json or request.accept_mimetypes.best == "application/json":
                return jsonify({"error": "Refresh failed"}), 500
            flash("Could not refresh notifications. Please try again.", "error")
            return redirect(url_for("notifications.index"))

    current_app.logger.info("Notifications refreshed on demand: %s", result)
    if request.is_json or request.accept_mimetypes.best == "application/json":
        return jsonify(result)
    flash(f"Notifications refreshed ({result['total']} active).", "success")
    return redirect(url_for("notifications.index"))


@notification_bp.route("/<notification_id>/read", methods=["POST"])
@login_required
def mark_read(notification_id):
    n = db.get_or_404(Notification, notification_id)
    try:
        n.is_read = True
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to mark notification %s read", notification_id)
        flash("Could not update the notification.", "error")
        return redirect(url_for("notifications.index"))
    if request.is_json:
        return jsonify({"ok": True, "unread": unread_count()})
    return redirect(url_for("notifications.index"))
