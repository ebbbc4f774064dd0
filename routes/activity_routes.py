from __future__ import annotations

from datetime import datetime, timezone

from flask import Blueprint, current_app, flash, jsonify, redirect, request, url_for
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import FollowUp, Student, Task
from utils import login_required
from utils.audit import audit_feed, record_change
from utils.auth import current_auth
from utils.validation import ValidationError, validate_follow_up, validate_task

activity_bp = Blueprint("activity", __name__)


@activity_bp.route("/students/<student_id>/follow_ups", methods=["POST"])
@login_required
def add_follow_up(student_id):
    student = db.get_or_404(Student, student_id)
    profile_url = url_for("students.profile", student_id=student_id)
    try:
        note = validate_follow_up(request.form)
    except ValidationError as exc:
        flash(str(exc), "warning")
        return redirect(profile_url)

    auth = current_auth()
    try:
        db.session.add(FollowUp(student_id=student.id, note=note, created_by=auth.user_id if auth else None))
        record_change(student.id, "follow_up_created", description="Follow-up added", new_value=note[:200])
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to add follow-up for %s", student_id)
        flash("Could not save the follow-up. Please try again.", "error")
        return redirect(profile_url)

    flash("Follow-up added.", "success")
    return redirect(profile_url)


@activity_bp.route("/students/<student_id>/tasks", methods=["POST"])
@login_required
def add_task(student_id):
    student = db.get_or_404(Student, student_id)
    profile_url = url_for("students.profile", student_id=student_id)
    try:
        data = validate_task(request.form)
    except ValidationError as exc:
        flash(str(exc), "warning")
        return redirect(profile_url)

    try:
        db.session.add(Task(student_id=student.id, **data))
        record_change(student.id, "task_created", description=f"Task created: {data['title']}")
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to add task for %s", student_id)
        flash("Could not save the task. Please try again.", "error")
        return redirect(profile_url)

    flash("Task added.", "success")
    return redirect(profile_url)


@activity_bp.route("/tasks/<task_id>/toggle", methods=["POST"])
@login_required
def toggle_task(task_id):
    """Flip a task between open and completed."""
    task = db.get_or_404(Task, task_id)
    profile_url = url_for("students.profile", student_id=task.student_id)
    try:
        task.completed = not task.completed
        task.completed_at = datetime.utcnow() if task.completed else None
        record_change(
            task.student_id,
            "task_completed" if task.completed else "task_reopened",
            description=f"Task {'completed' if task.completed else 'reopened'}: {task.title}",
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to toggle task %s", task_id)
        flash("Could not update the task. Please try again.", "error")
        return redirect(profile_url)

    flash("Task completed." if task.completed else "Task reopened.", "success")
    return redirect(profile_url)


@activity_bp.route("/students/<student_id>/audit.json")
@login_required
def audit_json(student_id):
    """Audit entries for polling clients; ``since`` is the newest ``changed_at`` already shown."""
    student = db.get_or_404(Student, student_id)
    since = None
    raw = (request.args.get("since") or "").strip()
    if raw:
        try:
            since = datetime.fromisoformat(raw)
        except ValueError:
            return jsonify({"error": "since must be an ISO timestamp"}), 400
        if since.tzinfo is not None:
            since = since.astimezone(timezone.utc).replace(tzinfo=None)
    try:
        limit = min(max(int(request.args.get("limit", 200)), 1), 500)
    except ValueError:
        limit = 200
    entries = audit_feed(student.id, since=since, limit=limit)
    cursor = entries[0]["changed_at"] if entries else raw or None
    return jsonify({"entries": entries, "cursor": cursor})
