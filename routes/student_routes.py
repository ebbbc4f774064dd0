from __future__ import annotations

import csv
from datetime import datetime
from io import StringIO

from flask import (
    Blueprint,
    Response,
    current_app,
    flash,
    jsonify,
    redirect,
    render_template,
    request,
    url_for,
)
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import Payment, StatusHistory, Student
from utils import login_required
from utils.audit import audit_feed, record_change, record_field_changes
from utils.auth import current_auth
from utils.ledger import paid_by_student, settled_amounts, summarize_payments
from utils.statuses import STATUSES, is_valid_status, status_info, status_label
from utils.storage import delete_payment_screenshot, screenshot_url
from utils.timezone_helpers import local_now
from utils.validation import PAYMENT_METHODS, ValidationError, validate_student

student_bp = Blueprint('students', __name__, url_prefix='/students')

_EDITABLE_FIELDS = ("full_name", "phone", "email", "address", "plan_name", "plan_amount", "batch", "tags")


def _directory_rows(args):
    """Students joined with their payment summary, filtered by the query string.

    Filters: ``q`` (name, phone, email, plan or tag), ``status``, ``plan`` and
    ``due=1`` for students who still owe money.
    """
    q = (args.get('q') or '').strip().lower()
    status = (args.get('status') or '').strip()
    plan = (args.get('plan') or '').strip()
    due_only = (args.get('due') or '') in ('1', 'on', 'true', 'yes')

    query = Student.query
    if status:
        query = query.filter(Student.current_status == status)
    if plan:
        query = query.filter(Student.plan_name == plan)
    students = query.order_by(Student.created_at.desc()).all()
    paid = paid_by_student(Payment.query.filter(Payment.student_id.in_([s.id for s in students])).all()) if students else {}

    rows = []
    for s in students:
        if q:
            haystack = [s.full_name, s.phone, s.email, s.plan_name] + list(s.tags or [])
            if not any(q in (value or '').lower() for value in haystack):
                continue
        summary = summarize_payments(s.plan_amount, [paid.get(s.id, 0)])
        if due_only and summary.due <= 0:
            continue
        rows.append({"student": s, "summary": summary, "status": status_info(s.current_status)})
    return rows


def _export_record(row):
    s, summary = row["student"], row["summary"]
    return {
        "id": s.id,
        "full_name": s.full_name,
        "phone": s.phone,
        "email": s.email or "",
        "plan_name": s.plan_name,
        "plan_amount": f"{summary.plan_amount:.2f}",
        "paid": f"{summary.paid:.2f}",
        "due": f"{summary.due:.2f}",
        "credit": f"{summary.credit:.2f}",
        "status": row["status"].label,
        "batch": s.batch or "",
        "tags": ", ".join(s.tags or []),
        "joining_date": s.joining_date.strftime('%Y-%m-%d') if s.joining_date else "",
    }


@student_bp.route('/')
@login_required
def view_students():
    rows = _directory_rows(request.args)
    return render_template(
        'students.html',
        rows=rows,
        statuses=STATUSES,
        plans=current_app.config['PLAN_OPTIONS'],
        filters=request.args,
    )


@student_bp.route('/export.csv')
@login_required
def export_csv():
    records = [_export_record(r) for r in _directory_rows(request.args)]
    output = StringIO()
    fieldnames = ["id", "full_name", "phone", "email", "plan_name", "plan_amount", "paid", "due",
                  "credit", "status", "batch", "tags", "joining_date"]
    writer = csv.DictWriter(output, fieldnames=fieldnames)
    writer.writeheader()
    writer.writerows(records)
    stamp = local_now().strftime("%Y%m%d")
    return Response(
        output.getvalue(),
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename=students_{stamp}.csv'},
    )


@student_bp.route('/export.json')
@login_required
def export_json():
    records = [_export_record(r) for r in _directory_rows(request.args)]
    return jsonify({"count": len(records), "students": records})


@student_bp.route('/add', methods=['GET', 'POST'])
@login_required
def add_student():
    plans = current_app.config['PLAN_OPTIONS']
    if request.method == 'POST':
        try:
            data = validate_student(request.form, plans)
        except ValidationError as exc:
            flash(str(exc), 'warning')
            return render_template('student_form.html', plans=plans, form=request.form, student=None), 400

        student = Student(**data)
        try:
            db.session.add(student)
            db.session.flush()
            record_change(student.id, "created", description=f"Student {student.full_name} enrolled on {student.plan_name}")
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception("Failed to add student")
            flash('Could not save the student. Please try again.', 'error')
            return render_template('student_form.html', plans=plans, form=request.form, student=None), 500

        current_app.logger.info("Student %s added", student.id)
        flash('Student added successfully!', 'success')
        return redirect(url_for('students.profile', student_id=student.id))

    return render_template('student_form.html', plans=plans, form={}, student=None)


@student_bp.route('/<student_id>')
@login_required
def profile(student_id):
    """Everything about one student: info, status, payments, follow-ups, tasks, audit."""
    student = db.get_or_404(Student, student_id)
    summary = summarize_payments(student.plan_amount, settled_amounts(student.payments))
    payments = [
        {"payment": p, "screenshot": screenshot_url(p.screenshot_url)}
        for p in student.payments
    ]
    tasks = sorted(student.tasks, key=lambda t: (t.completed, t.due_date or datetime.max.date(), t.created_at))
    return render_template(
        'student_profile.html',
        student=student,
        summary=summary,
        status=status_info(student.current_status),
        statuses=STATUSES,
        payments=payments,
        payment_methods=PAYMENT_METHODS,
        follow_ups=student.follow_ups,
        tasks=tasks,
        history=student.status_history,
        audit=audit_feed(student.id),
        today=local_now().date(),
    )


@student_bp.route('/<student_id>/edit', methods=['GET', 'POST'])
@login_required
def edit_student(student_id):
    student = db.get_or_404(Student, student_id)
    plans = current_app.config['PLAN_OPTIONS']
    if request.method == 'POST':
        try:
            data = validate_student(request.form, plans)
        except ValidationError as exc:
            flash(str(exc), 'warning')
            return render_template('student_form.html', plans=plans, form=request.form, student=student), 400

        before = {field: getattr(student, field) for field in _EDITABLE_FIELDS}
        try:
            for field, value in data.items():
                setattr(student, field, value)
            changed = record_field_changes(student.id, before, data)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception("Failed to update student %s", student_id)
            flash('Could not save changes. Please try again.', 'error')
            return redirect(url_for('students.edit_student', student_id=student_id))

        flash('Student updated.' if changed else 'No changes to save.', 'success' if changed else 'info')
        return redirect(url_for('students.profile', student_id=student.id))

    form = {
        "full_name": student.full_name,
        "phone": student.phone,
        "email": student.email or "",
        "address": student.address or "",
        "plan_name": student.plan_name,
        "batch": student.batch or "",
        "tags": ", ".join(student.tags or []),
    }
    return render_template('student_form.html', plans=plans, form=form, student=student)


@student_bp.route('/<student_id>/status', methods=['POST'])
@login_required
def change_status(student_id):
    """Set the status directly; any status may follow any other."""
    student = db.get_or_404(Student, student_id)
    new_status = (request.form.get('status') or '').strip()
    if not is_valid_status(new_status):
        flash('Unknown status.', 'warning')
        return redirect(url_for('students.profile', student_id=student_id))
    old_status = student.current_status
    if new_status == old_status:
        flash('Status unchanged.', 'info')
        return redirect(url_for('students.profile', student_id=student_id))

    auth = current_auth()
    try:
        student.current_status = new_status
        db.session.add(StatusHistory(
            student_id=student.id,
            old_status=old_status,
            new_status=new_status,
            changed_by=auth.user_id if auth else None,
        ))
        record_change(
            student.id,
            "status_change",
            description=f"Status changed to {status_label(new_status)}",
            field_name="current_status",
            old_value=old_status,
            new_value=new_status,
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to change status for %s", student_id)
        flash('Could not update the status. Please try again.', 'error')
        return redirect(url_for('students.profile', student_id=student_id))

    flash(f'Status updated to {status_info(new_status).label}.', 'success')
    return redirect(url_for('students.profile', student_id=student_id))


@student_bp.route('/<student_id>/delete', methods=['POST'])
@login_required
def delete_student(student_id):
    student = db.get_or_404(Student, student_id)
    screenshots = [p.screenshot_url for p in student.payments if p.screenshot_url]
    name = student.full_name
    try:
        db.session.delete(student)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to delete student %s", student_id)
        flash('Could not delete the student. Please try again.', 'error')
        return redirect(url_for('students.profile', student_id=student_id))

    for rel in screenshots:
        delete_payment_screenshot(rel)
    current_app.logger.info("Student %s deleted", student_id)
    flash(f'{name} was deleted.', 'success')
    return redirect(url_for('students.view_students'))
