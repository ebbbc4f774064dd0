from datetime import datetime

from flask import Blueprint, request, redirect, url_for, flash, current_app
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import Payment, Student
from utils import login_required
from utils.audit import record_change
from utils.auth import current_auth
from utils.ledger import amount_due, format_money, settled_amounts
from utils.storage import delete_payment_screenshot, save_payment_screenshot
from utils.validation import PAYMENT_METHODS, ValidationError, validate_payment

fee_bp = Blueprint('fees', __name__)


def _money(value):
    return format_money(value, current_app.config.get('CURRENCY_SYMBOL', '₹'))


def _uploaded_screenshot():
    file = request.files.get('screenshot')
    if file is None or not file.filename:
        return None
    return file


@fee_bp.route('/students/<student_id>/payments', methods=['POST'])
@login_required
def add_payment(student_id):
    """Record a received payment (with screenshot) or schedule an installment."""
    student = db.get_or_404(Student, student_id)
    profile_url = url_for('students.profile', student_id=student_id)
    due = amount_due(student.plan_amount, settled_amounts(student.payments))
    screenshot = _uploaded_screenshot()

    try:
        data = validate_payment(request.form, due, has_screenshot=screenshot is not None)
    except ValidationError as exc:
        flash(str(exc), 'warning')
        return redirect(profile_url)

    rel_path = None
    if screenshot is not None:
        try:
            rel_path = save_payment_screenshot(screenshot, student.id)
        except ValueError as exc:
            flash(f'{exc}. Use PNG, JPG, WEBP or PDF.', 'warning')
            return redirect(profile_url)
        except OSError:
            current_app.logger.exception("Failed to store screenshot for student %s", student_id)
            flash('Could not upload the screenshot. Please try again.', 'error')
            return redirect(profile_url)

    auth = current_auth()
    payment = Payment(
        student_id=student.id,
        screenshot_url=rel_path,
        recorded_by=auth.user_id if auth else None,
        **data,
    )
    method_label = PAYMENT_METHODS[data['method']]
    if payment.paid:
        description = f"Payment of {_money(payment.amount)} received via {method_label}"
    else:
        description = f"Installment of {_money(payment.amount)} scheduled for {data['due_date']:%d %b %Y}"
    try:
        db.session.add(payment)
        db.session.flush()
        record_change(student.id, "payment_added", description=description, new_value=str(payment.amount))
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        delete_payment_screenshot(rel_path)
        current_app.logger.exception("Failed to record payment for student %s", student_id)
        flash('Could not record the payment. Please try again.', 'error')
        return redirect(profile_url)

    current_app.logger.info("Payment %s recorded for student %s (paid=%s)", payment.id, student_id, payment.paid)
    flash('Payment recorded successfully!' if payment.paid else 'Installment scheduled.', 'success')
    return redirect(profile_url)


@fee_bp.route('/payments/<payment_id>/mark_paid', methods=['POST'])
@login_required
def mark_paid(payment_id):
    """Settle a scheduled installment, optionally attaching a screenshot."""
    payment = db.get_or_404(Payment, payment_id)
    student = payment.student
    profile_url = url_for('students.profile', student_id=student.id)
    if payment.paid:
        flash('This payment is already marked as received.', 'info')
        return redirect(profile_url)

    due = amount_due(student.plan_amount, settled_amounts(student.payments))
    if payment.amount > due:
        flash(f'Amount cannot exceed due amount of {_money(due)}', 'warning')
        return redirect(profile_url)

    screenshot = _uploaded_screenshot()
    rel_path = None
    if screenshot is not None:
        try:
            rel_path = save_payment_screenshot(screenshot, student.id)
        except ValueError as exc:
            flash(f'{exc}. Use PNG, JPG, WEBP or PDF.', 'warning')
            return redirect(profile_url)
        except OSError:
            current_app.logger.exception("Failed to store screenshot for payment %s", payment_id)
            flash('Could not upload the screenshot. Please try again.', 'error')
            return redirect(profile_url)

    try:
        payment.paid = True
        payment.recorded_at = datetime.utcnow()
        if rel_path:
            payment.screenshot_url = rel_path
        record_change(
            student.id,
            "payment_received",
            description=f"Installment of {_money(payment.amount)} received",
            new_value=str(payment.amount),
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        delete_payment_screenshot(rel_path)
        current_app.logger.exception("Failed to mark payment %s as paid", payment_id)
        flash('Could not update the payment. Please try again.', 'error')
        return redirect(profile_url)

    flash('Payment marked as received.', 'success')
    return redirect(profile_url)


@fee_bp.route('/payments/<payment_id>/delete', methods=['POST'])
@login_required
def delete_payment(payment_id):
    payment = db.get_or_404(Payment, payment_id)
    student_id = payment.student_id
    rel_path = payment.screenshot_url
    try:
        record_change(
            student_id,
            "payment_deleted",
            description=f"Payment of {_money(payment.amount)} deleted",
            old_value=str(payment.amount),
        )
        db.session.delete(payment)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to delete payment %s", payment_id)
        flash('Could not delete the payment. Please try again.', 'error')
        return redirect(url_for('students.profile', student_id=student_id))

    delete_payment_screenshot(rel_path)
    flash('Payment deleted.', 'success')
    return redirect(url_for('students.profile', student_id=student_id))
