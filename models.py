import uuid
from datetime import datetime

from extensions import db


def _uuid() -> str:
    return str(uuid.uuid4())


class Student(db.Model):
    __tablename__ = 'students'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    full_name = db.Column(db.String(100), nullable=False, index=True)
    phone = db.Column(db.String(20), nullable=False)
    email = db.Column(db.String(255))
    address = db.Column(db.String(500))
    plan_name = db.Column(db.String(100), nullable=False)
    plan_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    batch = db.Column(db.String(50))
    current_status = db.Column(db.String(40), nullable=False, default='not_started', index=True)
    joining_date = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    tags = db.Column(db.JSON, default=list)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    payments = db.relationship('Payment', backref='student', cascade="all, delete-orphan",
                               order_by='Payment.recorded_at.desc()')
    follow_ups = db.relationship('FollowUp', backref='student', cascade="all, delete-orphan",
                                 order_by='FollowUp.created_at.desc()')
    tasks = db.relationship('Task', backref='student', cascade="all, delete-orphan")
    status_history = db.relationship('StatusHistory', backref='student', cascade="all, delete-orphan",
                                     order_by='StatusHistory.changed_at.desc()')
    audit_entries = db.relationship('StudentAuditLog', backref='student', cascade="all, delete-orphan")
    notifications = db.relationship('Notification', backref='student', cascade="all, delete-orphan")

    def __repr__(self):
        return f'<Student {self.full_name} ({self.plan_name})>'


class Payment(db.Model):
    __tablename__ = 'payments'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    student_id = db.Column(db.String(36), db.ForeignKey('students.id'), nullable=False, index=True)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    method = db.Column(db.String(20), nullable=False)
    note = db.Column(db.String(500))
    screenshot_url = db.Column(db.String(255))
    # Scheduled installments carry a due date and stay unpaid until received
    due_date = db.Column(db.Date)
    paid = db.Column(db.Boolean, nullable=False, default=True)
    recorded_by = db.Column(db.String(36))
    recorded_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self):
        return f'<Payment StudentID={self.student_id} Amount={self.amount} Paid={self.paid}>'


class FollowUp(db.Model):
    __tablename__ = 'follow_ups'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    student_id = db.Column(db.String(36), db.ForeignKey('students.id'), nullable=False, index=True)
    note = db.Column(db.Text, nullable=False)
    created_by = db.Column(db.String(36))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)


class Task(db.Model):
    __tablename__ = 'tasks'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    student_id = db.Column(db.String(36), db.ForeignKey('students.id'), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    due_date = db.Column(db.Date)
    completed = db.Column(db.Boolean, nullable=False, default=False)
    completed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)


class StatusHistory(db.Model):
    __tablename__ = 'status_history'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    student_id = db.Column(db.String(36), db.ForeignKey('students.id'), nullable=False, index=True)
    old_status = db.Column(db.String(40))
    new_status = db.Column(db.String(40), nullable=False)
    changed_by = db.Column(db.String(36))
    changed_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)


class StudentAuditLog(db.Model):
    __tablename__ = 'student_audit_log'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    student_id = db.Column(db.String(36), db.ForeignKey('students.id'), nullable=False, index=True)
    change_type = db.Column(db.String(40), nullable=False, index=True)
    field_name = db.Column(db.String(64))
    old_value = db.Column(db.Text)
    new_value = db.Column(db.Text)
    description = db.Column(db.Text)
    changed_by = db.Column(db.String(36))
    changed_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)


class Notification(db.Model):
    """Stored copy of a derived notification; ``key`` is its stable identity."""

    __tablename__ = 'notifications'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    key = db.Column(db.String(80), nullable=False, unique=True)
    type = db.Column(db.String(20), nullable=False)
    student_id = db.Column(db.String(36), db.ForeignKey('students.id'), nullable=False, index=True)
    student_name = db.Column(db.String(100), nullable=False)
    message = db.Column(db.String(255), nullable=False)
    due_date = db.Column(db.Date)
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    full_name = db.Column(db.String(120), nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    role = db.relationship('UserRole', backref='user', uselist=False, cascade="all, delete-orphan")

    def __repr__(self):
        return f'<User {self.email}>'


class UserRole(db.Model):
    __tablename__ = 'user_roles'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False, unique=True)
    role = db.Column(db.String(20), nullable=False, default='admin')
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
