import os
import sys
from dataclasses import asdict
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

# Configure before the app module reads the environment
os.environ.update({
    "SQLALCHEMY_DATABASE_URI": "sqlite://",
    "SESSION_COOKIE_SECURE": "0",
    "ENFORCE_HTTPS": "0",
    "TRUST_PROXY": "0",
    "DISABLE_RATE_LIMITING": "1",
    "SCHEDULER_ENABLED": "0",
    "PERSIST_NOTIFICATIONS": "1",
})

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from app import app as flask_app  # noqa: E402
from extensions import db  # noqa: E402
from models import Student  # noqa: E402
from utils.auth import resolve_auth_context  # noqa: E402
from utils.users import create_user  # noqa: E402


@pytest.fixture
def app(tmp_path):
    flask_app.config.update(TESTING=True, PERSIST_NOTIFICATIONS=True)
    original_static = flask_app.static_folder
    flask_app.static_folder = str(tmp_path / "static")
    with flask_app.app_context():
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()
    flask_app.static_folder = original_static


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make(email="admin@example.com", password="secret123", full_name="Asha Admin", role="admin"):
        return create_user(email, password, full_name, role=role)
    return _make


@pytest.fixture
def admin_user(make_user):
    return make_user()


@pytest.fixture
def superadmin_user(make_user):
    return make_user(email="root@example.com", full_name="Sam Super", role="superadmin")


def login_as(client, user):
    """Put the user's auth context straight into the session cookie."""
    ctx = resolve_auth_context(user.id)
    with client.session_transaction() as sess:
        sess["auth"] = asdict(ctx)


@pytest.fixture
def auth_client(client, admin_user):
    login_as(client, admin_user)
    return client


@pytest.fixture
def super_client(client, superadmin_user):
    login_as(client, superadmin_user)
    return client


@pytest.fixture
def make_student(app):
    def _make(**overrides):
        data = {
            "full_name": "Ravi Kumar",
            "phone": "9876543210",
            "email": "ravi@example.com",
            "plan_name": "Starter Kit",
            "plan_amount": Decimal("6999.00"),
            "current_status": "not_started",
            "joining_date": datetime.utcnow() - timedelta(days=1),
            "tags": [],
        }
        data.update(overrides)
        student = Student(**data)
        db.session.add(student)
        db.session.commit()
        return student
    return _make
