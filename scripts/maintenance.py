"""
Maintenance utilities for Cohort Desk.

Usage examples:

  python scripts/maintenance.py create-superadmin --email owner@example.com --name "Owner" --password ...
  python scripts/maintenance.py set-password --email owner@example.com --password ...
  python scripts/maintenance.py refresh-notifications

This script connects using SQLALCHEMY_DATABASE_URI (see config.py).
"""

from __future__ import annotations

import argparse
import getpass
import os
import sys

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

os.environ.setdefault("SCHEDULER_ENABLED", "0")

from app import app  # noqa: E402
from utils.auth import ROLE_SUPERADMIN  # noqa: E402
from utils.notifications import refresh_notifications  # noqa: E402
from utils.users import (  # noqa: E402
    UserAdminError,
    create_user,
    get_user_by_email,
    is_superadmin,
    set_user_password,
    set_user_role,
)


def _password(value: str | None) -> str:
    password = value or getpass.getpass("Password: ")
    if len(password) < 6:
        raise SystemExit("Password must be at least 6 characters")
    return password


def cmd_create_superadmin(args) -> int:
    existing = get_user_by_email(args.email)
    if existing is not None:
        if is_superadmin(existing.id):
            print(f"{existing.email} is already a superadmin")
            return 0
        set_user_role(existing.id, ROLE_SUPERADMIN)
        print(f"{existing.email} promoted to superadmin")
        return 0
    try:
        user = create_user(args.email, _password(args.password), args.name, role=ROLE_SUPERADMIN)
    except UserAdminError as exc:
        print(f"Error: {exc}")
        return 1
    print(f"Created superadmin {user.email}")
    return 0


def cmd_set_password(args) -> int:
    user = get_user_by_email(args.email)
    if user is None:
        print(f"No user with email {args.email}")
        return 1
    set_user_password(user.id, _password(args.password))
    print(f"Password updated for {user.email}")
    return 0


def cmd_refresh_notifications(_args) -> int:
    result = refresh_notifications()
    print("Notifications: {total} active ({added} added, {updated} updated, {removed} removed)".format(**result))
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Cohort Desk maintenance")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p = sub.add_parser("create-superadmin", help="Create a superadmin or promote an existing user")
    p.add_argument("--email", required=True)
    p.add_argument("--name", default="Administrator")
    p.add_argument("--password")
    p.set_defaults(func=cmd_create_superadmin)

    p = sub.add_parser("set-password", help="Reset a user's password")
    p.add_argument("--email", required=True)
    p.add_argument("--password")
    p.set_defaults(func=cmd_set_password)

    p = sub.add_parser("refresh-notifications", help="Recompute stored notifications once")
    p.set_defaults(func=cmd_refresh_notifications)

    args = parser.parse_args()
    with app.app_context():
        return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
