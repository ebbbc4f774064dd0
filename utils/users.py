from __future__ import annotations

from typing import Dict, List, Optional

from extensions import db
from models import User, UserRole
from utils.auth import ROLE_ADMIN, ROLE_SUPERADMIN, ROLES, normalize_role
from utils.security import hash_password


class UserAdminError(Exception):
    """A user-administration request was refused; ``status`` maps to an HTTP code."""

    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.status = status


def get_user_by_email(email: str) -> Optional[User]:
    return User.query.filter_by(email=(email or "").strip().lower()).first()


def is_superadmin(user_id: Optional[str]) -> bool:
    if not user_id:
        return False
    row = UserRole.query.filter_by(user_id=user_id).first()
    return bool(row and row.role == ROLE_SUPERADMIN)


def list_users_with_roles() -> List[Dict]:
    """Every user, superadmins first. Users without a role row read as admins."""
    rows = (
        db.session.query(User, UserRole)
        .outerjoin(UserRole, UserRole.user_id == User.id)
        .all()
    )
    users = [
        {
            "user_id": user.id,
            "email": user.email,
            "full_name": user.full_name or "Unknown",
            "role": normalize_role(role.role if role else None),
            "is_active": user.is_active,
            "created_at": role.created_at if role else user.created_at,
        }
        for user, role in rows
    ]
    users.sort(key=lambda u: (u["role"] != ROLE_SUPERADMIN, u["full_name"]))
    return users


def create_user(email: str, password: str, full_name: str, role: str = ROLE_ADMIN) -> User:
    if role not in ROLES:
        raise UserAdminError(f"Unknown role: {role}")
    email = (email or "").strip().lower()
    if get_user_by_email(email) is not None:
        raise UserAdminError("A user with this email address has already been registered")
    user = User(email=email, full_name=full_name.strip(), password_hash=hash_password(password))
    user.role = UserRole(role=role)
    db.session.add(user)
    db.session.commit()
    return user


def set_user_role(user_id: str, role: str, acting_user_id: Optional[str] = None) -> UserRole:
    if role not in ROLES:
        raise UserAdminError(f"Unknown role: {role}")
    if db.session.get(User, user_id) is None:
        raise UserAdminError("User not found", 404)
    if user_id == acting_user_id and role != ROLE_SUPERADMIN:
        raise UserAdminError("You cannot remove your own superadmin role")
    row = UserRole.query.filter_by(user_id=user_id).first()
    if row is None:
        row = UserRole(user_id=user_id, role=role)
        db.session.add(row)
    row.role = role
    db.session.commit()
    return row


def delete_user(user_id: str, acting_user_id: Optional[str] = None) -> None:
    if user_id == acting_user_id:
        raise UserAdminError("You cannot delete your own account")
    user = db.session.get(User, user_id)
    if user is None:
        raise UserAdminError("User not found", 404)
    db.session.delete(user)
    db.session.commit()


def set_user_password(user_id: str, password: str) -> None:
    user = db.session.get(User, user_id)
    if user is None:
        raise UserAdminError("User not found", 404)
    user.password_hash = hash_password(password)
    db.session.commit()


def set_user_active(user_id: str, active: bool, acting_user_id: Optional[str] = None) -> None:
    if user_id == acting_user_id and not active:
        raise UserAdminError("You cannot deactivate your own account")
    user = db.session.get(User, user_id)
    if user is None:
        raise UserAdminError("User not found", 404)
    user.is_active = bool(active)
    db.session.commit()
