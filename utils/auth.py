"""Explicit per-session auth context.

The context is resolved from the database at login and kept in the signed
session cookie. Views read it from ``g.auth``. The route decorators call
:func:`refresh_auth_context` before every protected view, so role changes,
deactivation and deletion take effect on the user's next request.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Optional

from flask import g, session

from extensions import db
from models import User, UserRole

ROLE_ADMIN = "admin"
ROLE_SUPERADMIN = "superadmin"
ROLES = (ROLE_ADMIN, ROLE_SUPERADMIN)

_SESSION_KEY = "auth"


@dataclass(frozen=True)
class AuthContext:
    user_id: str
    email: str
    full_name: str
    role: str

    @property
    def is_superadmin(self) -> bool:
        return self.role == ROLE_SUPERADMIN


def normalize_role(role: Optional[str]) -> str:
    role = (role or "").strip().lower()
    return role if role in ROLES else ROLE_ADMIN


def resolve_auth_context(user_id: Optional[str]) -> Optional[AuthContext]:
    """Build a context from the database; None for unknown or deactivated users."""
    if not user_id:
        return None
    row = (
        db.session.query(User, UserRole.role)
        .outerjoin(UserRole, UserRole.user_id == User.id)
        .filter(User.id == user_id)
        .first()
    )
    if row is None:
        return None
    user, role = row
    if not user.is_active:
        return None
    return AuthContext(user_id=user.id, email=user.email, full_name=user.full_name, role=normalize_role(role))


def start_session(ctx: AuthContext, remember: bool = False) -> None:
    session.clear()
    session[_SESSION_KEY] = asdict(ctx)
    session.permanent = remember
    g.auth = ctx


def end_session() -> None:
    session.clear()
    g.auth = None


def load_auth_context() -> Optional[AuthContext]:
    """Populate ``g.auth`` from the session snapshot, without touching the database."""
    data = session.get(_SESSION_KEY)
    ctx = None
    if isinstance(data, dict):
        try:
            ctx = AuthContext(**data)
        except TypeError:
            session.pop(_SESSION_KEY, None)
    g.auth = ctx
    return ctx


def refresh_auth_context() -> Optional[AuthContext]:
    """Re-check the session's user against the database and update the snapshot."""
    current = getattr(g, "auth", None) or load_auth_context()
    if current is None:
        return None
    fresh = resolve_auth_context(current.user_id)
    if fresh is None:
        end_session()
        return None
    session[_SESSION_KEY] = asdict(fresh)
    g.auth = fresh
    return fresh


def current_auth() -> Optional[AuthContext]:
    return getattr(g, "auth", None)
