from __future__ import annotations

from functools import wraps
from typing import Callable, TypeVar, Any, cast
from flask import flash, jsonify, redirect, request, url_for

from utils.auth import current_auth, refresh_auth_context

F = TypeVar("F", bound=Callable[..., Any])


def _wants_json() -> bool:
    return "/api/" in request.path or request.path.endswith(".json") or request.is_json


def login_required(func: F) -> F:
    """Decorator that requires a signed-in, still-active user.

    - Re-checks the session's user against the database, so deleted or
      deactivated accounts lose access on their next request.
    - Otherwise redirects to the login page (JSON routes get a 401).
    """

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        if current_auth() is None or refresh_auth_context() is None:
            if _wants_json():
                return jsonify({"error": "Not authenticated"}), 401
            return redirect(url_for("auth.login", next=request.full_path.rstrip("?")))
        return func(*args, **kwargs)

    return cast(F, wrapper)


def superadmin_required(func: F) -> F:
    """Decorator that re-checks the superadmin role against the database.

    Signed-out sessions are handled like :func:`login_required`; signed-in
    users without the role are sent back to the dashboard (JSON gets a 403).
    """

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        if current_auth() is None:
            if _wants_json():
                return jsonify({"error": "Not authenticated"}), 401
            return redirect(url_for("auth.login", next=request.full_path.rstrip("?")))
        ctx = refresh_auth_context()
        if ctx is None or not ctx.is_superadmin:
            if _wants_json():
                if ctx is None:
                    return jsonify({"error": "Not authenticated"}), 401
                return jsonify({"error": "Only superadmins can manage users"}), 403
            if ctx is not None:
                flash("Only superadmins can manage users.", "warning")
            return redirect(url_for("dashboard"))
        return func(*args, **kwargs)

    return cast(F, wrapper)
