from __future__ import annotations

from flask import Blueprint, render_template, request, redirect, url_for, flash, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from utils import superadmin_required
from utils.auth import ROLES, current_auth
from utils.users import (
    UserAdminError,
    create_user,
    delete_user,
    list_users_with_roles,
    set_user_active,
    set_user_role,
)
from utils.validation import ValidationError, validate_new_user


admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


def _acting_user_id():
    auth = current_auth()
    return auth.user_id if auth else None


@admin_bp.route("/users")
@superadmin_required
def users():
    return render_template("users.html", users=list_users_with_roles(), roles=ROLES)


@admin_bp.route("/users/create", methods=["POST"])
@superadmin_required
def create_user_view():
    role = (request.form.get("role") or "admin").strip()
    try:
        data = validate_new_user(request.form)
        user = create_user(data["email"], data["password"], data["full_name"], role=role)
    except (ValidationError, UserAdminError) as exc:
        flash(str(exc), "warning")
        return redirect(url_for("admin.users"))
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to create user")
        flash("Could not create the user. Please try again.", "error")
        return redirect(url_for("admin.users"))

    current_app.logger.info("User %s created by %s with role %s", user.email, _acting_user_id(), role)
    flash(f"User {user.email} created.", "success")
    return redirect(url_for("admin.users"))


@admin_bp.route("/users/<user_id>/role", methods=["POST"])
@superadmin_required
def change_role(user_id):
    role = (request.form.get("role") or "").strip()
    try:
        set_user_role(user_id, role, acting_user_id=_acting_user_id())
    except UserAdminError as exc:
        flash(str(exc), "warning")
        return redirect(url_for("admin.users"))
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to change role for %s", user_id)
        flash("Could not update the role. Please try again.", "error")
        return redirect(url_for("admin.users"))

    current_app.logger.info("Role of %s set to %s by %s", user_id, role, _acting_user_id())
    flash("Role updated.", "success")
    return redirect(url_for("admin.users"))


@admin_bp.route("/users/<user_id>/delete", methods=["POST"])
@superadmin_required
def delete_user_view(user_id):
    try:
        delete_user(user_id, acting_user_id=_acting_user_id())
    except UserAdminError as exc:
        flash(str(exc), "warning")
        return redirect(url_for("admin.users"))
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to delete user %s", user_id)
        flash("Could not delete the user. Please try again.", "error")
        return redirect(url_for("admin.users"))

    current_app.logger.info("User %s deleted by %s", user_id, _acting_user_id())
    flash("User deleted.", "success")
    return redirect(url_for("admin.users"))


@admin_bp.route("/users/<user_id>/active", methods=["POST"])
@superadmin_required
def toggle_active(user_id):
    """Deactivate or reactivate a user; deactivated users are signed out on their next request."""
    active = request.form.get("active") == "1"
    try:
        set_user_active(user_id, active, acting_user_id=_acting_user_id())
    except UserAdminError as exc:
        flash(str(exc), "warning")
        return redirect(url_for("admin.users"))
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to change active flag for %s", user_id)
        flash("Could not update the user. Please try again.", "error")
        return redirect(url_for("admin.users"))

    current_app.logger.info("User %s %s by %s", user_id, "reactivated" if active else "deactivated", _acting_user_id())
    flash("User reactivated." if active else "User deactivated.", "success")
    return redirect(url_for("admin.users"))


# ---------------------------------------------------------------------------
# JSON API used by scripts and the users page
# ---------------------------------------------------------------------------

@admin_bp.route("/api/users", methods=["GET"])
@superadmin_required
def api_list_users():
    rows = list_users_with_roles()
    for row in rows:
        row["created_at"] = row["created_at"].isoformat() if row["created_at"] else None
    return jsonify({"users": rows})


@admin_bp.route("/api/users", methods=["POST"])
@superadmin_required
def api_create_user():
    """Create a user. Body: ``email``, ``password``, ``full_name`` (or ``fullName``), optional ``role``."""
    payload = request.get_json(silent=True) or {}
    role = (payload.get("role") or "admin").strip()
    try:
        data = validate_new_user(payload)
        user = create_user(data["email"], data["password"], data["full_name"], role=role)
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    except UserAdminError as exc:
        return jsonify({"error": str(exc)}), exc.status
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to create user via API")
        return jsonify({"error": "Could not create user"}), 500

    current_app.logger.info("User %s created via API by %s", user.email, _acting_user_id())
    return jsonify({"success": True, "user": {"id": user.id, "email": user.email, "role": role}}), 201


@admin_bp.route("/api/users/<user_id>", methods=["DELETE"])
@superadmin_required
def api_delete_user(user_id):
    try:
        delete_user(user_id, acting_user_id=_acting_user_id())
    except UserAdminError as exc:
        return jsonify({"error": str(exc)}), exc.status
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to delete user %s via API", user_id)
        return jsonify({"error": "Could not delete user"}), 500

    current_app.logger.info("User %s deleted via API by %s", user_id, _acting_user_id())
    return jsonify({"success": True})
