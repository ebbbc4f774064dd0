from flask import Blueprint, render_template, request, redirect, url_for, flash, current_app, jsonify
from urllib.parse import urlparse

from extensions import limiter
from utils.auth import (
    current_auth,
    end_session,
    refresh_auth_context,
    resolve_auth_context,
    start_session,
)
from utils.security import verify_password
from utils.users import get_user_by_email

auth_bp = Blueprint('auth', __name__, url_prefix='/auth')


def _safe_next(target):
    """Only allow same-site relative redirects after login."""
    if not target:
        return None
    parsed = urlparse(target)
    if parsed.scheme or parsed.netloc or not target.startswith('/'):
        return None
    return target


@auth_bp.route('/login', methods=['GET', 'POST'])
# Rate limit login POSTs only so the form itself always renders
@limiter.limit('10 per minute', methods=['POST'])
def login():
    """Email/password sign-in.

    On success the user's role is resolved once and stored in the session
    as the auth context; every later request reads it from there.
    """
    if request.method == 'POST':
        email = (request.form.get('email') or '').strip().lower()
        password = (request.form.get('password') or '').strip()
        remember = request.form.get('remember') in ('on', '1', 'true', 'yes')
        next_url = _safe_next(request.args.get('next') or request.form.get('next'))

        if not email or not password:
            flash('Enter your email and password.', 'warning')
            return redirect(url_for('auth.login', next=next_url))

        user = get_user_by_email(email)
        if user is not None and user.is_active and verify_password(user.password_hash, password):
            ctx = resolve_auth_context(user.id)
            if ctx is not None:
                start_session(ctx, remember=remember)
                current_app.logger.info("User %s signed in (%s)", ctx.email, ctx.role)
                flash('Welcome back!', 'success')
                return redirect(next_url or url_for('dashboard'))

        current_app.logger.warning("Failed sign-in for %s", email)
        flash('Invalid credentials.', 'error')
        return redirect(url_for('auth.login', next=next_url))

    if current_auth() is not None:
        return redirect(url_for('dashboard'))
    next_url = request.args.get('next', '')
    return render_template('login.html', next_url=next_url)


@auth_bp.route('/refresh', methods=['POST'])
def refresh():
    """Re-read the signed-in user's role from the database."""
    ctx = refresh_auth_context()
    if ctx is None:
        return jsonify({"error": "Not authenticated"}), 401
    return jsonify({
        "user_id": ctx.user_id,
        "email": ctx.email,
        "full_name": ctx.full_name,
        "role": ctx.role,
        "is_superadmin": ctx.is_superadmin,
    })


@auth_bp.route('/logout')
def logout():
    end_session()
    flash('Signed out.', 'info')
    return redirect(url_for('auth.login'))
