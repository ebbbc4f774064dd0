from flask import Flask, render_template, request, redirect, url_for, jsonify, flash, g
import uuid
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import RequestEntityTooLarge
from werkzeug.middleware.proxy_fix import ProxyFix

from config import Config
from extensions import db, migrate, limiter
from models import Payment, Student
from routes.activity_routes import activity_bp
from routes.admin_routes import admin_bp
from routes.auth_routes import auth_bp
from routes.fee_routes import fee_bp
from routes.notification_routes import notification_bp
from routes.student_routes import student_bp
from utils import login_required
from utils.auth import current_auth, load_auth_context
from utils.ledger import format_money, paid_by_student, summarize_payments
from utils.notifications import current_notifications, unread_count
from utils.security import apply_security_headers
from utils.statuses import STATUSES, status_info
from utils.timezone_helpers import format_local

app = Flask(__name__)

# Load configuration from Config (environment + .env)
app.config.from_object(Config)
app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

# Trust reverse proxy headers for scheme/host when enabled
if app.config.get("TRUST_PROXY", True):
    app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1)  # type: ignore[method-assign]

# Initialize database, migrations and rate limiting
db.init_app(app)
migrate.init_app(app, db)
limiter.init_app(app)

# Create tables on a fresh database; `flask db` handles later schema changes
with app.app_context():
    try:
        db.create_all()
    except SQLAlchemyError:
        app.logger.exception("Could not create tables; is the database reachable?")


# Set security headers on every response
@app.after_request
def _set_security_headers(resp):
    apply_security_headers(resp, hsts=app.config.get("SESSION_COOKIE_SECURE", False))
    request_id = getattr(g, "request_id", None)
    if request_id:
        resp.headers.setdefault("X-Request-ID", request_id)
    return resp


# Enforce HTTPS for all requests (except localhost) when enabled
@app.before_request
def _enforce_https_redirect():
    if not app.config.get("ENFORCE_HTTPS", False):
        return None
    # Skip for local development hosts
    host = (request.host or "").split(":")[0]
    if host in ("127.0.0.1", "localhost"):
        return None
    xf_proto = (request.headers.get("X-Forwarded-Proto", "").split(",")[0].strip().lower())
    if request.is_secure or xf_proto == "https":
        return None
    url = request.url.replace("http://", "https://", 1)
    return redirect(url, code=301)


# Assign a per-request correlation id for tracing
@app.before_request
def _assign_request_id():
    incoming = (request.headers.get("X-Request-ID") or "").strip()
    g.request_id = incoming[:64] if incoming else uuid.uuid4().hex[:16]


@app.before_request
def _load_auth():
    load_auth_context()


# Register blueprints
app.register_blueprint(auth_bp)
app.register_blueprint(student_bp)
app.register_blueprint(fee_bp)
app.register_blueprint(activity_bp)
app.register_blueprint(notification_bp)
app.register_blueprint(admin_bp)


@app.template_filter("money")
def _money_filter(value):
    return format_money(value, app.config.get("CURRENCY_SYMBOL", "₹"))


@app.template_filter("localtime")
def _localtime_filter(value, fmt="%d %b %Y, %H:%M"):
    return format_local(value, fmt)


# Inject branding and session info into all templates
@app.context_processor
def inject_branding():
    auth = current_auth()
    unread = 0
    if auth is not None and app.config.get("PERSIST_NOTIFICATIONS", True):
        try:
            unread = unread_count()
        except SQLAlchemyError:
            db.session.rollback()
            app.logger.exception("Could not count unread notifications")
    return {
        "app_name": app.config.get("APP_NAME", "Cohort Desk"),
        "currency_symbol": app.config.get("CURRENCY_SYMBOL", "₹"),
        "auth": auth,
        "status_info": status_info,
        "unread_notifications": unread,
        "request_id": getattr(g, "request_id", None),
    }


@app.errorhandler(RequestEntityTooLarge)
def _too_large(_exc):
    limit_mb = app.config.get("MAX_CONTENT_LENGTH", 5 * 1024 * 1024) // (1024 * 1024)
    flash(f"Upload too large. Screenshots must be {limit_mb} MB or smaller.", "warning")
    return redirect(request.referrer or url_for("dashboard"))


# ---------- HEALTH ENDPOINTS ----------
_APP_START_TS = datetime.now()


def _db_ping_ok() -> bool:
    try:
        db.session.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        db.session.rollback()
        app.logger.warning("Readiness check: database ping failed")
        return False


@app.route("/healthz")
def healthz():
    """Basic liveness probe. Public and unauthenticated.

    Returns JSON with minimal info; does not require DB.
    """
    up_secs = max(0, int((datetime.now() - _APP_START_TS).total_seconds()))
    return jsonify({
        "ok": True,
        "status": "alive",
        "uptime_seconds": up_secs,
        "version": app.config.get("APP_NAME", "Cohort Desk"),
    })


@app.route("/readyz")
def readyz():
    """Readiness probe. Checks DB connectivity."""
    db_ok = _db_ping_ok()
    code = 200 if db_ok else 503
    return jsonify({"ok": db_ok, "db": db_ok}), code


@app.route("/livez")
def livez():
    return jsonify({"ok": True})


# Convenience: /login -> /auth/login
@app.route("/login")
def login_redirect():
    return redirect(url_for("auth.login"))


# ---------- DASHBOARD ----------
def dashboard_summary(now=None):
    """KPIs and lists for the dashboard, computed from all students and payments.

    Amount due is recomputed here from settled payments; nothing is cached.
    """
    now = now or datetime.utcnow()
    students = Student.query.order_by(Student.created_at.desc()).all()
    paid = paid_by_student(Payment.query.all())

    rows = []
    for s in students:
        rows.append({"student": s, "summary": summarize_payments(s.plan_amount, [paid.get(s.id, 0)])})

    week_ago = now - timedelta(days=7)
    active = [r for r in rows if r["student"].current_status != "completed"]
    due_rows = sorted((r for r in rows if r["summary"].due > 0), key=lambda r: r["summary"].due, reverse=True)
    needs_attention = {n.student_id for n in current_notifications(now)}

    status_counts = {s.value: 0 for s in STATUSES}
    for r in rows:
        value = status_info(r["student"].current_status).value
        status_counts[value] += 1

    return {
        "total_students": len(rows),
        "active_students": len(active),
        "amount_due": sum((r["summary"].due for r in rows), Decimal("0")),
        "revenue_collected": sum(paid.values(), Decimal("0")),
        "new_this_week": sum(1 for r in rows if r["student"].joining_date and r["student"].joining_date >= week_ago),
        "needs_attention": len(needs_attention),
        "status_counts": status_counts,
        "recent": rows[:5],
        "active": active,
        "due": due_rows,
    }


def _row_json(row):
    s, summary = row["student"], row["summary"]
    return {
        "id": s.id,
        "full_name": s.full_name,
        "plan_name": s.plan_name,
        "status": s.current_status,
        "status_label": status_info(s.current_status).label,
        "plan_amount": f"{summary.plan_amount:.2f}",
        "paid": f"{summary.paid:.2f}",
        "due": f"{summary.due:.2f}",
        "credit": f"{summary.credit:.2f}",
        "joining_date": s.joining_date.isoformat() if s.joining_date else None,
    }


@app.route("/")
@login_required
def dashboard():
    """Main dashboard with KPI cards, recent students and the due list."""
    data = dashboard_summary()
    return render_template("dashboard.html", data=data, statuses=STATUSES)


@app.route("/api/dashboard_data")
@login_required
def dashboard_data():
    data = dashboard_summary()
    return jsonify({
        "total_students": data["total_students"],
        "active_students": data["active_students"],
        "amount_due": f"{data['amount_due']:.2f}",
        "revenue_collected": f"{data['revenue_collected']:.2f}",
        "new_this_week": data["new_this_week"],
        "needs_attention": data["needs_attention"],
        "status_counts": data["status_counts"],
        "recent": [_row_json(r) for r in data["recent"]],
        "due": [_row_json(r) for r in data["due"]],
    })


if app.config.get("SCHEDULER_ENABLED", True):
    from scheduler import start_scheduler

    _sched = start_scheduler(app)


if __name__ == "__main__":
    app.run(debug=True)
