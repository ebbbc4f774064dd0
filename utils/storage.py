from __future__ import annotations

import uuid
from datetime import datetime
from pathlib import Path

from flask import current_app, url_for
from werkzeug.utils import secure_filename

ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp", ".pdf"}


def allowed_screenshot_file(filename: str) -> bool:
    if not filename:
        return False
    return Path(filename).suffix.lower() in ALLOWED_EXTENSIONS


def _upload_root() -> tuple[Path, str]:
    relative = current_app.config.get("SCREENSHOT_UPLOADS_DIR") or "uploads/payment_screenshots"
    root = Path(current_app.static_folder or Path(current_app.root_path) / "static") / relative
    root.mkdir(parents=True, exist_ok=True)
    return root, relative


def save_payment_screenshot(file, student_id: str) -> str:
    """Store an uploaded screenshot and return its path relative to ``static/``."""
    if not allowed_screenshot_file(file.filename or ""):
        raise ValueError("Unsupported file type")
    root, relative = _upload_root()
    ext = Path(file.filename or "").suffix.lower()
    filename = f"{student_id}-{datetime.utcnow().strftime('%Y%m%d%H%M%S')}-{uuid.uuid4().hex[:8]}{ext}"
    safe_name = secure_filename(filename)
    file.save(root / safe_name)
    return (Path(relative) / safe_name).as_posix()


def screenshot_url(rel_path: str | None) -> str | None:
    if not rel_path:
        return None
    return url_for("static", filename=rel_path)


def delete_payment_screenshot(rel_path: str | None) -> bool:
    """Remove a stored screenshot. Missing files are not an error."""
    if not rel_path:
        return False
    static_root = Path(current_app.static_folder or Path(current_app.root_path) / "static")
    path = (static_root / rel_path).resolve()
    if static_root.resolve() not in path.parents:
        current_app.logger.warning("Refusing to delete screenshot outside static/: %s", rel_path)
        return False
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        return False
    except OSError:
        current_app.logger.exception("Failed to delete payment screenshot %s", rel_path)
        return False
