from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from flask import current_app, has_app_context

DEFAULT_TZ_NAME = "Asia/Kolkata"


def app_timezone() -> ZoneInfo:
    """The display timezone from APP_TIMEZONE; stored datetimes are naive UTC."""
    name = DEFAULT_TZ_NAME
    if has_app_context():
        name = current_app.config.get("APP_TIMEZONE") or DEFAULT_TZ_NAME
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError:
        return ZoneInfo(DEFAULT_TZ_NAME)


def to_local(value: Any) -> datetime | None:
    """Convert a stored (UTC) value to an aware datetime in the app timezone."""
    if not value:
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(app_timezone())


def format_local(value: Any, fmt: str = "%d %b %Y, %H:%M") -> str:
    """Datetime filter for templates. Plain dates are formatted without conversion."""
    if isinstance(value, date) and not isinstance(value, datetime):
        return value.strftime(fmt.split(",")[0])
    dt = to_local(value)
    if dt:
        return dt.strftime(fmt)
    if isinstance(value, str):
        return value
    return ""


def local_now() -> datetime:
    return datetime.now(app_timezone())
