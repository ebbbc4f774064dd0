from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional

PAYMENT_METHODS = {
    "cash": "Cash",
    "upi": "UPI",
    "bank_transfer": "Bank Transfer",
    "card": "Card",
}

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class ValidationError(ValueError):
    """A form value failed a local check. ``field`` names the offending input."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


def _clean(form: Mapping[str, Any], name: str) -> str:
    return (form.get(name) or "").strip()


def _require(value: str, field: str, label: str, max_len: int) -> str:
    if not value:
        raise ValidationError(f"{label} is required", field)
    if len(value) > max_len:
        raise ValidationError(f"{label} must be at most {max_len} characters", field)
    return value


def _optional(value: str, field: str, label: str, max_len: int) -> Optional[str]:
    if not value:
        return None
    if len(value) > max_len:
        raise ValidationError(f"{label} must be at most {max_len} characters", field)
    return value


def parse_email(value: str, field: str = "email", required: bool = False) -> Optional[str]:
    value = (value or "").strip().lower()
    if not value:
        if required:
            raise ValidationError("Email is required", field)
        return None
    if len(value) > 255 or not _EMAIL_RE.match(value):
        raise ValidationError("Invalid email", field)
    return value


def parse_date(value: str | None, field: str = "due_date") -> Optional[date]:
    value = (value or "").strip()
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError("Dates must look like YYYY-MM-DD", field)


def parse_tags(raw: str | Iterable[str] | None) -> List[str]:
    if raw is None:
        return []
    parts = raw.split(",") if isinstance(raw, str) else list(raw)
    tags: List[str] = []
    for part in parts:
        tag = str(part).strip()
        if tag and tag not in tags:
            tags.append(tag[:40])
    return tags


def find_plan(plan_name: str, plans: Iterable[Mapping[str, Any]]) -> Mapping[str, Any]:
    for plan in plans:
        if plan["name"] == plan_name:
            return plan
    raise ValidationError("Invalid plan selected", "plan_name")


def validate_student(form: Mapping[str, Any], plans: Iterable[Mapping[str, Any]]) -> Dict[str, Any]:
    """Validate the add/edit student form. Plan amount comes from the plan list."""
    data: Dict[str, Any] = {
        "full_name": _require(_clean(form, "full_name"), "full_name", "Name", 100),
        "phone": _require(_clean(form, "phone"), "phone", "Phone", 20),
        "email": parse_email(_clean(form, "email")),
        "address": _optional(_clean(form, "address"), "address", "Address", 500),
        "batch": _optional(_clean(form, "batch"), "batch", "Batch", 50),
        "tags": parse_tags(form.get("tags")),
    }
    plan_name = _clean(form, "plan_name")
    if not plan_name:
        raise ValidationError("Plan is required", "plan_name")
    plan = find_plan(plan_name, plans)
    data["plan_name"] = plan["name"]
    data["plan_amount"] = Decimal(str(plan["amount"])).quantize(Decimal("0.01"))
    return data


def validate_payment(form: Mapping[str, Any], amount_due: Decimal, has_screenshot: bool) -> Dict[str, Any]:
    """Validate a payment. Settled payments need a screenshot and may not exceed the due amount."""
    raw = _clean(form, "amount")
    try:
        amount = Decimal(raw)
    except (InvalidOperation, ValueError):
        raise ValidationError("Amount is required and must be greater than 0", "amount")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("Amount is required and must be greater than 0", "amount")
    if amount > amount_due:
        raise ValidationError(f"Amount cannot exceed due amount of {amount_due:,.2f}", "amount")

    method = _clean(form, "method").lower()
    if not method:
        raise ValidationError("Payment method is required", "method")
    if method not in PAYMENT_METHODS:
        raise ValidationError("Unknown payment method", "method")

    scheduled = _clean(form, "scheduled").lower() in ("1", "on", "true", "yes")
    due_date = parse_date(form.get("due_date"))
    if scheduled and due_date is None:
        raise ValidationError("Scheduled payments need a due date", "due_date")
    if not scheduled and not has_screenshot:
        raise ValidationError("Please upload a payment screenshot", "screenshot")

    return {
        "amount": amount.quantize(Decimal("0.01")),
        "method": method,
        "note": _optional(_clean(form, "note"), "note", "Note", 500),
        "due_date": due_date,
        "paid": not scheduled,
    }


def validate_follow_up(form: Mapping[str, Any]) -> str:
    return _require(_clean(form, "note"), "note", "Follow-up note", 1000)


def validate_task(form: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "title": _require(_clean(form, "title"), "title", "Task title", 200),
        "due_date": parse_date(form.get("due_date")),
    }


def validate_new_user(form: Mapping[str, Any]) -> Dict[str, str]:
    full_name = _clean(form, "full_name") or _clean(form, "fullName")
    email = _clean(form, "email")
    password = (form.get("password") or "").strip()
    if not full_name or not email or not password:
        raise ValidationError("Email, password, and full name are required")
    if len(full_name) > 120:
        raise ValidationError("Full name must be at most 120 characters", "full_name")
    if len(password) < 6:
        raise ValidationError("Password must be at least 6 characters", "password")
    return {
        "full_name": full_name,
        "email": parse_email(email, required=True) or "",
        "password": password,
    }
