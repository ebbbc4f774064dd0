from __future__ import annotations

from typing import NamedTuple, Optional


class StatusInfo(NamedTuple):
    value: str
    label: str
    color: str


DEFAULT_STATUS = "not_started"

# Order is the enrollment funnel; any status may be set directly.
STATUSES = [
    StatusInfo("not_started", "Not Started", "bg-slate-100 text-slate-600"),
    StatusInfo("whatsapp_group_added", "WhatsApp Added", "bg-blue-100 text-blue-700"),
    StatusInfo("course_completed", "Course Video Access Completed", "bg-purple-100 text-purple-700"),
    StatusInfo("website_completed", "Website Done", "bg-amber-100 text-amber-700"),
    StatusInfo("selling_initiated", "Selling", "bg-cyan-100 text-cyan-700"),
    StatusInfo("completed", "Completed", "bg-emerald-100 text-emerald-700"),
]

STATUS_MAP = {s.value: s for s in STATUSES}

# Values written by the older "website-first" funnel
LEGACY_STATUS_MAP = {
    "website_work_started": "course_completed",
    "store_ready": "website_completed",
    "started_selling": "selling_initiated",
    "scaling": "selling_initiated",
}


def is_valid_status(value: Optional[str]) -> bool:
    return bool(value) and value in STATUS_MAP


def normalize_status(value: Optional[str]) -> str:
    """Map legacy values onto the canonical funnel; unknown values become the default."""
    if not value:
        return DEFAULT_STATUS
    value = value.strip().lower()
    if value in STATUS_MAP:
        return value
    return LEGACY_STATUS_MAP.get(value, DEFAULT_STATUS)


def status_info(value: Optional[str]) -> StatusInfo:
    """Badge label and color for a status; unknown values render as Not Started."""
    return STATUS_MAP.get(value or "", STATUS_MAP[DEFAULT_STATUS])


def status_label(value: Optional[str]) -> str:
    return status_info(value).label
