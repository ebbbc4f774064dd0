"""
Rewrite stored student statuses onto the canonical funnel.

Rows written by the older funnel (website_work_started, store_ready,
started_selling, scaling) are mapped; anything unrecognised becomes
not_started. Each change is recorded in status history and the audit log.

Usage:

  python scripts/normalize_statuses.py --dry-run
  python scripts/normalize_statuses.py
"""

from __future__ import annotations

import argparse
import os
import sys
from typing import Dict

# Ensure project root is importable when running from scripts/
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

os.environ.setdefault("SCHEDULER_ENABLED", "0")

from app import app  # noqa: E402
from extensions import db  # noqa: E402
from models import StatusHistory, Student  # noqa: E402
from utils.audit import record_change  # noqa: E402
from utils.statuses import normalize_status  # noqa: E402


def normalize_stored_statuses(dry_run: bool = False) -> Dict[str, int]:
    """Return a count of rewritten rows per original value."""
    changed: Dict[str, int] = {}
    for student in Student.query.all():
        current = student.current_status
        target = normalize_status(current)
        if target == current:
            continue
        changed[current or ""] = changed.get(current or "", 0) + 1
        if dry_run:
            continue
        student.current_status = target
        db.session.add(StatusHistory(student_id=student.id, old_status=current, new_status=target))
        record_change(
            student.id,
            "status_change",
            description="Status migrated to the current funnel",
            field_name="current_status",
            old_value=current,
            new_value=target,
        )
    if dry_run:
        db.session.rollback()
    else:
        db.session.commit()
    return changed


def main() -> int:
    parser = argparse.ArgumentParser(description="Map legacy student statuses onto the canonical funnel")
    parser.add_argument("--dry-run", action="store_true", help="Report what would change without writing")
    args = parser.parse_args()

    with app.app_context():
        changed = normalize_stored_statuses(dry_run=args.dry_run)

    if not changed:
        print("All statuses already canonical.")
        return 0
    verb = "Would update" if args.dry_run else "Updated"
    for value, count in sorted(changed.items()):
        print(f"{verb} {count} student(s) from '{value}' to '{normalize_status(value)}'")
    return 0


if __name__ == "__main__":
    sys.exit(main())
