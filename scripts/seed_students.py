import argparse
import random
import string
from datetime import date, datetime, timedelta
from decimal import Decimal
import os
import sys

# Ensure project root is importable when running from scripts/
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

os.environ.setdefault("SCHEDULER_ENABLED", "0")

from app import app  # noqa: E402
from extensions import db  # noqa: E402
from models import FollowUp, Payment, Student  # noqa: E402
from utils.audit import record_change  # noqa: E402
from utils.statuses import STATUSES  # noqa: E402


FIRST_NAMES = [
    "Aarav", "Vivaan", "Aditya", "Vihaan", "Arjun", "Sai", "Reyansh", "Ayaan",
    "Ananya", "Diya", "Aadhya", "Saanvi", "Pari", "Myra", "Anika", "Ira",
    "Rohan", "Kabir", "Ishaan", "Meera", "Kavya", "Riya", "Neha", "Pooja",
]

LAST_NAMES = [
    "Sharma", "Verma", "Gupta", "Patel", "Reddy", "Nair", "Iyer", "Rao",
    "Singh", "Kumar", "Das", "Joshi", "Mehta", "Shah", "Pillai", "Menon",
]

TAGS = ["referral", "instagram", "priority", "weekend", "hindi", "returning"]


def random_name() -> str:
    return f"{random.choice(FIRST_NAMES)} {random.choice(LAST_NAMES)}"


def random_phone() -> str:
    # Indian mobile numbers start with 6-9
    return random.choice("6789") + "".join(random.choice(string.digits) for _ in range(9))


def seed(count: int, with_payments: bool) -> int:
    plans = app.config["PLAN_OPTIONS"]
    now = datetime.utcnow()
    created = 0
    for _ in range(count):
        plan = random.choice(plans)
        name = random_name()
        student = Student(
            full_name=name,
            phone=random_phone(),
            email=f"{name.lower().replace(' ', '.')}{random.randint(1, 999)}@example.com",
            plan_name=plan["name"],
            plan_amount=Decimal(str(plan["amount"])),
            batch=f"B{random.randint(1, 12)}",
            current_status=random.choice(STATUSES).value,
            joining_date=now - timedelta(days=random.randint(0, 60)),
            tags=random.sample(TAGS, k=random.randint(0, 2)),
        )
        db.session.add(student)
        db.session.flush()
        record_change(student.id, "created", description=f"Student {name} enrolled on {plan['name']} (seed)")

        if with_payments:
            plan_amount = Decimal(str(plan["amount"]))
            first = (plan_amount * Decimal(random.choice(["0", "0.3", "0.5", "1"]))).quantize(Decimal("1"))
            if first > 0:
                db.session.add(Payment(student_id=student.id, amount=first, method=random.choice(["upi", "cash", "bank_transfer"]),
                                       note="Seeded payment", recorded_at=student.joining_date))
            remaining = plan_amount - first
            if remaining > 0 and random.random() < 0.6:
                db.session.add(Payment(student_id=student.id, amount=remaining, method="upi", paid=False,
                                       due_date=date.today() + timedelta(days=random.randint(-5, 10)),
                                       note="Seeded installment"))
            if random.random() < 0.5:
                db.session.add(FollowUp(student_id=student.id, note="Intro call done (seed)",
                                        created_at=min(now, student.joining_date + timedelta(days=1))))
        created += 1
    db.session.commit()
    return created


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed demo students")
    parser.add_argument("--count", type=int, default=25, help="Number of students to create")
    parser.add_argument("--no-payments", action="store_true", help="Skip payments, installments and follow-ups")
    parser.add_argument("--seed", type=int, help="Random seed for reproducible data")
    args = parser.parse_args()

    if args.seed is not None:
        random.seed(args.seed)
    with app.app_context():
        created = seed(args.count, with_payments=not args.no_payments)
    print(f"Seeded {created} students")
    return 0


if __name__ == "__main__":
    sys.exit(main())
