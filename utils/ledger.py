from __future__ import annotations

from decimal import Decimal
from typing import Dict, Iterable, NamedTuple, Union

Number = Union[int, float, Decimal, str]


class PaymentSummary(NamedTuple):
    plan_amount: Decimal
    paid: Decimal
    due: Decimal
    credit: Decimal


def _dec(value: Number | None) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    # str() keeps floats like 0.1 from dragging binary noise into sums
    return Decimal(str(value))


def total_paid(amounts: Iterable[Number]) -> Decimal:
    return sum((_dec(a) for a in amounts), Decimal("0"))


def amount_due(plan_amount: Number, amounts: Iterable[Number]) -> Decimal:
    """Plan price minus everything received, floored at zero."""
    return max(Decimal("0"), _dec(plan_amount) - total_paid(amounts))


def summarize_payments(plan_amount: Number, amounts: Iterable[Number]) -> PaymentSummary:
    """Return paid/due/credit for one student.

    ``credit`` is whatever was received above the plan price. It is reported
    next to ``due`` rather than making ``due`` negative.
    """
    plan = _dec(plan_amount)
    paid = total_paid(amounts)
    return PaymentSummary(
        plan_amount=plan,
        paid=paid,
        due=max(Decimal("0"), plan - paid),
        credit=max(Decimal("0"), paid - plan),
    )


def paid_by_student(payments: Iterable) -> Dict[str, Decimal]:
    """Sum settled payment amounts per student id.

    Accepts Payment rows or any object with ``student_id``, ``amount`` and
    ``paid`` attributes. Scheduled (unpaid) installments are skipped.
    """
    totals: Dict[str, Decimal] = {}
    for p in payments:
        if not getattr(p, "paid", True):
            continue
        totals[p.student_id] = totals.get(p.student_id, Decimal("0")) + _dec(p.amount)
    return totals


def settled_amounts(payments: Iterable) -> list[Decimal]:
    return [_dec(p.amount) for p in payments if getattr(p, "paid", True)]


def format_money(value: Number | None, symbol: str = "₹") -> str:
    amount = _dec(value)
    if amount == amount.to_integral_value():
        return f"{symbol}{amount:,.0f}"
    return f"{symbol}{amount:,.2f}"
