from decimal import Decimal
from types import SimpleNamespace

from utils.ledger import (
    amount_due,
    format_money,
    paid_by_student,
    summarize_payments,
    total_paid,
)


def test_amount_due_subtracts_payments_from_plan():
    assert amount_due(6999, [2000, 1500]) == Decimal("3499")


def test_overpayment_floors_due_and_reports_credit():
    summary = summarize_payments(2999, [5000])
    assert summary.due == Decimal("0")
    assert summary.credit == Decimal("2001")
    assert summary.paid == Decimal("5000")


def test_no_payments_means_whole_plan_is_due():
    summary = summarize_payments(Decimal("7999.00"), [])
    assert summary.due == Decimal("7999.00")
    assert summary.paid == Decimal("0")
    assert summary.credit == Decimal("0")


def test_due_never_increases_as_payments_are_added():
    payments = []
    previous = amount_due(6999, payments)
    for amount in [1000, "2500.50", 0.1, 4000]:
        payments.append(amount)
        current = amount_due(6999, payments)
        assert current <= previous
        assert current >= 0
        previous = current


def test_float_amounts_do_not_leak_binary_noise():
    assert total_paid([0.1, 0.2]) == Decimal("0.3")


def test_paid_by_student_skips_scheduled_installments():
    payments = [
        SimpleNamespace(student_id="a", amount=Decimal("1000"), paid=True),
        SimpleNamespace(student_id="a", amount=Decimal("500"), paid=False),
        SimpleNamespace(student_id="b", amount=Decimal("250.50"), paid=True),
        SimpleNamespace(student_id="a", amount=Decimal("200"), paid=True),
    ]
    assert paid_by_student(payments) == {"a": Decimal("1200"), "b": Decimal("250.50")}


def test_format_money():
    assert format_money(Decimal("6999.00")) == "₹6,999"
    assert format_money(Decimal("3499.50")) == "₹3,499.50"
    assert format_money(None, symbol="$") == "$0"
