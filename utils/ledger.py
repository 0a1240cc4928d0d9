"""Fee ledger arithmetic.

Every answer here is recomputed from the supplied student, term and payment
records; nothing is cached or stored. Editing or voiding a historical payment
therefore changes every balance derived from it on the next call.

The functions accept ORM rows or any object exposing the same attributes and
never raise on missing data: absent terms, schedules or rows read as zero.
"""
from __future__ import annotations

from collections import OrderedDict
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional

from utils.classes import ALL_CLASSES, class_order

ZERO = Decimal("0")


def to_money(value: Any) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return ZERO


def _class_key(value) -> str:
    return getattr(value, "value", value) or ""


def schedule_row(term, class_name) -> Optional[Any]:
    if term is None:
        return None
    wanted = _class_key(class_name)
    for row in getattr(term, "fees", None) or []:
        if _class_key(row.class_name) == wanted:
            return row
    return None


def fee_payable(student, term) -> Decimal:
    """What ``student`` is charged for ``term``: intake or returning fee of their class."""
    if student is None:
        return ZERO
    row = schedule_row(term, student.class_name)
    if row is None:
        return ZERO
    return to_money(row.new_intake_fee if student.is_new_intake else row.returning_fee)


def counts_toward_ledger(payment) -> bool:
    return payment.approval_status == "approved" and not payment.is_voided


def _term_id(term):
    return getattr(term, "id", None)


def total_paid(student, term, payments: Iterable) -> Decimal:
    if student is None or term is None:
        return ZERO
    tid = _term_id(term)
    return sum(
        (
            to_money(p.amount)
            for p in payments
            if p.student_id == student.id and p.term_id == tid and counts_toward_ledger(p)
        ),
        ZERO,
    )


def balance(student, term, payments: Iterable) -> Decimal:
    """Fee payable minus approved, non-voided payments. Negative means overpaid."""
    return fee_payable(student, term) - total_paid(student, term, payments)


def amount_owed(student, term, payments: Iterable) -> Decimal:
    return max(ZERO, balance(student, term, payments))


def expected_revenue(students: Iterable, term) -> Decimal:
    if term is None:
        return ZERO
    return sum((fee_payable(s, term) for s in students), ZERO)


def collected(term, payments: Iterable) -> Decimal:
    if term is None:
        return ZERO
    tid = _term_id(term)
    return sum((to_money(p.amount) for p in payments if p.term_id == tid and counts_toward_ledger(p)), ZERO)


def outstanding(expected: Decimal, collected_amount: Decimal) -> Decimal:
    return to_money(expected) - to_money(collected_amount)


def collection_rate(expected: Decimal, collected_amount: Decimal) -> Decimal:
    """Percentage of the expected revenue already collected, two decimals."""
    expected = to_money(expected)
    if expected <= 0:
        return ZERO
    return (to_money(collected_amount) / expected * 100).quantize(Decimal("0.01"))


def debtors_by_class(students: Iterable, term, payments: Iterable) -> Dict[str, List[Any]]:
    """Group students owing a positive balance under their current class.

    Groups appear in the order their first debtor was seen; use
    ``order_by_class`` to render them in class order.
    """
    payments = list(payments)
    groups: Dict[str, List[Any]] = {}
    if term is None:
        return groups
    for student in students:
        if balance(student, term, payments) > 0:
            groups.setdefault(_class_key(student.class_name), []).append(student)
    return groups


def order_by_class(groups: Dict[str, List[Any]]) -> "OrderedDict[str, List[Any]]":
    return OrderedDict((k, groups[k]) for k in sorted(groups, key=class_order))


def payment_status(fee: Decimal, paid: Decimal) -> str:
    fee, paid = to_money(fee), to_money(paid)
    if fee > 0 and fee - paid <= 0:
        return "paid"
    if paid > 0:
        return "partial"
    return "unpaid"


def student_records(students: Iterable, term, payments: Iterable) -> List[Dict[str, Any]]:
    """Per-student statement lines sorted by class order, then surname."""
    payments = list(payments)
    records = []
    for student in students:
        fee = fee_payable(student, term)
        paid = total_paid(student, term, payments)
        records.append(
            {
                "student": student,
                "class_name": _class_key(student.class_name),
                "fee_payable": fee,
                "total_paid": paid,
                "amount_remaining": max(ZERO, fee - paid),
                "status": payment_status(fee, paid),
            }
        )
    records.sort(key=lambda r: (class_order(r["class_name"]), (r["student"].surname or "").lower()))
    return records


def class_summary(students: Iterable, term, payments: Iterable) -> List[Dict[str, Any]]:
    students = list(students)
    payments = list(payments)
    debtors = debtors_by_class(students, term, payments)
    summary = []
    for cls in ALL_CLASSES:
        in_class = [s for s in students if _class_key(s.class_name) == cls.value]
        owing = debtors.get(cls.value, [])
        summary.append(
            {
                "class_name": cls.value,
                "students": len(in_class),
                "debtors": len(owing),
                "debt": sum((balance(s, term, payments) for s in owing), ZERO),
            }
        )
    return summary
