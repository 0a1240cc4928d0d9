"""Store-backed report views over the pure ledger.

Each view loads the roster and the term's payments once and hands them to
``utils.ledger``. Without an explicit term the active term is used; when
there is none the views return zeros and empty groups.
"""
from __future__ import annotations

from collections import OrderedDict
from typing import Any, Dict, List, Optional

from models import Payment, Student, Term
from utils import ledger
from utils.classes import class_label
from utils.permissions import Action, require_permission
from utils.students import active_students, get_student
from utils.terms import get_active_term, get_term


def _check(actor_id) -> None:
    if actor_id is not None:
        require_permission(actor_id, Action.VIEW_REPORTS)


def _report_term(term_id=None) -> Optional[Term]:
    if term_id is not None:
        return get_term(term_id)
    return get_active_term()


def _term_payments(term: Optional[Term], student_id=None) -> List[Payment]:
    if term is None:
        return []
    q = Payment.query.filter(Payment.term_id == term.id)
    if student_id is not None:
        q = q.filter(Payment.student_id == student_id)
    return q.all()


def active_roster() -> List[Student]:
    return active_students().order_by(Student.surname, Student.first_name).all()


def dashboard_summary(term_id=None, actor_id=None) -> Dict[str, Any]:
    _check(actor_id)
    term = _report_term(term_id)
    roster = active_roster()
    payments = _term_payments(term)
    expected = ledger.expected_revenue(roster, term)
    collected = ledger.collected(term, payments)
    debtors = ledger.debtors_by_class(roster, term, payments)
    return {
        "term_id": term.id if term else None,
        "students": len(roster),
        "expected": expected,
        "collected": collected,
        "outstanding": ledger.outstanding(expected, collected),
        "collection_rate": ledger.collection_rate(expected, collected),
        "debtors": sum(len(group) for group in debtors.values()),
        "pending_approvals": sum(
            1 for p in payments if p.approval_status == "pending" and not p.is_voided
        ),
    }


def debtors_report(term_id=None, actor_id=None) -> "OrderedDict[str, List[Dict[str, Any]]]":
    """Debtors grouped by class in class order, each with the amount owed."""
    _check(actor_id)
    term = _report_term(term_id)
    roster = active_roster()
    payments = _term_payments(term)
    groups = ledger.order_by_class(ledger.debtors_by_class(roster, term, payments))
    report: "OrderedDict[str, List[Dict[str, Any]]]" = OrderedDict()
    for class_name, students in groups.items():
        report[class_name] = [
            {
                "student": s,
                "reg_number": s.reg_number,
                "name": s.full_name,
                "class_label": class_label(class_name),
                "balance": ledger.balance(s, term, payments),
            }
            for s in students
        ]
    return report


def student_balance(student_id, term_id=None, actor_id=None) -> Dict[str, Any]:
    _check(actor_id)
    student = get_student(student_id)
    term = _report_term(term_id)
    payments = _term_payments(term, student_id=student.id)
    fee = ledger.fee_payable(student, term)
    paid = ledger.total_paid(student, term, payments)
    return {
        "student_id": student.id,
        "term_id": term.id if term else None,
        "fee_payable": fee,
        "total_paid": paid,
        "balance": fee - paid,
        "amount_owed": max(ledger.ZERO, fee - paid),
        "status": ledger.payment_status(fee, paid),
    }


def student_records_report(term_id=None, actor_id=None) -> List[Dict[str, Any]]:
    _check(actor_id)
    term = _report_term(term_id)
    return ledger.student_records(active_roster(), term, _term_payments(term))


def class_summary_report(term_id=None, actor_id=None) -> List[Dict[str, Any]]:
    _check(actor_id)
    term = _report_term(term_id)
    return ledger.class_summary(active_roster(), term, _term_payments(term))
