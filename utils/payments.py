"""Payment approval workflow.

A payment is created ``pending`` and only starts counting toward balances and
collections once approved. Independently of approval, a super_admin may edit
the amount/method or void the payment; both append to the audit trail and a
voided payment is frozen for good.

Every transition is a compare-and-set UPDATE keyed on the state that was
validated, so two reviewers racing on the same payment cannot both win.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy import update

from extensions import db
from models import Payment, Student
from utils import ledger, permission_required
from utils.audit import record_payment_audit
from utils.classes import class_label
from utils.db_helpers import compare_and_set, unit_of_work
from utils.errors import InvalidStateError, LedgerError, NotFoundError, ValidationError
from utils.identifiers import generate_transaction_id
from utils.permissions import Action, get_actor
from utils.terms import get_active_session, get_active_term, resolve_term
from utils.timezone_helpers import to_school_time, utc_now
from utils.validation import parse_amount, require_text

PAYMENT_METHODS = ("cash", "pos", "transfer")

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"

DECISIONS = {"approve": APPROVED, "reject": REJECTED}

RECEIPT_AVAILABLE = "available"
RECEIPT_AWAITING_APPROVAL = "awaiting_approval"
RECEIPT_REJECTED = "rejected"
RECEIPT_VOIDED = "voided"


def _parse_method(method) -> str:
    value = str(method or "").strip().lower()
    if value not in PAYMENT_METHODS:
        raise ValidationError(
            f"Payment method must be one of {', '.join(PAYMENT_METHODS)}", entity="payment"
        )
    return value


def _state(payment: Payment) -> str:
    return "voided" if payment.is_voided else payment.approval_status


def get_payment(payment_id) -> Payment:
    payment = db.session.get(Payment, payment_id)
    if payment is None:
        raise NotFoundError(f"Payment {payment_id} not found", entity="payment", entity_id=payment_id)
    return payment


def _unique_transaction_id(attempts: int = 5) -> str:
    for _ in range(attempts):
        txn = generate_transaction_id()
        if Payment.query.filter_by(transaction_id=txn).first() is None:
            return txn
    raise LedgerError(
        f"Could not generate a unique transaction id after {attempts} attempts", entity="payment", state="txn_collision"
    )


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------

@permission_required(Action.RECEIVE_PAYMENT)
def submit_payment(student_id, amount, method, actor_id, term_id=None, notes=None) -> Payment:
    amount = parse_amount(amount, "Amount", entity="payment")
    method = _parse_method(method)
    if get_active_session() is None or get_active_term() is None:
        raise ValidationError(
            "No active term/session. Activate a term before receiving payments.", entity="term", entity_id=term_id
        )
    term = resolve_term(term_id)
    if term.session is None:
        raise ValidationError("Term is not attached to an academic session", entity="term", entity_id=term.id)
    actor = get_actor(actor_id)

    with unit_of_work():
        # Row lock serializes against end-of-session promotion
        student = Student.query.filter_by(id=student_id).with_for_update().first()
        if student is None:
            raise NotFoundError(f"Student {student_id} not found", entity="student", entity_id=student_id)
        if student.is_archived:
            raise ValidationError(
                f"Student {student.reg_number} is archived and cannot receive payments",
                entity="student",
                entity_id=student.id,
                state="archived",
            )
        existing = Payment.query.filter_by(student_id=student.id, term_id=term.id).all()
        fee = ledger.fee_payable(student, term)
        current_balance = ledger.balance(student, term, existing)
        payment = Payment(
            transaction_id=_unique_transaction_id(),
            student_id=student.id,
            session_id=term.session_id,
            term_id=term.id,
            amount=amount,
            fee_payable=fee,
            outstanding_balance=max(ledger.ZERO, current_balance - amount),
            method=method,
            received_by=actor.display_name,
            received_by_id=actor.id,
            notes=(notes or "").strip() or None,
            approval_status=PENDING,
            is_voided=False,
            created_at=utc_now(),
        )
        db.session.add(payment)
    current_app.logger.info(
        "Payment %s of %s (%s) submitted for student %s by %s; awaiting approval",
        payment.transaction_id,
        amount,
        method,
        student_id,
        actor.username,
    )
    return payment


# ---------------------------------------------------------------------------
# Approval
# ---------------------------------------------------------------------------

@permission_required(Action.APPROVE_PAYMENT)
def decide_payment(payment_id, decision, actor_id, notes=None) -> Payment:
    target = DECISIONS.get(str(decision or "").strip().lower())
    if target is None:
        raise ValidationError("Decision must be 'approve' or 'reject'", entity="payment", entity_id=payment_id)
    payment = get_payment(payment_id)
    if payment.is_voided or payment.approval_status != PENDING:
        raise InvalidStateError(
            f"Payment {payment.transaction_id} was already processed ({_state(payment)})",
            entity="payment",
            entity_id=payment.id,
            state=_state(payment),
        )

    with unit_of_work():
        won = compare_and_set(
            update(Payment)
            .where(
                Payment.id == payment.id,
                Payment.approval_status == PENDING,
                Payment.is_voided.is_(False),
            )
            .values(
                approval_status=target,
                approved_by=actor_id,
                approved_at=utc_now(),
                reviewer_notes=(notes or "").strip() or None,
            )
        )
        if not won:
            raise InvalidStateError(
                f"Payment {payment_id} was decided by another reviewer",
                entity="payment",
                entity_id=payment_id,
            )
    db.session.refresh(payment)
    current_app.logger.info("Payment %s %s by user %s", payment.transaction_id, target, actor_id)
    return payment


def approve_payment(payment_id, actor_id, notes=None) -> Payment:
    return decide_payment(payment_id, "approve", actor_id=actor_id, notes=notes)


def reject_payment(payment_id, actor_id, notes=None) -> Payment:
    return decide_payment(payment_id, "reject", actor_id=actor_id, notes=notes)


# ---------------------------------------------------------------------------
# Corrections
# ---------------------------------------------------------------------------

def _ensure_not_voided(payment: Payment, verb: str) -> None:
    if payment.is_voided:
        raise InvalidStateError(
            f"Payment {payment.transaction_id} is voided and cannot be {verb}",
            entity="payment",
            entity_id=payment.id,
            state="voided",
        )


@permission_required(Action.EDIT_PAYMENT)
def edit_payment(payment_id, new_amount, new_method, reason, actor_id) -> Payment:
    reason = require_text(reason, "A reason for the edit", entity="payment", entity_id=payment_id)
    amount = parse_amount(new_amount, "Amount", entity="payment")
    method = _parse_method(new_method)
    payment = get_payment(payment_id)
    _ensure_not_voided(payment, "edited")
    previous_amount, previous_method = payment.amount, payment.method

    with unit_of_work():
        won = compare_and_set(
            update(Payment)
            .where(
                Payment.id == payment.id,
                Payment.is_voided.is_(False),
                Payment.amount == previous_amount,
                Payment.method == previous_method,
            )
            .values(amount=amount, method=method)
        )
        if not won:
            raise InvalidStateError(
                f"Payment {payment_id} changed while it was being edited",
                entity="payment",
                entity_id=payment_id,
            )
        record_payment_audit(
            payment,
            "edited",
            reason,
            actor_id,
            previous_amount=previous_amount,
            new_amount=amount,
            previous_method=previous_method,
            new_method=method,
        )
    db.session.refresh(payment)
    current_app.logger.info(
        "Payment %s edited by user %s: %s %s -> %s %s (%s)",
        payment.transaction_id,
        actor_id,
        previous_amount,
        previous_method,
        amount,
        method,
        reason,
    )
    return payment


@permission_required(Action.VOID_PAYMENT)
def void_payment(payment_id, reason, actor_id) -> Payment:
    reason = require_text(reason, "A reason for voiding", entity="payment", entity_id=payment_id)
    payment = get_payment(payment_id)
    _ensure_not_voided(payment, "voided again")
    previous_amount, previous_method = payment.amount, payment.method

    with unit_of_work():
        won = compare_and_set(
            update(Payment)
            .where(Payment.id == payment.id, Payment.is_voided.is_(False))
            .values(is_voided=True, voided_at=utc_now(), voided_by=actor_id)
        )
        if not won:
            raise InvalidStateError(
                f"Payment {payment_id} was voided by someone else",
                entity="payment",
                entity_id=payment_id,
                state="voided",
            )
        record_payment_audit(
            payment,
            "voided",
            reason,
            actor_id,
            previous_amount=previous_amount,
            new_amount=ledger.ZERO,
            previous_method=previous_method,
            new_method=None,
        )
    db.session.refresh(payment)
    current_app.logger.info("Payment %s voided by user %s (%s)", payment.transaction_id, actor_id, reason)
    return payment


# ---------------------------------------------------------------------------
# Receipts
# ---------------------------------------------------------------------------

def receipt_status(payment: Payment) -> str:
    if payment.is_voided:
        return RECEIPT_VOIDED
    if payment.approval_status == APPROVED:
        return RECEIPT_AVAILABLE
    if payment.approval_status == REJECTED:
        return RECEIPT_REJECTED
    return RECEIPT_AWAITING_APPROVAL


def build_receipt(payment_id) -> Dict[str, Any]:
    """Printable receipt data; only approved, non-voided payments have one."""
    payment = get_payment(payment_id)
    status = receipt_status(payment)
    if status != RECEIPT_AVAILABLE:
        raise InvalidStateError(
            f"No receipt for payment {payment.transaction_id}: {status.replace('_', ' ')}",
            entity="payment",
            entity_id=payment.id,
            state=status,
        )
    student = payment.student
    term = payment.term
    term_payments = Payment.query.filter_by(student_id=student.id, term_id=term.id).all()
    return {
        "transaction_id": payment.transaction_id,
        "student_name": student.full_name,
        "reg_number": student.reg_number,
        "class_name": student.class_name,
        "class_label": class_label(student.class_name),
        "session": term.session.name if term.session else None,
        "term": term.ordinal,
        "amount": ledger.to_money(payment.amount),
        "method": payment.method,
        "fee_payable": ledger.fee_payable(student, term),
        "outstanding_balance": ledger.amount_owed(student, term, term_payments),
        "received_by": payment.received_by,
        "paid_at": to_school_time(payment.created_at),
        "approved_at": to_school_time(payment.approved_at),
    }


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def list_payments(term_id=None, student_id=None, status: Optional[str] = None, include_voided: bool = True) -> List[Payment]:
    q = Payment.query
    if term_id is not None:
        q = q.filter(Payment.term_id == term_id)
    if student_id is not None:
        q = q.filter(Payment.student_id == student_id)
    if status:
        q = q.filter(Payment.approval_status == status)
    if not include_voided:
        q = q.filter(Payment.is_voided.is_(False))
    return q.order_by(Payment.created_at.desc(), Payment.id.desc()).all()


def pending_approvals() -> List[Payment]:
    return (
        Payment.query.filter(Payment.approval_status == PENDING, Payment.is_voided.is_(False))
        .order_by(Payment.created_at.asc(), Payment.id.asc())
        .all()
    )


def student_payment_history(student_id) -> List[Payment]:
    if db.session.get(Student, student_id) is None:
        raise NotFoundError(f"Student {student_id} not found", entity="student", entity_id=student_id)
    return list_payments(student_id=student_id)
