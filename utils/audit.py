from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from extensions import db
from models import Payment, PaymentAudit
from utils.permissions import Action, require_permission
from utils.timezone_helpers import utc_now

AUDIT_ACTIONS = ("edited", "voided")


def record_payment_audit(
    payment: Payment,
    action: str,
    reason: str,
    performed_by: int,
    previous_amount: Optional[Decimal] = None,
    new_amount: Optional[Decimal] = None,
    previous_method: Optional[str] = None,
    new_method: Optional[str] = None,
) -> PaymentAudit:
    """Append an audit row in the caller's transaction; the caller commits.

    Rows are never updated or deleted afterwards (the mapping refuses both).
    """
    if action not in AUDIT_ACTIONS:
        raise ValueError(f"Unknown audit action {action!r}")
    entry = PaymentAudit(
        payment_id=payment.id,
        action=action,
        previous_amount=previous_amount,
        new_amount=new_amount,
        previous_method=previous_method,
        new_method=new_method,
        reason=reason,
        performed_by=performed_by,
        created_at=utc_now(),
    )
    db.session.add(entry)
    return entry


def fetch_payment_audit(payment_id=None, actor_id=None, limit: int = 50) -> List[PaymentAudit]:
    """Newest-first audit rows, optionally for one payment.

    When ``actor_id`` is supplied the actor must be allowed to read the audit log.
    """
    if actor_id is not None:
        require_permission(actor_id, Action.VIEW_AUDIT)
    q = PaymentAudit.query
    if payment_id is not None:
        q = q.filter(PaymentAudit.payment_id == payment_id)
    return q.order_by(PaymentAudit.created_at.desc(), PaymentAudit.id.desc()).limit(limit).all()
