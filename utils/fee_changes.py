"""Two-step fee changes: a bursary officer proposes, a super_admin approves.

Approval overwrites the term's schedule row for that class, so every ledger
answer for the class and term changes from then on.
"""
from __future__ import annotations

from typing import List, Optional

from flask import current_app
from sqlalchemy import update

from extensions import db
from models import FeeChangeRequest
from utils import permission_required
from utils.classes import parse_class
from utils.db_helpers import compare_and_set, unit_of_work
from utils.errors import InvalidStateError, NotFoundError, ValidationError
from utils.permissions import Action
from utils.terms import get_term, upsert_fee_row
from utils.timezone_helpers import utc_now
from utils.validation import parse_amount

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"


def get_fee_change(request_id) -> FeeChangeRequest:
    req = db.session.get(FeeChangeRequest, request_id)
    if req is None:
        raise NotFoundError(f"Fee change {request_id} not found", entity="fee_change", entity_id=request_id)
    return req


@permission_required(Action.PROPOSE_FEE_CHANGE)
def propose_fee_change(term_id, class_name, new_intake_fee, returning_fee, actor_id) -> FeeChangeRequest:
    if term_id is None:
        raise ValidationError("Term is required", entity="fee_change")
    cls = parse_class(class_name)
    if cls is None:
        raise ValidationError(f"Unknown class '{class_name}'", entity="fee_change")
    new_fee = parse_amount(new_intake_fee, "New intake fee", allow_zero=True, entity="fee_change")
    returning = parse_amount(returning_fee, "Returning fee", allow_zero=True, entity="fee_change")
    term = get_term(term_id)

    with unit_of_work():
        req = FeeChangeRequest(
            term_id=term.id,
            class_name=cls.value,
            new_intake_fee=new_fee,
            returning_fee=returning,
            status=PENDING,
            requested_by=actor_id,
            created_at=utc_now(),
        )
        db.session.add(req)
    current_app.logger.info(
        "Fee change proposed for %s (term %s): new intake %s, returning %s",
        cls.value,
        term.id,
        new_fee,
        returning,
    )
    return req


def _decide(req: FeeChangeRequest, status: str, actor_id) -> bool:
    return compare_and_set(
        update(FeeChangeRequest)
        .where(FeeChangeRequest.id == req.id, FeeChangeRequest.status == PENDING)
        .values(status=status, approved_by=actor_id, decided_at=utc_now())
    )


def _ensure_pending(req: FeeChangeRequest) -> None:
    if req.status != PENDING:
        raise InvalidStateError(
            f"Fee change {req.id} was already {req.status}",
            entity="fee_change",
            entity_id=req.id,
            state=req.status,
        )


@permission_required(Action.APPROVE_FEE_CHANGE)
def approve_fee_change(request_id, actor_id) -> FeeChangeRequest:
    req = get_fee_change(request_id)
    _ensure_pending(req)
    with unit_of_work():
        if not _decide(req, APPROVED, actor_id):
            raise InvalidStateError(
                f"Fee change {request_id} was decided by someone else",
                entity="fee_change",
                entity_id=request_id,
            )
        upsert_fee_row(req.term, req.class_name, req.new_intake_fee, req.returning_fee)
    db.session.refresh(req)
    current_app.logger.info(
        "Fee change %s approved by user %s; %s fees for term %s updated",
        req.id,
        actor_id,
        req.class_name,
        req.term_id,
    )
    return req


@permission_required(Action.APPROVE_FEE_CHANGE)
def reject_fee_change(request_id, actor_id) -> FeeChangeRequest:
    req = get_fee_change(request_id)
    _ensure_pending(req)
    with unit_of_work():
        if not _decide(req, REJECTED, actor_id):
            raise InvalidStateError(
                f"Fee change {request_id} was decided by someone else",
                entity="fee_change",
                entity_id=request_id,
            )
    db.session.refresh(req)
    current_app.logger.info("Fee change %s rejected by user %s", req.id, actor_id)
    return req


def list_fee_changes(term_id=None, status: Optional[str] = None) -> List[FeeChangeRequest]:
    q = FeeChangeRequest.query
    if term_id is not None:
        q = q.filter(FeeChangeRequest.term_id == term_id)
    if status:
        q = q.filter(FeeChangeRequest.status == status)
    return q.order_by(FeeChangeRequest.created_at.desc(), FeeChangeRequest.id.desc()).all()
