from __future__ import annotations

from typing import Iterable, List, Mapping, Optional

from flask import current_app
from sqlalchemy import update

from extensions import db
from models import AcademicSession, FeeScheduleRow, Payment, Term
from utils import permission_required
from utils.classes import class_order, default_fee_schedule, parse_class
from utils.db_helpers import unit_of_work
from utils.errors import InvalidStateError, NotFoundError, ValidationError
from utils.permissions import Action
from utils.validation import parse_amount, require_text

TERM_ORDINALS = ("1st", "2nd", "3rd")
FINAL_TERM = "3rd"


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def get_active_session() -> Optional[AcademicSession]:
    return AcademicSession.query.filter_by(is_active=True).first()


def get_active_term() -> Optional[Term]:
    return Term.query.filter_by(is_active=True).first()


def get_session(session_id) -> AcademicSession:
    sess = db.session.get(AcademicSession, session_id)
    if sess is None:
        raise NotFoundError(f"Session {session_id} not found", entity="session", entity_id=session_id)
    return sess


def get_term(term_id) -> Term:
    term = db.session.get(Term, term_id)
    if term is None:
        raise NotFoundError(f"Term {term_id} not found", entity="term", entity_id=term_id)
    return term


def resolve_term(term_id=None) -> Term:
    """The given term, or the active one; ValidationError when neither exists."""
    if term_id is not None:
        return get_term(term_id)
    term = get_active_term()
    if term is None:
        raise ValidationError("No active term. Activate a term before recording fees or payments.", entity="term")
    return term


def is_final_term(term: Optional[Term]) -> bool:
    return term is not None and term.ordinal == FINAL_TERM


def fee_schedule(term: Term) -> List[FeeScheduleRow]:
    return sorted(term.fees, key=lambda r: class_order(r.class_name))


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

@permission_required(Action.MANAGE_SESSIONS)
def create_session(name, start_year, end_year, actor_id) -> AcademicSession:
    name = require_text(name, "Session name", entity="session")
    try:
        start, end = int(start_year), int(end_year)
    except (TypeError, ValueError):
        raise ValidationError("Start and end year must be whole numbers", entity="session") from None
    if end < start:
        raise ValidationError("End year cannot be before start year", entity="session")
    with unit_of_work():
        sess = AcademicSession(name=name, start_year=start, end_year=end, is_active=False)
        db.session.add(sess)
    current_app.logger.info("Created academic session %s", sess.name)
    return sess


@permission_required(Action.MANAGE_SESSIONS)
def activate_session(session_id, actor_id) -> AcademicSession:
    sess = get_session(session_id)
    with unit_of_work():
        _make_session_active(sess)
        # An active term must belong to the active session
        db.session.execute(
            update(Term)
            .where(Term.session_id != sess.id, Term.is_active.is_(True))
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
    current_app.logger.info("Activated academic session %s", sess.name)
    return sess


def _make_session_active(sess: AcademicSession) -> None:
    db.session.execute(
        update(AcademicSession)
        .where(AcademicSession.id != sess.id, AcademicSession.is_active.is_(True))
        .values(is_active=False)
        .execution_options(synchronize_session=False)
    )
    sess.is_active = True


@permission_required(Action.MANAGE_SESSIONS)
def delete_session(session_id, actor_id) -> None:
    sess = get_session(session_id)
    term_ids = [t.id for t in sess.terms]
    if term_ids and Payment.query.filter(Payment.term_id.in_(term_ids)).first() is not None:
        # Payments carry an append-only audit trail; they are never cascaded away
        raise InvalidStateError(
            f"Session {sess.name} has recorded payments and cannot be deleted",
            entity="session",
            entity_id=sess.id,
        )
    with unit_of_work():
        db.session.delete(sess)
    current_app.logger.info("Deleted academic session %s with %d term(s)", sess.name, len(term_ids))


# ---------------------------------------------------------------------------
# Terms
# ---------------------------------------------------------------------------

@permission_required(Action.MANAGE_SESSIONS)
def create_term(session_id, ordinal, actor_id) -> Term:
    sess = get_session(session_id)
    ordinal = str(ordinal or "").strip().lower()
    if ordinal not in TERM_ORDINALS:
        raise ValidationError(f"Term must be one of {', '.join(TERM_ORDINALS)}", entity="term")
    if any(t.ordinal == ordinal for t in sess.terms):
        raise ValidationError(f"{ordinal} term already exists for {sess.name}", entity="term")
    with unit_of_work():
        term = Term(session_id=sess.id, ordinal=ordinal, is_active=False)
        term.fees = [FeeScheduleRow(**row) for row in default_fee_schedule()]
        db.session.add(term)
    current_app.logger.info("Created %s term for %s with default fee schedule", ordinal, sess.name)
    return term


@permission_required(Action.MANAGE_SESSIONS)
def activate_term(term_id, actor_id) -> Term:
    term = get_term(term_id)
    with unit_of_work():
        db.session.execute(
            update(Term)
            .where(Term.id != term.id, Term.is_active.is_(True))
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        term.is_active = True
        _make_session_active(term.session)
    current_app.logger.info("Activated %s term (session %s)", term.ordinal, term.session.name)
    return term


# ---------------------------------------------------------------------------
# Fee schedule
# ---------------------------------------------------------------------------

def upsert_fee_row(term: Term, class_name, new_intake_fee, returning_fee) -> FeeScheduleRow:
    """Overwrite (or create) the schedule row for one class. Caller commits."""
    cls = parse_class(class_name)
    if cls is None:
        raise ValidationError(f"Unknown class '{class_name}'", entity="term", entity_id=term.id)
    row = next((r for r in term.fees if r.class_name == cls.value), None)
    if row is None:
        row = FeeScheduleRow(class_name=cls.value)
        term.fees.append(row)
    row.new_intake_fee = new_intake_fee
    row.returning_fee = returning_fee
    return row


@permission_required(Action.EDIT_FEE_SCHEDULE)
def update_fee_schedule(term_id, rows: Iterable[Mapping], actor_id) -> List[FeeScheduleRow]:
    """Direct bulk edit of a term's whole schedule table."""
    term = get_term(term_id)
    parsed = []
    for row in rows:
        cls = parse_class(row.get("class_name"))
        if cls is None:
            raise ValidationError(f"Unknown class '{row.get('class_name')}'", entity="term", entity_id=term.id)
        parsed.append(
            (
                cls,
                parse_amount(row.get("new_intake_fee"), "New intake fee", allow_zero=True, entity="term"),
                parse_amount(row.get("returning_fee"), "Returning fee", allow_zero=True, entity="term"),
            )
        )
    with unit_of_work():
        for cls, new_fee, returning in parsed:
            upsert_fee_row(term, cls, new_fee, returning)
    current_app.logger.info("Fee schedule for term %s updated (%d row(s))", term.id, len(parsed))
    return fee_schedule(term)
