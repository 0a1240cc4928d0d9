from decimal import Decimal

import pytest

from models import AcademicSession, FeeScheduleRow, Term
from utils.errors import InvalidStateError, PermissionDenied, ValidationError
from utils.payments import submit_payment
from utils.terms import (
    activate_session,
    activate_term,
    create_session,
    create_term,
    delete_session,
    fee_schedule,
    get_active_session,
    get_active_term,
    is_final_term,
    resolve_term,
    update_fee_schedule,
)


def test_new_term_is_seeded_with_default_schedule(admin, school_session):
    term = create_term(school_session.id, "2nd", actor_id=admin.id)
    rows = fee_schedule(term)
    assert len(rows) == 16
    assert [r.class_name for r in rows][:2] == ["creche", "tender_love_1"]
    primary_1 = next(r for r in rows if r.class_name == "primary_1")
    assert primary_1.returning_fee == Decimal("100000")
    assert primary_1.new_intake_fee == Decimal("115000")
    sss_3 = rows[-1]
    assert sss_3.class_name == "sss_3"
    assert sss_3.new_intake_fee == Decimal("170000")


def test_term_ordinal_rules(admin, school_session):
    create_term(school_session.id, "1st", actor_id=admin.id)
    with pytest.raises(ValidationError):
        create_term(school_session.id, "1st", actor_id=admin.id)
    with pytest.raises(ValidationError):
        create_term(school_session.id, "4th", actor_id=admin.id)


def test_session_year_validation(admin):
    with pytest.raises(ValidationError):
        create_session("2026/2025", 2026, 2025, actor_id=admin.id)
    with pytest.raises(ValidationError):
        create_session("", 2025, 2026, actor_id=admin.id)


def test_only_one_active_term_and_session(admin):
    old = create_session("2024/2025", 2024, 2025, actor_id=admin.id)
    new = create_session("2025/2026", 2025, 2026, actor_id=admin.id)
    assert get_active_session() is None
    old_third = create_term(old.id, "3rd", actor_id=admin.id)
    new_first = create_term(new.id, "1st", actor_id=admin.id)

    activate_term(old_third.id, actor_id=admin.id)
    assert get_active_term().id == old_third.id
    assert get_active_session().id == old.id

    activate_term(new_first.id, actor_id=admin.id)
    assert Term.query.filter_by(is_active=True).count() == 1
    assert AcademicSession.query.filter_by(is_active=True).count() == 1
    assert get_active_session().id == new.id


def test_activating_a_session_clears_foreign_active_term(admin):
    old = create_session("2024/2025", 2024, 2025, actor_id=admin.id)
    new = create_session("2025/2026", 2025, 2026, actor_id=admin.id)
    activate_term(create_term(old.id, "1st", actor_id=admin.id).id, actor_id=admin.id)
    activate_session(new.id, actor_id=admin.id)
    assert get_active_session().id == new.id
    assert get_active_term() is None
    with pytest.raises(ValidationError):
        resolve_term()


def test_final_term_detection(final_term, term):
    assert is_final_term(final_term)
    assert not is_final_term(term)
    assert not is_final_term(None)


def test_delete_session_cascades_terms(db, admin, school_session):
    create_term(school_session.id, "1st", actor_id=admin.id)
    delete_session(school_session.id, actor_id=admin.id)
    assert Term.query.count() == 0
    assert FeeScheduleRow.query.count() == 0


def test_delete_session_refused_when_payments_exist(term, school_session, admin, staff, make_student):
    student = make_student()
    submit_payment(student.id, 1000, "cash", actor_id=staff.id)
    with pytest.raises(InvalidStateError):
        delete_session(school_session.id, actor_id=admin.id)
    assert Term.query.count() == 1


def test_session_management_is_super_admin_only(bursar, school_session):
    with pytest.raises(PermissionDenied):
        create_term(school_session.id, "1st", actor_id=bursar.id)
    with pytest.raises(PermissionDenied):
        activate_session(school_session.id, actor_id=bursar.id)


def test_bulk_fee_schedule_edit(term, admin, bursar):
    rows = [
        {"class_name": "JSS 1", "new_intake_fee": "130,000", "returning_fee": "110000"},
        {"class_name": "creche", "new_intake_fee": 0, "returning_fee": 0},
    ]
    with pytest.raises(PermissionDenied):
        update_fee_schedule(term.id, rows, actor_id=bursar.id)
    schedule = update_fee_schedule(term.id, rows, actor_id=admin.id)
    jss_1 = next(r for r in schedule if r.class_name == "jss_1")
    assert jss_1.new_intake_fee == Decimal("130000")
    assert jss_1.returning_fee == Decimal("110000")
    assert len(schedule) == 16

    with pytest.raises(ValidationError):
        update_fee_schedule(term.id, [{"class_name": "jss_1", "new_intake_fee": -1, "returning_fee": 0}], actor_id=admin.id)
