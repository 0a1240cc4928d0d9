import os
import sys
from decimal import Decimal

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from app import create_app
from extensions import db as _db
from models import FeeScheduleRow
from utils.permissions import create_user
from utils.students import register_student
from utils.terms import activate_term, create_session, create_term


@pytest.fixture
def app():
    app = create_app({"SQLALCHEMY_DATABASE_URI": "sqlite://", "TESTING": True})
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def admin(app):
    return create_user("head", "Head Admin", role="super_admin")


@pytest.fixture
def bursar(app):
    return create_user("bursar", "Mrs. Okafor", role="bursary")


@pytest.fixture
def staff(app):
    return create_user("desk", "Front Desk", role="staff")


@pytest.fixture
def school_session(admin):
    return create_session("2025/2026", 2025, 2026, actor_id=admin.id)


@pytest.fixture
def term(admin, school_session):
    t = create_term(school_session.id, "1st", actor_id=admin.id)
    return activate_term(t.id, actor_id=admin.id)


@pytest.fixture
def final_term(admin, school_session):
    t = create_term(school_session.id, "3rd", actor_id=admin.id)
    return activate_term(t.id, actor_id=admin.id)


@pytest.fixture
def set_fees(app):
    def _set(term, class_name, new_intake_fee, returning_fee):
        row = FeeScheduleRow.query.filter_by(term_id=term.id, class_name=class_name).one()
        row.new_intake_fee = Decimal(str(new_intake_fee))
        row.returning_fee = Decimal(str(returning_fee))
        _db.session.commit()
        return row

    return _set


@pytest.fixture
def make_student(admin):
    counter = {"n": 0}

    def _make(class_name="primary_1", is_new_intake=True, surname=None, first_name=None, year=2025):
        counter["n"] += 1
        return register_student(
            first_name or f"Pupil{counter['n']}",
            surname or f"Surname{counter['n']}",
            class_name,
            year,
            actor_id=admin.id,
            is_new_intake=is_new_intake,
        )

    return _make
