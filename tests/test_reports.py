from decimal import Decimal

import pytest

from models import User
from utils.errors import PermissionDenied
from utils.payments import approve_payment, submit_payment
from utils.reports import (
    active_roster,
    class_summary_report,
    dashboard_summary,
    debtors_report,
    student_balance,
    student_records_report,
)
from utils.students import archive_student


@pytest.fixture
def roster(term, make_student, set_fees, staff, admin):
    set_fees(term, "primary_1", 100000, 85000)
    set_fees(term, "jss_1", 140000, 120000)
    jss = make_student("jss_1", is_new_intake=False, surname="Adamu")
    paid_up = make_student("primary_1", surname="Bello")
    partial = make_student("primary_1", surname="Cole")
    left = make_student("primary_1", surname="Dike")
    for student, amount in ((paid_up, 100000), (partial, 40000)):
        p = submit_payment(student.id, amount, "cash", actor_id=staff.id)
        approve_payment(p.id, actor_id=admin.id)
    submit_payment(jss.id, 5000, "pos", actor_id=staff.id)
    archive_student(left.id, "withdrawn", actor_id=admin.id)
    return {"jss": jss, "paid_up": paid_up, "partial": partial, "left": left}


def test_dashboard_totals(roster):
    summary = dashboard_summary()
    assert summary["students"] == 3
    assert summary["expected"] == Decimal("320000")
    assert summary["collected"] == Decimal("140000")
    assert summary["outstanding"] == Decimal("180000")
    assert summary["collection_rate"] == Decimal("43.75")
    assert summary["debtors"] == 2
    assert summary["pending_approvals"] == 1


def test_dashboard_without_active_term_is_zero(app, make_student):
    make_student()
    summary = dashboard_summary()
    assert summary["term_id"] is None
    assert summary["expected"] == 0
    assert summary["collected"] == 0
    assert summary["collection_rate"] == 0
    assert summary["debtors"] == 0


def test_dashboard_checks_permission_when_actor_given(db, roster, staff):
    assert dashboard_summary(actor_id=staff.id)["students"] == 3
    user = db.session.get(User, staff.id)
    user.is_active = False
    db.session.commit()
    with pytest.raises(PermissionDenied):
        dashboard_summary(actor_id=staff.id)


def test_debtors_report_in_class_order(roster):
    report = debtors_report()
    assert list(report) == ["primary_1", "jss_1"]
    assert [row["student"].id for row in report["primary_1"]] == [roster["partial"].id]
    assert report["primary_1"][0]["balance"] == Decimal("60000")
    assert report["jss_1"][0]["balance"] == Decimal("120000")
    assert report["jss_1"][0]["class_label"] == "JSS 1"


def test_student_balance(roster):
    owed = student_balance(roster["partial"].id)
    assert owed["fee_payable"] == Decimal("100000")
    assert owed["total_paid"] == Decimal("40000")
    assert owed["balance"] == Decimal("60000")
    assert owed["status"] == "partial"
    assert student_balance(roster["paid_up"].id)["status"] == "paid"


def test_records_and_class_summary(roster):
    records = student_records_report()
    assert [r["student"].surname for r in records] == ["Bello", "Cole", "Adamu"]
    assert [r["status"] for r in records] == ["paid", "partial", "unpaid"]

    summary = {row["class_name"]: row for row in class_summary_report()}
    assert summary["primary_1"]["students"] == 2
    assert summary["primary_1"]["debtors"] == 1
    assert summary["jss_1"]["debt"] == Decimal("120000")
    assert summary["sss_3"]["students"] == 0


def test_active_roster_excludes_archived(roster):
    assert roster["left"].id not in {s.id for s in active_roster()}
