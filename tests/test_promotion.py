import pytest

from models import Student
from utils.errors import PermissionDenied, ValidationError
from utils.promotion import promote_all
from utils.students import archive_student


def _reload(db, student):
    return db.session.get(Student, student.id)


def test_promotion_rules(db, final_term, admin, make_student):
    creche = make_student("creche")
    p5 = make_student("primary_5", is_new_intake=True)
    jss2 = make_student("jss_2", is_new_intake=False)
    sss3 = make_student("sss_3")
    gone = make_student("primary_2")
    archive_student(gone.id, "transferred", actor_id=admin.id)

    result = promote_all(actor_id=admin.id)

    assert (result.promoted, result.graduated, result.manual) == (2, 1, 1)
    assert result.errors == []

    creche = _reload(db, creche)
    assert creche.class_name == "creche"
    assert creche.is_new_intake is True

    p5 = _reload(db, p5)
    assert p5.class_name == "jss_1"
    assert p5.previous_class == "primary_5"
    assert p5.section == "secondary"
    assert p5.is_new_intake is False

    jss2 = _reload(db, jss2)
    assert jss2.class_name == "jss_3"
    assert jss2.previous_class == "jss_2"

    sss3 = _reload(db, sss3)
    assert sss3.is_archived is True
    assert sss3.archive_reason == "graduated"
    assert sss3.class_name == "sss_3"
    assert sss3.archived_by == admin.id

    gone = _reload(db, gone)
    assert gone.class_name == "primary_2"
    assert gone.archive_reason == "transferred"


def test_promotion_only_in_final_term(term, admin, make_student):
    student = make_student("primary_1")
    with pytest.raises(ValidationError):
        promote_all(actor_id=admin.id)
    assert student.class_name == "primary_1"


def test_promotion_needs_an_active_term(app, admin):
    with pytest.raises(ValidationError):
        promote_all(actor_id=admin.id)


def test_promotion_is_super_admin_only(final_term, bursar):
    with pytest.raises(PermissionDenied):
        promote_all(actor_id=bursar.id)


def test_manual_classes_are_configurable(db, app, final_term, admin, make_student):
    app.config["MANUAL_PROMOTION_CLASSES"] = ("creche", "nursery_2")
    n2 = make_student("nursery_2")
    result = promote_all(actor_id=admin.id)
    assert result.manual == 1
    assert _reload(db, n2).class_name == "nursery_2"


def test_one_bad_row_does_not_stop_the_batch(db, final_term, admin, make_student):
    good = make_student("jss_1")
    bad = Student(
        reg_number="SG/19/999",
        first_name="Legacy",
        surname="Row",
        section="primary",
        class_name="basic_9",
        year_of_entry="19",
    )
    db.session.add(bad)
    db.session.commit()

    result = promote_all(actor_id=admin.id)

    assert result.promoted == 1
    assert len(result.errors) == 1
    assert result.errors[0]["student_id"] == bad.id
    assert "basic_9" in result.errors[0]["message"]
    assert _reload(db, good).class_name == "jss_2"
    assert _reload(db, bad).class_name == "basic_9"
