from __future__ import annotations

from typing import List, Optional

from flask import current_app
from sqlalchemy import func, or_

from extensions import db
from models import Student
from utils import permission_required
from utils.classes import parse_class, section_of
from utils.db_helpers import unit_of_work
from utils.errors import InvalidStateError, NotFoundError, ValidationError
from utils.identifiers import format_reg_number, normalize_entry_year
from utils.permissions import Action
from utils.timezone_helpers import utc_now
from utils.validation import require_text

EDITABLE_FIELDS = ("first_name", "middle_name", "surname", "class_name", "parent_phone", "is_new_intake")


def get_student(student_id) -> Student:
    student = db.session.get(Student, student_id)
    if student is None:
        raise NotFoundError(f"Student {student_id} not found", entity="student", entity_id=student_id)
    return student


def active_students():
    return Student.query.filter(Student.is_archived.is_(False))


def next_serial(section: str, year_of_entry: str) -> int:
    # Archived students keep their numbers, so they still count
    existing = (
        db.session.query(func.count(Student.id))
        .filter(Student.section == section, Student.year_of_entry == year_of_entry)
        .scalar()
    )
    return int(existing or 0) + 1


@permission_required(Action.ADD_STUDENT)
def register_student(
    first_name,
    surname,
    class_name,
    year_of_entry,
    actor_id,
    middle_name=None,
    parent_phone=None,
    is_new_intake=True,
) -> Student:
    first_name = require_text(first_name, "First name", entity="student")
    surname = require_text(surname, "Surname", entity="student")
    cls = parse_class(class_name)
    if cls is None:
        raise ValidationError(f"Unknown class '{class_name}'", entity="student")
    year = normalize_entry_year(year_of_entry)
    if not year:
        raise ValidationError(f"Year of entry must be numeric, got {year_of_entry!r}", entity="student")
    section = section_of(cls).value

    with unit_of_work():
        serial = next_serial(section, year)
        reg_number = format_reg_number(section, year, serial)
        # Gaps left by manual data fixes must not produce a duplicate
        while Student.query.filter_by(reg_number=reg_number).first() is not None:
            serial += 1
            reg_number = format_reg_number(section, year, serial)
        student = Student(
            reg_number=reg_number,
            first_name=first_name,
            middle_name=(middle_name or "").strip() or None,
            surname=surname,
            section=section,
            class_name=cls.value,
            parent_phone=(parent_phone or "").strip() or None,
            year_of_entry=year,
            is_new_intake=bool(is_new_intake),
        )
        db.session.add(student)
    current_app.logger.info("Registered student %s (%s) in %s", student.full_name, student.reg_number, cls.value)
    return student


@permission_required(Action.EDIT_STUDENT)
def update_student(student_id, actor_id, **changes) -> Student:
    student = get_student(student_id)
    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(
            f"Cannot change {', '.join(sorted(unknown))} on a student", entity="student", entity_id=student.id
        )
    if student.is_archived:
        raise InvalidStateError(
            f"Student {student.reg_number} is archived", entity="student", entity_id=student.id, state="archived"
        )
    values = {}
    for field in ("first_name", "surname"):
        if field in changes:
            values[field] = require_text(changes[field], field.replace("_", " ").capitalize(), entity="student")
    for field in ("middle_name", "parent_phone"):
        if field in changes:
            values[field] = (changes[field] or "").strip() or None
    if "class_name" in changes:
        cls = parse_class(changes["class_name"])
        if cls is None:
            raise ValidationError(f"Unknown class '{changes['class_name']}'", entity="student", entity_id=student.id)
        values["class_name"] = cls.value
        values["section"] = section_of(cls).value
    if "is_new_intake" in changes:
        values["is_new_intake"] = bool(changes["is_new_intake"])

    with unit_of_work():
        for field, value in values.items():
            setattr(student, field, value)
    current_app.logger.info("Updated student %s: %s", student.reg_number, ", ".join(sorted(values)) or "no changes")
    return student


@permission_required(Action.ARCHIVE_STUDENT)
def archive_student(student_id, reason, actor_id) -> Student:
    student = get_student(student_id)
    reason = require_text(reason, "Archive reason", entity="student", entity_id=student.id)
    if student.is_archived:
        raise InvalidStateError(
            f"Student {student.reg_number} is already archived",
            entity="student",
            entity_id=student.id,
            state="archived",
        )
    with unit_of_work():
        mark_archived(student, reason, actor_id)
    current_app.logger.info("Archived student %s: %s", student.reg_number, reason)
    return student


def mark_archived(student: Student, reason: str, actor_id) -> None:
    student.is_archived = True
    student.archived_at = utc_now()
    student.archived_by = actor_id
    student.archive_reason = reason


def search_students(query: str, limit: Optional[int] = 50) -> List[Student]:
    text = (query or "").strip().lower()
    if not text:
        return []
    like = f"%{text}%"
    q = active_students().filter(
        or_(
            func.lower(Student.first_name).like(like),
            func.lower(Student.middle_name).like(like),
            func.lower(Student.surname).like(like),
            func.lower(Student.reg_number).like(like),
        )
    ).order_by(Student.surname, Student.first_name)
    if limit:
        q = q.limit(limit)
    return q.all()


def students_by_class(class_name) -> List[Student]:
    cls = parse_class(class_name)
    if cls is None:
        return []
    return active_students().filter(Student.class_name == cls.value).order_by(Student.surname).all()


def recent_students(limit: int = 10) -> List[Student]:
    return active_students().order_by(Student.created_at.desc(), Student.id.desc()).limit(limit).all()
