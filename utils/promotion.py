from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

from flask import current_app

from extensions import db
from models import Student
from utils import permission_required
from utils.classes import is_terminal, next_class, requires_manual_promotion, section_of
from utils.db_helpers import unit_of_work
from utils.errors import InvalidStateError, ValidationError
from utils.permissions import Action
from utils.students import mark_archived
from utils.terms import FINAL_TERM, is_final_term, resolve_term

GRADUATED_REASON = "graduated"

PROMOTED = "promoted"
GRADUATED = "graduated"
MANUAL = "manual"


@dataclass
class PromotionResult:
    promoted: int = 0
    graduated: int = 0
    manual: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.promoted + self.graduated + self.manual


def _promote_one(student: Student, actor_id, manual_classes) -> str:
    if requires_manual_promotion(student.class_name, manual_classes):
        return MANUAL
    if is_terminal(student.class_name):
        mark_archived(student, GRADUATED_REASON, actor_id)
        return GRADUATED
    target = next_class(student.class_name)
    if target is None:
        raise InvalidStateError(
            f"Cannot promote from unknown class '{student.class_name}'",
            entity="student",
            entity_id=student.id,
            state=student.class_name,
        )
    student.previous_class = student.class_name
    student.class_name = target.value
    student.section = section_of(target).value
    student.is_new_intake = False
    return PROMOTED


@permission_required(Action.PROMOTE_STUDENTS)
def promote_all(actor_id, term_id=None) -> PromotionResult:
    """Move every active student up one class at the end of a session.

    Only allowed in the final term. Manually promoted classes are skipped,
    the terminal class graduates (archived, class kept), everyone else moves
    to the next class and stops being new intake. Each student is applied in
    its own savepoint so one bad row is reported in ``errors`` without
    undoing the rest.
    """
    term = resolve_term(term_id)
    if not is_final_term(term):
        raise ValidationError(
            f"Promotion runs only in the {FINAL_TERM} term (current: {term.ordinal})",
            entity="term",
            entity_id=term.id,
            state=term.ordinal,
        )
    manual_classes = current_app.config.get("MANUAL_PROMOTION_CLASSES") or ()
    result = PromotionResult()

    with unit_of_work():
        roster = (
            Student.query.filter(Student.is_archived.is_(False))
            .order_by(Student.id)
            .with_for_update()
            .all()
        )
        for student in roster:
            student_id = student.id
            try:
                with db.session.begin_nested():
                    outcome = _promote_one(student, actor_id, manual_classes)
            except Exception as exc:
                current_app.logger.exception("Promotion failed for student %s", student_id)
                result.errors.append({"student_id": student_id, "message": str(exc)})
                continue
            if outcome == PROMOTED:
                result.promoted += 1
            elif outcome == GRADUATED:
                result.graduated += 1
            else:
                result.manual += 1

    current_app.logger.info(
        "Promotion complete: %d promoted, %d graduated, %d manual, %d error(s)",
        result.promoted,
        result.graduated,
        result.manual,
        len(result.errors),
    )
    return result
