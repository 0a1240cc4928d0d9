from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, Optional

from flask import current_app

from extensions import db
from models import User
from utils import permission_required
from utils.db_helpers import unit_of_work
from utils.errors import NotFoundError, PermissionDenied, ValidationError


class Role(str, Enum):
    SUPER_ADMIN = "super_admin"
    BURSARY = "bursary"
    STAFF = "staff"


class Action(str, Enum):
    ADD_STUDENT = "add_student"
    EDIT_STUDENT = "edit_student"
    ARCHIVE_STUDENT = "archive_student"
    RECEIVE_PAYMENT = "receive_payment"
    VIEW_REPORTS = "view_reports"
    APPROVE_PAYMENT = "approve_payment"
    EDIT_PAYMENT = "edit_payment"
    VOID_PAYMENT = "void_payment"
    VIEW_AUDIT = "view_audit"
    PROPOSE_FEE_CHANGE = "propose_fee_change"
    APPROVE_FEE_CHANGE = "approve_fee_change"
    EDIT_FEE_SCHEDULE = "edit_fee_schedule"
    MANAGE_SESSIONS = "manage_sessions"
    PROMOTE_STUDENTS = "promote_students"
    MANAGE_ROLES = "manage_roles"


_FRONT_DESK = frozenset({Action.ADD_STUDENT, Action.RECEIVE_PAYMENT, Action.VIEW_REPORTS})

ROLE_PERMISSIONS: Dict[Role, FrozenSet[Action]] = {
    Role.SUPER_ADMIN: frozenset(Action),
    Role.BURSARY: _FRONT_DESK | {Action.PROPOSE_FEE_CHANGE},
    Role.STAFF: _FRONT_DESK,
}


def parse_role(value) -> Optional[Role]:
    if isinstance(value, Role):
        return value
    try:
        return Role(str(value or "").strip().lower())
    except ValueError:
        return None


def has_permission(role, action) -> bool:
    """Pure lookup: may ``role`` perform ``action``? Unknown roles/actions get False."""
    r = parse_role(role)
    if r is None:
        return False
    try:
        a = Action(action)
    except ValueError:
        return False
    return a in ROLE_PERMISSIONS[r]


def get_actor(actor_id) -> User:
    """Load the acting user fresh from the store; roles can change between sessions."""
    if actor_id is None:
        raise PermissionDenied("No acting user supplied", entity="user")
    user = db.session.get(User, actor_id)
    if user is None:
        raise NotFoundError(f"User {actor_id} not found", entity="user", entity_id=actor_id)
    if not user.is_active:
        raise PermissionDenied(
            f"User {user.username} is deactivated", entity="user", entity_id=user.id, state="inactive"
        )
    return user


def require_permission(actor_id, action: Action) -> User:
    user = get_actor(actor_id)
    if not has_permission(user.role, action):
        current_app.logger.warning(
            "Permission denied: user=%s role=%s action=%s", user.username, user.role, Action(action).value
        )
        raise PermissionDenied(
            f"Role '{user.role}' may not {Action(action).value.replace('_', ' ')}",
            entity="user",
            entity_id=user.id,
            state=user.role,
        )
    return user


def create_user(username: str, display_name: str, role=Role.STAFF, email: Optional[str] = None) -> User:
    """Bootstrap helper used by seeding/maintenance; not permission gated."""
    username = (username or "").strip()
    if not username:
        raise ValidationError("Username is required", entity="user")
    r = parse_role(role)
    if r is None:
        raise ValidationError(f"Unknown role '{role}'", entity="user")
    if User.query.filter_by(username=username).first() is not None:
        raise ValidationError(f"Username '{username}' is taken", entity="user")
    user = User(
        username=username,
        display_name=(display_name or "").strip() or username,
        email=email,
        role=r.value,
    )
    db.session.add(user)
    db.session.commit()
    current_app.logger.info("Created user %s with role %s", user.username, user.role)
    return user


@permission_required(Action.MANAGE_ROLES)
def set_user_role(user_id, role, actor_id) -> User:
    r = parse_role(role)
    if r is None:
        raise ValidationError(f"Unknown role '{role}'", entity="user", entity_id=user_id)
    with unit_of_work():
        user = db.session.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found", entity="user", entity_id=user_id)
        previous = user.role
        user.role = r.value
    current_app.logger.info("Role for %s changed %s -> %s by user %s", user.username, previous, user.role, actor_id)
    return user
