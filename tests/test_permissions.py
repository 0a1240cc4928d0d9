import pytest

from models import User
from utils.errors import NotFoundError, PermissionDenied, ValidationError
from utils.permissions import (
    ROLE_PERMISSIONS,
    Action,
    Role,
    create_user,
    get_actor,
    has_permission,
    require_permission,
    set_user_role,
)


def test_every_role_has_an_entry():
    assert set(ROLE_PERMISSIONS) == set(Role)


def test_super_admin_holds_every_action():
    for action in Action:
        assert has_permission("super_admin", action)


@pytest.mark.parametrize("role", ["bursary", "staff"])
def test_front_desk_actions_shared(role):
    assert has_permission(role, Action.ADD_STUDENT)
    assert has_permission(role, Action.RECEIVE_PAYMENT)
    assert has_permission(role, Action.VIEW_REPORTS)


@pytest.mark.parametrize(
    "action",
    [
        Action.APPROVE_PAYMENT,
        Action.EDIT_PAYMENT,
        Action.VOID_PAYMENT,
        Action.APPROVE_FEE_CHANGE,
        Action.PROMOTE_STUDENTS,
        Action.MANAGE_ROLES,
    ],
)
def test_privileged_actions_are_super_admin_only(action):
    assert not has_permission("bursary", action)
    assert not has_permission("staff", action)


def test_only_bursary_and_admin_propose_fee_changes():
    assert has_permission(Role.BURSARY, Action.PROPOSE_FEE_CHANGE)
    assert not has_permission(Role.STAFF, Action.PROPOSE_FEE_CHANGE)


def test_unknown_role_or_action_is_denied():
    assert not has_permission("bursar", Action.VIEW_REPORTS)
    assert not has_permission(None, Action.VIEW_REPORTS)
    assert not has_permission("super_admin", "launch_rockets")


def test_require_permission_raises_builtin_permission_error(staff):
    with pytest.raises(PermissionError):
        require_permission(staff.id, Action.APPROVE_PAYMENT)
    assert require_permission(staff.id, Action.RECEIVE_PAYMENT).id == staff.id


def test_get_actor_missing_and_inactive(app, staff, db):
    with pytest.raises(NotFoundError):
        get_actor(9999)
    with pytest.raises(PermissionDenied):
        get_actor(None)
    staff.is_active = False
    db.session.commit()
    with pytest.raises(PermissionDenied):
        get_actor(staff.id)


def test_create_user_rejects_duplicates_and_unknown_roles(app, staff):
    with pytest.raises(ValidationError):
        create_user("desk", "Someone Else")
    with pytest.raises(ValidationError):
        create_user("new", "New", role="principal")


def test_role_change_applies_on_next_call(db, admin, staff):
    with pytest.raises(PermissionDenied):
        require_permission(staff.id, Action.VOID_PAYMENT)
    set_user_role(staff.id, "super_admin", actor_id=admin.id)
    require_permission(staff.id, Action.VOID_PAYMENT)
    assert db.session.get(User, staff.id).role == "super_admin"


def test_set_user_role_requires_manage_roles(db, bursar, staff):
    with pytest.raises(PermissionDenied):
        set_user_role(staff.id, "super_admin", actor_id=bursar.id)
    assert db.session.get(User, staff.id).role == "staff"


def test_set_user_role_rejects_bad_input(db, admin, staff):
    with pytest.raises(ValidationError):
        set_user_role(staff.id, "principal", actor_id=admin.id)
    with pytest.raises(NotFoundError):
        set_user_role(9999, "bursary", actor_id=admin.id)
    assert db.session.get(User, staff.id).role == "staff"
