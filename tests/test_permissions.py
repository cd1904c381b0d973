"""
Tests for the permission gate and role administration.
"""

import pytest

from reconcile.components.permissions import PermissionGate
from reconcile.exceptions import (
    PermissionDeniedError,
    RoleRequestNotFoundError,
    UserNotFoundError,
    ValidationFailedError,
)
from reconcile.schemas.users import Permission, RoleRequestStatus, User, UserRole
from reconcile.state import Workspace


@pytest.fixture
def gate():
    return PermissionGate(Workspace())


@pytest.mark.parametrize("role,permission,expected", [
    (UserRole.ADMIN, Permission.MANAGE_USERS, True),
    (UserRole.ADMIN, Permission.MANAGE_PERIODS, True),
    (UserRole.MANAGER, Permission.APPROVE_ADJUSTMENTS, True),
    (UserRole.MANAGER, Permission.MANAGE_PERIODS, False),
    (UserRole.ANALYST, Permission.PERFORM_MATCHING, True),
    (UserRole.ANALYST, Permission.UNMATCH_TRANSACTIONS, False),
    (UserRole.AUDITOR, Permission.VIEW_ALL_LOGS, True),
    (UserRole.AUDITOR, Permission.PERFORM_MATCHING, False),
])
def test_default_role_map(gate, role, permission, expected):
    assert gate.has_permission(role, permission) is expected


def test_require_raises_with_context(gate):
    analyst = User(id="u2", name="John Analyst", role=UserRole.ANALYST)
    with pytest.raises(PermissionDeniedError) as exc_info:
        gate.require(analyst, Permission.MANAGE_PERIODS, "manage periods")

    error = exc_info.value
    assert error.code == "PERMISSION_DENIED"
    assert error.permission == "manage_periods"
    assert error.role == "ANALYST"


def test_resolve_unknown_user(session):
    with pytest.raises(UserNotFoundError):
        session.resolve_user("nobody")


def test_set_role_permissions(loaded_session, admin):
    auditor = User(id="a1", name="Ada Auditor", role=UserRole.AUDITOR)
    loaded_session.set_role_permissions(
        UserRole.AUDITOR,
        [Permission.VIEW_ALL_LOGS, Permission.PERFORM_MATCHING],
        admin,
    )

    assert loaded_session.create_match(["L1"], ["R1"], None, auditor) is not None
    assert loaded_session.audit.entries()[-2].action == "Permissions"


def test_role_map_change_can_be_undone(loaded_session, admin, analyst):
    loaded_session.set_role_permissions(UserRole.ANALYST, [], admin)
    with pytest.raises(PermissionDeniedError):
        loaded_session.export_matches(analyst)

    loaded_session.undo()

    assert loaded_session.export_matches(analyst) == []


def test_only_admin_manages_roles(loaded_session, manager):
    with pytest.raises(PermissionDeniedError):
        loaded_session.set_role_permissions(UserRole.MANAGER, list(Permission), manager)


def test_role_request_approved(loaded_session, admin, analyst):
    request = loaded_session.submit_role_request("Covering month end", analyst)
    assert request.status == RoleRequestStatus.PENDING
    assert request.requested_role == UserRole.MANAGER

    decided = loaded_session.decide_role_request(request.id, True, admin)

    assert decided.status == RoleRequestStatus.APPROVED
    assert loaded_session.resolve_user("u2").role == UserRole.MANAGER
    assert loaded_session.audit.latest().details == "Approved role upgrade for John Analyst"


def test_role_request_rejected(loaded_session, admin, analyst):
    request = loaded_session.submit_role_request("Please", analyst)
    loaded_session.decide_role_request(request.id, False, admin)

    assert loaded_session.resolve_user("u2").role == UserRole.ANALYST


def test_role_request_decided_once(loaded_session, admin, analyst):
    request = loaded_session.submit_role_request("Please", analyst)
    loaded_session.decide_role_request(request.id, True, admin)

    with pytest.raises(ValidationFailedError):
        loaded_session.decide_role_request(request.id, False, admin)


def test_role_request_needs_reason(loaded_session, analyst):
    with pytest.raises(ValidationFailedError):
        loaded_session.submit_role_request("  ", analyst)
    assert loaded_session.workspace.role_requests == []


def test_unknown_role_request(loaded_session, admin):
    with pytest.raises(RoleRequestNotFoundError):
        loaded_session.decide_role_request("missing", True, admin)


def test_export_requires_permission(loaded_session, analyst):
    loaded_session.create_match(["L1"], ["R1"], None, analyst)
    exported = loaded_session.export_matches(analyst)
    assert len(exported) == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
