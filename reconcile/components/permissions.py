"""
Permission Gate
Role-based yes/no checks consulted by every mutating operation, plus the
role administration that edits the role map.
"""

from datetime import datetime
from typing import Iterable, Set

from reconcile.exceptions import (
    PermissionDeniedError,
    RoleRequestNotFoundError,
    SeparationOfDutiesError,
    ValidationFailedError,
)
from reconcile.schemas.match import MatchGroup
from reconcile.schemas.users import (
    Permission,
    RoleRequest,
    RoleRequestStatus,
    User,
    UserRole,
)
from reconcile.state import Workspace
from reconcile.utils import new_id
from reconcile.utils.logging import setup_logging, log_rejection


logger = setup_logging(__name__)


class PermissionGate:
    """
    Answers (role, permission) -> bool against the workspace role map.

    The map is read on every call, so an undo that restores an older map
    takes effect immediately.
    """

    def __init__(self, workspace: Workspace):
        self.workspace = workspace

    def has_permission(self, role: UserRole, permission: Permission) -> bool:
        return permission in self.workspace.role_permissions.get(role, set())

    def require(self, actor: User, permission: Permission, operation: str) -> None:
        """Raise PermissionDeniedError unless the actor's role grants the permission."""
        if self.has_permission(actor.role, permission):
            return

        error = PermissionDeniedError(permission.value, actor.role.value, operation)
        log_rejection(logger, operation, actor.id, error.code, str(error))
        raise error


def check_separation_of_duties(actor: User, match: MatchGroup) -> None:
    """
    A non-admin may not approve a match containing transactions they imported.
    """
    if actor.role == UserRole.ADMIN:
        return

    if any(t.imported_by == actor.id for t in match.all_transactions()):
        error = SeparationOfDutiesError(actor.id, actor.role.value, match.id)
        log_rejection(logger, "approve", actor.id, error.code, str(error))
        raise error


def set_role_permissions(
    workspace: Workspace,
    role: UserRole,
    permissions: Iterable[Permission],
) -> Set[Permission]:
    """Replace one role's permission set and return the previous one."""
    previous = set(workspace.role_permissions.get(role, set()))
    updated = dict(workspace.role_permissions)
    updated[role] = set(permissions)
    workspace.role_permissions = updated
    return previous


def add_role_request(
    workspace: Workspace,
    actor: User,
    requested_role: UserRole,
    reason: str,
    now: datetime,
) -> RoleRequest:
    if not reason or not reason.strip():
        raise ValidationFailedError("A role request needs a reason")

    request = RoleRequest(
        id=new_id(),
        user_id=actor.id,
        user_name=actor.name,
        requested_role=requested_role,
        reason=reason.strip(),
        timestamp=now,
    )
    workspace.role_requests.append(request)
    return request


def find_role_request(workspace: Workspace, request_id: str) -> RoleRequest:
    for request in workspace.role_requests:
        if request.id == request_id:
            return request
    raise RoleRequestNotFoundError(request_id)


def decide_role_request(workspace: Workspace, request: RoleRequest, approve: bool) -> RoleRequest:
    """Mark a request approved or rejected; approval also moves the user."""
    request.status = RoleRequestStatus.APPROVED if approve else RoleRequestStatus.REJECTED

    if approve:
        user = workspace.get_user(request.user_id)
        if user is not None:
            user.role = request.requested_role
        else:
            logger.warning(f"[PermissionGate] Approved role request {request.id} for unknown user {request.user_id}")

    return request
