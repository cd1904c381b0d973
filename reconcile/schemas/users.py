"""
Users, roles and permissions.
Roles and permissions are closed enums; the role map is role -> set of permissions.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Set
from pydantic import BaseModel


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    ANALYST = "ANALYST"
    AUDITOR = "AUDITOR"


class Permission(str, Enum):
    PERFORM_MATCHING = "perform_matching"
    UNMATCH_TRANSACTIONS = "unmatch_transactions"
    APPROVE_ADJUSTMENTS = "approve_adjustments"
    MANAGE_PERIODS = "manage_periods"
    EXPORT_DATA = "export_data"
    MANAGE_USERS = "manage_users"
    VIEW_ADMIN_PANEL = "view_admin_panel"
    VIEW_ALL_LOGS = "view_all_logs"


class RoleRequestStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class User(BaseModel):
    """An operator acting on the workspace."""
    id: str
    name: str
    role: UserRole
    email: Optional[str] = None
    status: str = "active"  # active, inactive


class RoleRequest(BaseModel):
    """A user's request to be moved to a different role."""
    id: str
    user_id: str
    user_name: str
    requested_role: UserRole
    reason: str
    status: RoleRequestStatus = RoleRequestStatus.PENDING
    timestamp: datetime


def default_role_permissions() -> Dict[UserRole, Set[Permission]]:
    """Fresh copy of the default role -> permissions map."""
    return {
        UserRole.ADMIN: set(Permission),
        UserRole.MANAGER: {
            Permission.UNMATCH_TRANSACTIONS,
            Permission.VIEW_ALL_LOGS,
            Permission.EXPORT_DATA,
            Permission.PERFORM_MATCHING,
            Permission.APPROVE_ADJUSTMENTS,
        },
        UserRole.ANALYST: {
            Permission.EXPORT_DATA,
            Permission.PERFORM_MATCHING,
        },
        UserRole.AUDITOR: {
            Permission.VIEW_ALL_LOGS,
            Permission.EXPORT_DATA,
        },
    }


def default_users() -> list:
    """Seed operators for a fresh workspace."""
    return [
        User(id="u0", name="System Admin", role=UserRole.ADMIN, email="admin@reconcilepro.com"),
        User(id="u1", name="Sarah Manager", role=UserRole.MANAGER, email="sarah@reconcilepro.com"),
        User(id="u2", name="John Analyst", role=UserRole.ANALYST, email="john@reconcilepro.com"),
        User(id="u3", name="Mike Intern", role=UserRole.ANALYST, email="mike@reconcilepro.com", status="inactive"),
    ]
