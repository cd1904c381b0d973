"""
Versioning schemas: user-facing snapshots and internal undo checkpoints.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Set
from pydantic import BaseModel, Field

from reconcile.schemas.audit import AuditLogEntry
from reconcile.schemas.match import MatchGroup
from reconcile.schemas.transaction import Transaction
from reconcile.schemas.users import Permission, RoleRequest, User, UserRole


class SnapshotType(str, Enum):
    IMPORT = "IMPORT"
    MANUAL = "MANUAL"
    AUTO = "AUTO"


class SnapshotStats(BaseModel):
    total_transactions: int
    total_matches: int
    matched_value: Decimal


class SystemSnapshot(BaseModel):
    """A named, restorable copy of transactions and matches."""
    id: str
    timestamp: datetime
    label: str
    type: SnapshotType
    transactions: List[Transaction] = Field(default_factory=list)
    matches: List[MatchGroup] = Field(default_factory=list)
    selected_date: Optional[date] = None
    created_by: str
    stats: SnapshotStats


class StateTuple(BaseModel):
    """
    The mutable state captured by an undo checkpoint and emitted to the
    persistence sink.
    """
    transactions: List[Transaction] = Field(default_factory=list)
    matches: List[MatchGroup] = Field(default_factory=list)
    audit_log: List[AuditLogEntry] = Field(default_factory=list)
    users: List[User] = Field(default_factory=list)
    role_permissions: Dict[UserRole, Set[Permission]] = Field(default_factory=dict)
    locked_date: Optional[date] = None
    role_requests: List[RoleRequest] = Field(default_factory=list)


class Checkpoint(BaseModel):
    """One undo-stack element: an opaque serialization of a StateTuple."""
    id: str
    created_at: datetime
    payload: str
