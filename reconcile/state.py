"""
Workspace aggregate for a single reconciliation session.
Every component reads and writes this object; nothing is kept in module globals.
"""

from datetime import date
from typing import Optional, List, Dict, Set, Any
from pydantic import BaseModel, Field

from reconcile.schemas.audit import AuditLogEntry
from reconcile.schemas.match import MatchGroup
from reconcile.schemas.snapshot import StateTuple, SystemSnapshot
from reconcile.schemas.transaction import Side, Transaction, TransactionStatus
from reconcile.schemas.users import (
    Permission,
    RoleRequest,
    User,
    UserRole,
    default_role_permissions,
    default_users,
)
from reconcile.utils import safe_divide, sum_amounts


class Workspace(BaseModel):
    """
    Shared mutable state owned by one ReconciliationSession.

    The checkpointed tuple (see StateTuple) is transactions, matches,
    audit_log, users, role_permissions, locked_date and role_requests.
    Snapshots, the working date and the selections live alongside it but
    are not part of an undo checkpoint.
    """

    # Checkpointed state
    transactions: List[Transaction] = Field(default_factory=list)
    matches: List[MatchGroup] = Field(default_factory=list)
    audit_log: List[AuditLogEntry] = Field(default_factory=list)
    users: List[User] = Field(default_factory=default_users)
    role_permissions: Dict[UserRole, Set[Permission]] = Field(default_factory=default_role_permissions)
    locked_date: Optional[date] = None
    role_requests: List[RoleRequest] = Field(default_factory=list)

    # Versioning and working context
    snapshots: List[SystemSnapshot] = Field(default_factory=list)
    selected_date: Optional[date] = None

    # Operator selections
    selected_left_ids: Set[str] = Field(default_factory=set)
    selected_right_ids: Set[str] = Field(default_factory=set)
    selected_history_ids: Set[str] = Field(default_factory=set)
    match_comment: str = ""

    def capture(self) -> StateTuple:
        """Deep copy of the checkpointed state."""
        return StateTuple(
            transactions=self.transactions,
            matches=self.matches,
            audit_log=self.audit_log,
            users=self.users,
            role_permissions=self.role_permissions,
            locked_date=self.locked_date,
            role_requests=self.role_requests,
        ).model_copy(deep=True)

    def apply(self, state: StateTuple) -> None:
        """Replace the checkpointed state wholesale (no merge)."""
        self.transactions = state.transactions
        self.matches = state.matches
        self.audit_log = state.audit_log
        self.users = state.users
        self.role_permissions = state.role_permissions
        self.locked_date = state.locked_date
        self.role_requests = state.role_requests

    def clear_selection(self) -> None:
        """Drop left/right selections and the in-progress comment."""
        self.selected_left_ids = set()
        self.selected_right_ids = set()
        self.match_comment = ""

    def clear_all_selections(self) -> None:
        self.clear_selection()
        self.selected_history_ids = set()

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        for transaction in self.transactions:
            if transaction.id == transaction_id:
                return transaction
        return None

    def get_match(self, match_id: str) -> Optional[MatchGroup]:
        for match in self.matches:
            if match.id == match_id:
                return match
        return None

    def get_user(self, user_id: str) -> Optional[User]:
        for user in self.users:
            if user.id == user_id:
                return user
        return None

    def get_snapshot(self, snapshot_id: str) -> Optional[SystemSnapshot]:
        for snapshot in self.snapshots:
            if snapshot.id == snapshot_id:
                return snapshot
        return None

    def unmatched(self, side: Optional[Side] = None) -> List[Transaction]:
        return [
            t for t in self.transactions
            if t.status == TransactionStatus.UNMATCHED and (side is None or t.side == side)
        ]

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of the current reconciliation progress."""
        total = len(self.transactions)
        matched = len([t for t in self.transactions if t.is_matched()])
        return {
            "total_transactions": total,
            "unmatched_count": total - matched,
            "matched_count": matched,
            "total_matches": len(self.matches),
            "pending_approvals": len([m for m in self.matches if m.is_pending()]),
            "matched_value": sum_amounts(m.total_left for m in self.matches),
            "match_rate": safe_divide(matched, total) * 100,
            "locked_date": self.locked_date,
            "selected_date": self.selected_date,
            "snapshots": len(self.snapshots),
        }
