"""
Audit Trail
Append-only record of every workspace mutation. append() is the only writer.
"""

from datetime import datetime
from typing import List, Optional

from reconcile.schemas.audit import AuditLogEntry
from reconcile.schemas.users import User
from reconcile.state import Workspace
from reconcile.utils import new_id
from reconcile.utils.logging import setup_logging


logger = setup_logging(__name__)


class AuditTrail:
    """
    View over workspace.audit_log.

    The list object itself is swapped out by undo/restore, so the trail
    always goes through the workspace rather than holding the list.
    """

    def __init__(self, workspace: Workspace):
        self.workspace = workspace

    def append(self, action: str, details: str, actor: User, now: datetime) -> AuditLogEntry:
        entry = AuditLogEntry(
            id=new_id(),
            timestamp=now,
            action=action,
            details=details,
            user_id=actor.id,
            user_name=actor.name,
        )
        self.workspace.audit_log.append(entry)
        logger.debug(f"[AuditTrail] {action}: {details}")
        return entry

    def entries(self) -> List[AuditLogEntry]:
        return list(self.workspace.audit_log)

    def for_user(self, user_id: str) -> List[AuditLogEntry]:
        return [e for e in self.workspace.audit_log if e.user_id == user_id]

    def by_action(self, action: str) -> List[AuditLogEntry]:
        return [e for e in self.workspace.audit_log if e.action == action]

    def latest(self) -> Optional[AuditLogEntry]:
        if not self.workspace.audit_log:
            return None
        return self.workspace.audit_log[-1]

    def __len__(self) -> int:
        return len(self.workspace.audit_log)
