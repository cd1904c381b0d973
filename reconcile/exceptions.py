"""
Typed exceptions for the reconciliation workflow.

Every rejection is a whole-operation rejection: when one of these is raised
the workspace is exactly as it was before the call. Each class carries a
machine-readable ``code`` so the API layer can map errors without parsing
messages.

    ReconciliationError
    +-- PermissionDeniedError
    |   +-- SeparationOfDutiesError
    +-- PeriodLockedError
    +-- ValidationFailedError
    |   +-- TransactionAlreadyMatchedError
    +-- NotFoundError
    |   +-- TransactionNotFoundError
    |   +-- MatchNotFoundError
    |   +-- SnapshotNotFoundError
    |   +-- UserNotFoundError
    |   +-- RoleRequestNotFoundError
    +-- CheckpointCorruptedError
"""

from datetime import date
from typing import List, Optional


class ReconciliationError(Exception):
    """Base class for all reconciliation engine errors."""

    code: str = "RECONCILIATION_ERROR"


class PermissionDeniedError(ReconciliationError):
    """The acting user's role lacks the permission an operation needs."""

    code: str = "PERMISSION_DENIED"

    def __init__(
        self,
        permission: str,
        role: str,
        operation: str,
        message: Optional[str] = None,
    ):
        self.permission = permission
        self.role = role
        self.operation = operation
        super().__init__(
            message
            or f"Permission denied: role {role} cannot {operation} (requires {permission})"
        )


class SeparationOfDutiesError(PermissionDeniedError):
    """The approver imported transactions of the match being approved."""

    code: str = "SEPARATION_OF_DUTIES"

    def __init__(self, user_id: str, role: str, match_id: str):
        self.user_id = user_id
        self.match_id = match_id
        super().__init__(
            "approve_adjustments",
            role,
            "approve",
            message=(
                f"Separation of duties conflict: user {user_id} imported "
                f"transactions of match {match_id} and cannot approve it"
            ),
        )


class PeriodLockedError(ReconciliationError):
    """An operation touches a transaction dated in a closed period."""

    code: str = "PERIOD_LOCKED"

    def __init__(self, cutoff: date, locked_dates: List[date], operation: str):
        self.cutoff = cutoff
        self.locked_dates = locked_dates
        self.operation = operation
        super().__init__(
            f"Cannot {operation} transactions in a closed period "
            f"(Locked Date: {cutoff.isoformat()})"
        )


class ValidationFailedError(ReconciliationError):
    """Input failed validation."""

    code: str = "VALIDATION_FAILED"


class TransactionAlreadyMatchedError(ValidationFailedError):
    """A selected transaction already belongs to a match."""

    code: str = "TRANSACTION_ALREADY_MATCHED"

    def __init__(self, transaction_ids: List[str]):
        self.transaction_ids = transaction_ids
        super().__init__(
            f"Transactions already matched: {', '.join(transaction_ids)}"
        )


class NotFoundError(ReconciliationError):
    """A referenced record does not exist in the workspace."""

    code: str = "NOT_FOUND"
    kind: str = "record"

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"{self.kind.capitalize()} not found: {record_id}")


class TransactionNotFoundError(NotFoundError):
    code: str = "TRANSACTION_NOT_FOUND"
    kind: str = "transaction"


class MatchNotFoundError(NotFoundError):
    code: str = "MATCH_NOT_FOUND"
    kind: str = "match"


class SnapshotNotFoundError(NotFoundError):
    code: str = "SNAPSHOT_NOT_FOUND"
    kind: str = "snapshot"


class UserNotFoundError(NotFoundError):
    code: str = "USER_NOT_FOUND"
    kind: str = "user"


class RoleRequestNotFoundError(NotFoundError):
    code: str = "ROLE_REQUEST_NOT_FOUND"
    kind: str = "role request"


class CheckpointCorruptedError(ReconciliationError):
    """A checkpoint could not be deserialized; the workspace was left untouched."""

    code: str = "CHECKPOINT_CORRUPTED"

    def __init__(self, checkpoint_id: str, reason: Optional[str] = None):
        self.checkpoint_id = checkpoint_id
        self.reason = reason
        message = f"Checkpoint {checkpoint_id} is corrupt"
        if reason:
            message += f": {reason}"
        super().__init__(message)
