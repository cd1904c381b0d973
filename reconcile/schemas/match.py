"""
Match group schema.
A match pairs left-side and right-side transactions reconciled as one unit.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field

from reconcile.schemas.transaction import Transaction


class MatchStatus(str, Enum):
    """Approval state of a match. APPROVED is terminal."""
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"


class MatchGroup(BaseModel):
    """
    A reconciled group of transactions.

    left_transactions and right_transactions are copies taken when the
    match was created, not live references into the workspace.
    """
    id: str
    timestamp: datetime
    left_transactions: List[Transaction] = Field(default_factory=list)
    right_transactions: List[Transaction] = Field(default_factory=list)
    total_left: Decimal
    total_right: Decimal
    difference: Decimal
    adjustment: Optional[Decimal] = None  # set iff difference > 0
    write_off_eligible: bool = False  # advisory only
    comment: Optional[str] = None
    status: MatchStatus
    matched_by: str
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None

    def transaction_ids(self) -> List[str]:
        return [t.id for t in self.left_transactions + self.right_transactions]

    def all_transactions(self) -> List[Transaction]:
        return self.left_transactions + self.right_transactions

    def is_pending(self) -> bool:
        return self.status == MatchStatus.PENDING_APPROVAL


class BatchResult(BaseModel):
    """Outcome of a batch unmatch or batch approval."""
    processed: int = 0
    skipped: int = 0
    skipped_ids: List[str] = Field(default_factory=list)
    message: str = ""
