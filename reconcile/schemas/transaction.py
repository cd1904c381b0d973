"""
Transaction schema.
Represents one record from the internal ledger (LEFT) or the bank statement (RIGHT).
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional
from pydantic import BaseModel


class Side(str, Enum):
    """Which feed a transaction came from."""
    LEFT = "LEFT"  # internal ledger
    RIGHT = "RIGHT"  # bank statement


class TransactionStatus(str, Enum):
    UNMATCHED = "UNMATCHED"
    MATCHED = "MATCHED"


class Transaction(BaseModel):
    """
    A single imported transaction.

    date, description, amount and reference never change after import.
    status and match_id are owned by the matching engine.
    """
    id: str
    date: date
    description: str
    amount: Decimal
    reference: str = ""
    side: Side
    status: TransactionStatus = TransactionStatus.UNMATCHED
    match_id: Optional[str] = None
    imported_by: Optional[str] = None

    def is_matched(self) -> bool:
        return self.status == TransactionStatus.MATCHED
