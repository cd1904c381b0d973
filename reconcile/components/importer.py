"""
Import validation.
Turns raw importer rows into workspace transactions. Rows that fail
validation are dropped and counted; the rest proceed.
"""

import math
import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from pydantic import BaseModel, Field, ValidationError, field_validator

from reconcile.schemas.transaction import Side, Transaction
from reconcile.utils.logging import setup_logging


logger = setup_logging(__name__)

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class ImportRow(BaseModel):
    """One raw row as supplied by the importer."""
    id: str
    date: str
    description: str
    amount: Any
    reference: Any = ""

    @field_validator("reference")
    @classmethod
    def reference_as_text(cls, value: Any) -> str:
        return "" if value is None else str(value).strip()

    @field_validator("id", "description", mode="before")
    @classmethod
    def coerce_to_text(cls, value: Any) -> Any:
        # Spreadsheet cells often arrive as numbers
        if value is None or isinstance(value, bool):
            return value
        return str(value)

    @field_validator("id", "description")
    @classmethod
    def must_not_be_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be empty")
        return value.strip()

    @field_validator("date")
    @classmethod
    def must_be_iso_date(cls, value: str) -> str:
        if not DATE_PATTERN.match(value):
            raise ValueError("date must be in YYYY-MM-DD format")
        date.fromisoformat(value)  # rejects 2024-02-30
        return value

    @field_validator("amount")
    @classmethod
    def must_be_numeric(cls, value: Any) -> Decimal:
        if isinstance(value, bool) or value is None:
            raise ValueError("amount must be numeric")
        if isinstance(value, float) and not math.isfinite(value):
            raise ValueError("amount must be finite")
        try:
            amount = Decimal(str(value).strip())
        except (InvalidOperation, TypeError):
            raise ValueError("amount must be numeric")
        if not amount.is_finite():
            raise ValueError("amount must be finite")
        return amount


class ImportBatch(BaseModel):
    """A finalized {left, right} pair of rows for one working date."""
    left: List[Dict[str, Any]] = Field(default_factory=list)
    right: List[Dict[str, Any]] = Field(default_factory=list)
    name: Optional[str] = None  # sheet or file name for the audit trail


class ImportResult(BaseModel):
    imported: int
    skipped: int
    snapshot_id: Optional[str] = None
    errors: List[str] = Field(default_factory=list)


def validate_rows(
    rows: Sequence[Dict[str, Any]],
    side: Side,
    imported_by: str,
    seen_ids: Set[str],
) -> Tuple[List[Transaction], List[str]]:
    """
    Validate one side of a batch.

    Args:
        seen_ids: ids already accepted in this batch; updated in place so a
            duplicate id on either side is rejected.

    Returns:
        (transactions, errors) where each error describes a dropped row.
    """
    transactions: List[Transaction] = []
    errors: List[str] = []

    for index, raw in enumerate(rows):
        try:
            row = ImportRow.model_validate(raw)
        except ValidationError as e:
            fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err.get("loc"))
            errors.append(f"{side.value} row {index}: invalid {fields or 'row'}")
            continue

        if row.id in seen_ids:
            errors.append(f"{side.value} row {index}: duplicate id {row.id}")
            continue
        seen_ids.add(row.id)

        transactions.append(
            Transaction(
                id=row.id,
                date=date.fromisoformat(row.date),
                description=row.description,
                amount=row.amount,
                reference=row.reference,
                side=side,
                imported_by=imported_by,
            )
        )

    if errors:
        logger.warning(f"[Importer] Dropped {len(errors)} invalid {side.value} row(s)")

    return transactions, errors


def validate_batch(batch: ImportBatch, imported_by: str) -> Tuple[List[Transaction], List[str]]:
    """Validate both sides; left rows come first in the result."""
    seen: Set[str] = set()
    left, left_errors = validate_rows(batch.left, Side.LEFT, imported_by, seen)
    right, right_errors = validate_rows(batch.right, Side.RIGHT, imported_by, seen)
    return left + right, left_errors + right_errors
