"""
Period Lock
A single global cutoff date. Any transaction dated on or before the cutoff
belongs to a closed period and cannot be matched, unmatched or annotated.
"""

from datetime import date, datetime
from typing import Iterable, List, Optional, Union

from reconcile.exceptions import PeriodLockedError, ValidationFailedError
from reconcile.schemas.transaction import Transaction
from reconcile.state import Workspace
from reconcile.utils.logging import setup_logging


logger = setup_logging(__name__)


def parse_cutoff(value: Union[str, date, datetime, None]) -> Optional[date]:
    """Normalize a cutoff to a calendar date. None clears the lock."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationFailedError(f"Invalid cutoff date: {value!r} (expected YYYY-MM-DD)")


def is_locked(value: date, cutoff: Optional[date]) -> bool:
    """True iff a cutoff is set and the date is on or before it."""
    if cutoff is None:
        return False
    if isinstance(value, datetime):
        value = value.date()
    return value <= cutoff


def find_locked_dates(transactions: Iterable[Transaction], cutoff: Optional[date]) -> List[date]:
    """Distinct locked dates among the given transactions, oldest first."""
    return sorted({t.date for t in transactions if is_locked(t.date, cutoff)})


def ensure_unlocked(
    transactions: Iterable[Transaction],
    cutoff: Optional[date],
    operation: str,
) -> None:
    """Raise PeriodLockedError if any transaction falls in the closed period."""
    locked = find_locked_dates(transactions, cutoff)
    if locked:
        logger.warning(
            f"[PeriodLock] {operation} blocked: {len(locked)} date(s) on or before {cutoff.isoformat()}"
        )
        raise PeriodLockedError(cutoff, locked, operation)


def set_cutoff(workspace: Workspace, new_cutoff: Optional[date]) -> Optional[date]:
    """Replace the cutoff and return the previous value."""
    previous = workspace.locked_date
    workspace.locked_date = new_cutoff
    return previous


def is_stale_working_date(
    selected: Optional[date],
    today: date,
    threshold_days: int,
) -> bool:
    """Warn when the working date is far from today."""
    if selected is None:
        return False
    return abs((today - selected).days) > threshold_days
