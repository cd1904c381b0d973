"""
Matching Engine
Creates and dissolves match groups and computes totals, difference and the
approval status a new match starts in.

Every transaction referenced by a match has status MATCHED and match_id equal
to that match's id. Functions here that mutate the workspace keep that true
on return; the read-only helpers are used to validate a request before the
session takes its checkpoint.
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple

from reconcile.components.period_lock import is_locked
from reconcile.exceptions import (
    MatchNotFoundError,
    TransactionAlreadyMatchedError,
    TransactionNotFoundError,
    ValidationFailedError,
)
from reconcile.schemas.match import MatchGroup, MatchStatus
from reconcile.schemas.transaction import Side, Transaction, TransactionStatus
from reconcile.state import Workspace
from reconcile.utils import new_id, sum_amounts, to_cents
from reconcile.utils.logging import setup_logging


logger = setup_logging(__name__)

ZERO = Decimal("0")


def compute_totals(
    left: Sequence[Transaction],
    right: Sequence[Transaction],
) -> Tuple[Decimal, Decimal, Decimal]:
    """
    Returns:
        (total_left, total_right, difference) with difference = |left - right|
    """
    total_left = sum_amounts(t.amount for t in left)
    total_right = sum_amounts(t.amount for t in right)
    return total_left, total_right, abs(total_left - total_right)


def route_status(adjustment: Optional[Decimal], approval_threshold: Decimal) -> MatchStatus:
    """PENDING_APPROVAL iff the adjustment exceeds the threshold."""
    if adjustment is not None and adjustment > approval_threshold:
        return MatchStatus.PENDING_APPROVAL
    return MatchStatus.APPROVED


def is_write_off_eligible(difference: Decimal, write_off_limit: Decimal) -> bool:
    """Advisory flag for small differences. Never affects routing."""
    return ZERO < difference <= write_off_limit


def resolve_selection(
    workspace: Workspace,
    left_ids: Iterable[str],
    right_ids: Iterable[str],
) -> Tuple[List[Transaction], List[Transaction]]:
    """
    Look up the selected transactions and check they can be matched.

    Raises:
        TransactionNotFoundError: an id is not in the workspace
        ValidationFailedError: a transaction was selected on the wrong side
        TransactionAlreadyMatchedError: a transaction is already MATCHED
    """
    left_ids = list(dict.fromkeys(left_ids))
    right_ids = list(dict.fromkeys(right_ids))

    overlap = set(left_ids) & set(right_ids)
    if overlap:
        raise ValidationFailedError(
            f"Transactions selected on both sides: {', '.join(sorted(overlap))}"
        )

    left: List[Transaction] = []
    right: List[Transaction] = []
    for ids, side, bucket in ((left_ids, Side.LEFT, left), (right_ids, Side.RIGHT, right)):
        for transaction_id in ids:
            transaction = workspace.get_transaction(transaction_id)
            if transaction is None:
                raise TransactionNotFoundError(transaction_id)
            if transaction.side != side:
                raise ValidationFailedError(
                    f"Transaction {transaction_id} is on the {transaction.side.value} side, "
                    f"not {side.value}"
                )
            bucket.append(transaction)

    already_matched = [t.id for t in left + right if t.is_matched()]
    if already_matched:
        raise TransactionAlreadyMatchedError(already_matched)

    return left, right


def build_match_group(
    left: Sequence[Transaction],
    right: Sequence[Transaction],
    comment: Optional[str],
    matched_by: str,
    now: datetime,
    approval_threshold: Decimal,
    write_off_limit: Decimal,
) -> MatchGroup:
    """Pure constructor: nothing in the workspace changes."""
    match_id = new_id()
    total_left, total_right, difference = compute_totals(left, right)
    adjustment = difference if difference > ZERO else None
    status = route_status(adjustment, approval_threshold)

    # Stored copies reflect the state the transactions are about to enter
    def captured(transaction: Transaction) -> Transaction:
        return transaction.model_copy(
            update={"status": TransactionStatus.MATCHED, "match_id": match_id},
            deep=True,
        )

    return MatchGroup(
        id=match_id,
        timestamp=now,
        left_transactions=[captured(t) for t in left],
        right_transactions=[captured(t) for t in right],
        total_left=total_left,
        total_right=total_right,
        difference=difference,
        adjustment=adjustment,
        write_off_eligible=is_write_off_eligible(difference, write_off_limit),
        comment=(comment or "").strip() or None,
        status=status,
        matched_by=matched_by,
    )


def apply_match(workspace: Workspace, match: MatchGroup) -> None:
    """Flip the referenced transactions to MATCHED and append the group."""
    ids = set(match.transaction_ids())
    for transaction in workspace.transactions:
        if transaction.id in ids:
            transaction.status = TransactionStatus.MATCHED
            transaction.match_id = match.id
    workspace.matches.append(match)

    logger.info(
        f"[MatchingEngine] Match {match.id}: {len(match.left_transactions)} left vs "
        f"{len(match.right_transactions)} right, difference {to_cents(match.difference)}, "
        f"status {match.status.value}"
    )


def find_match(workspace: Workspace, match_id: str) -> MatchGroup:
    match = workspace.get_match(match_id)
    if match is None:
        raise MatchNotFoundError(match_id)
    return match


def remove_matches(workspace: Workspace, match_ids: Iterable[str]) -> int:
    """
    Dissolve the given matches: their transactions return to UNMATCHED with
    no match_id and the groups are removed. Returns the number removed.
    """
    ids = set(match_ids)
    for transaction in workspace.transactions:
        if transaction.match_id in ids:
            transaction.status = TransactionStatus.UNMATCHED
            transaction.match_id = None

    before = len(workspace.matches)
    workspace.matches = [m for m in workspace.matches if m.id not in ids]
    removed = before - len(workspace.matches)

    logger.info(f"[MatchingEngine] Dissolved {removed} match(es)")
    return removed


def partition_by_lock(
    workspace: Workspace,
    match_ids: Iterable[str],
) -> Tuple[List[str], List[str]]:
    """
    Split selected match ids into (valid, locked). Unknown ids are dropped.
    A match is locked if any of its transactions is in the closed period.
    """
    valid: List[str] = []
    locked: List[str] = []
    for match_id in dict.fromkeys(match_ids):
        match = workspace.get_match(match_id)
        if match is None:
            logger.debug(f"[MatchingEngine] Ignoring unknown match id {match_id}")
            continue
        if any(is_locked(t.date, workspace.locked_date) for t in match.all_transactions()):
            locked.append(match_id)
        else:
            valid.append(match_id)
    return valid, locked


def update_comment(match: MatchGroup, text: Optional[str]) -> None:
    match.comment = (text or "").strip() or None
