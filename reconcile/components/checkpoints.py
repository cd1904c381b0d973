"""
Checkpoint Store
Bounded undo/redo stacks of serialized state, and the named snapshots
operators can restore at any later time.

Checkpoints hold the JSON serialization of a StateTuple, so an entry can
never alias live workspace objects. A checkpoint that fails to deserialize
is reported as CheckpointCorruptedError and dropped; the entries below it
stay usable.
"""

from datetime import datetime
from typing import List, Optional, Sequence

from pydantic import ValidationError

from reconcile.exceptions import CheckpointCorruptedError
from reconcile.schemas.match import MatchGroup
from reconcile.schemas.snapshot import (
    Checkpoint,
    SnapshotStats,
    SnapshotType,
    StateTuple,
    SystemSnapshot,
)
from reconcile.schemas.transaction import Transaction
from reconcile.state import Workspace
from reconcile.utils import new_id, sum_amounts
from reconcile.utils.logging import setup_logging


logger = setup_logging(__name__)


class CheckpointStore:
    """LIFO undo stack with FIFO eviction, plus a redo stack."""

    def __init__(self, max_size: int = 20):
        if max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {max_size}")
        self.max_size = max_size
        self._history: List[Checkpoint] = []
        self._future: List[Checkpoint] = []

    def __len__(self) -> int:
        return len(self._history)

    @property
    def can_undo(self) -> bool:
        return bool(self._history)

    @property
    def can_redo(self) -> bool:
        return bool(self._future)

    @property
    def redo_depth(self) -> int:
        return len(self._future)

    def save(self, state: StateTuple, now: datetime) -> Checkpoint:
        """
        Push the pre-mutation state. Evicts the oldest entry when full and
        invalidates anything that could have been redone.
        """
        checkpoint = self._serialize(state, now)
        self._push(self._history, checkpoint)
        if self._future:
            logger.debug(f"[CheckpointStore] New checkpoint discards {len(self._future)} redo entries")
            self._future.clear()
        return checkpoint

    def undo(self, current: StateTuple, now: datetime) -> Optional[StateTuple]:
        """
        Pop the most recent checkpoint.

        Returns:
            The state to apply, or None if there is nothing to undo.
        """
        if not self._history:
            return None

        checkpoint = self._history.pop()
        restored = self._deserialize(checkpoint)
        self._push(self._future, self._serialize(current, now))
        logger.info(f"[CheckpointStore] Undo to checkpoint {checkpoint.id} ({len(self._history)} left)")
        return restored

    def redo(self, current: StateTuple, now: datetime) -> Optional[StateTuple]:
        """Reapply the most recently undone state, if any."""
        if not self._future:
            return None

        checkpoint = self._future.pop()
        restored = self._deserialize(checkpoint)
        self._push(self._history, self._serialize(current, now))
        logger.info(f"[CheckpointStore] Redo to checkpoint {checkpoint.id}")
        return restored

    def _push(self, stack: List[Checkpoint], checkpoint: Checkpoint) -> None:
        if len(stack) >= self.max_size:
            evicted = stack.pop(0)
            logger.debug(f"[CheckpointStore] Evicted oldest checkpoint {evicted.id}")
        stack.append(checkpoint)

    @staticmethod
    def _serialize(state: StateTuple, now: datetime) -> Checkpoint:
        return Checkpoint(id=new_id(), created_at=now, payload=state.model_dump_json())

    @staticmethod
    def _deserialize(checkpoint: Checkpoint) -> StateTuple:
        try:
            return StateTuple.model_validate_json(checkpoint.payload)
        except ValidationError as e:
            logger.error(f"[CheckpointStore] Checkpoint {checkpoint.id} failed to restore: {e}")
            raise CheckpointCorruptedError(checkpoint.id, f"{e.error_count()} validation error(s)") from e


def create_snapshot(
    label: str,
    snapshot_type: SnapshotType,
    transactions: Sequence[Transaction],
    matches: Sequence[MatchGroup],
    created_by: str,
    now: datetime,
    selected_date=None,
) -> SystemSnapshot:
    """Pure constructor. matched_value is the sum of total_left over the matches."""
    return SystemSnapshot(
        id=new_id(),
        timestamp=now,
        label=label,
        type=snapshot_type,
        transactions=[t.model_copy(deep=True) for t in transactions],
        matches=[m.model_copy(deep=True) for m in matches],
        selected_date=selected_date,
        created_by=created_by,
        stats=SnapshotStats(
            total_transactions=len(transactions),
            total_matches=len(matches),
            matched_value=sum_amounts(m.total_left for m in matches),
        ),
    )


def retain_snapshot(
    workspace: Workspace,
    snapshot: SystemSnapshot,
    retention_limit: Optional[int] = None,
) -> List[SystemSnapshot]:
    """
    Add a snapshot to the workspace. With a retention limit the oldest
    snapshots are evicted first; without one every snapshot is kept.

    Returns:
        The evicted snapshots.
    """
    workspace.snapshots.append(snapshot)
    evicted: List[SystemSnapshot] = []
    if retention_limit is not None:
        while len(workspace.snapshots) > retention_limit:
            evicted.append(workspace.snapshots.pop(0))
    if evicted:
        logger.info(f"[CheckpointStore] Evicted {len(evicted)} snapshot(s) over retention limit {retention_limit}")
    return evicted


def apply_snapshot(workspace: Workspace, snapshot: SystemSnapshot) -> None:
    """Replace transactions, matches and working date with the snapshot's copies."""
    workspace.transactions = [t.model_copy(deep=True) for t in snapshot.transactions]
    workspace.matches = [m.model_copy(deep=True) for m in snapshot.matches]
    workspace.selected_date = snapshot.selected_date
    workspace.clear_all_selections()
