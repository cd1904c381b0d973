"""
Reconciliation session: the single entry point for workspace mutations.

Every mutating operation runs the same sequence to completion:
1. PermissionGate check (where the operation needs one)
2. PeriodLock check (where the operation touches dated transactions)
3. Checkpoint of the pre-mutation state
4. The mutation itself
5. Exactly one audit entry
6. Emit the new state to the persistence sink

Any failure in steps 1-2 raises before step 3, so a rejected operation
leaves no trace in the workspace, the undo stack or the audit trail.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union

from pydantic import ValidationError

from reconcile.components import approval, matching
from reconcile.components.audit import AuditTrail
from reconcile.components.checkpoints import (
    CheckpointStore,
    apply_snapshot,
    create_snapshot,
    retain_snapshot,
)
from reconcile.components.importer import ImportBatch, ImportResult, validate_batch
from reconcile.components.period_lock import (
    ensure_unlocked,
    is_locked,
    is_stale_working_date,
    parse_cutoff,
    set_cutoff,
)
from reconcile.components.permissions import (
    PermissionGate,
    add_role_request,
    check_separation_of_duties,
    decide_role_request,
    find_role_request,
    set_role_permissions,
)
from reconcile.config import Config, get_config
from reconcile.exceptions import (
    SnapshotNotFoundError,
    UserNotFoundError,
    ValidationFailedError,
)
from reconcile.persistence import NullSink, PersistenceSink
from reconcile.schemas.audit import AuditLogEntry
from reconcile.schemas.match import BatchResult, MatchGroup
from reconcile.schemas.snapshot import SnapshotType, SystemSnapshot
from reconcile.schemas.transaction import Side
from reconcile.schemas.users import (
    Permission,
    RoleRequest,
    RoleRequestStatus,
    User,
    UserRole,
)
from reconcile.state import Workspace
from reconcile.utils import sum_amounts, to_cents
from reconcile.utils.logging import setup_logging, log_operation


logger = setup_logging(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReconciliationSession:
    """
    Owns one Workspace for a single active operator.

    There is no cross-session concurrency control: two sessions sharing a
    persistence sink will overwrite each other.
    """

    def __init__(
        self,
        workspace: Optional[Workspace] = None,
        config: Optional[Config] = None,
        sink: Optional[PersistenceSink] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config or get_config()
        self.workspace = workspace if workspace is not None else Workspace()
        self.sink = sink or NullSink()
        self.clock = clock or _utcnow
        self.gate = PermissionGate(self.workspace)
        self.audit = AuditTrail(self.workspace)
        self.checkpoints = CheckpointStore(self.config.MAX_UNDO_STACK)

    @classmethod
    def from_sink(
        cls,
        sink: PersistenceSink,
        config: Optional[Config] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> "ReconciliationSession":
        """Open a session on the last state the sink saved, if any."""
        workspace = Workspace()
        saved = sink.load()
        if saved is not None:
            workspace.apply(saved)
            logger.info(
                f"Restored workspace: {len(workspace.transactions)} transactions, "
                f"{len(workspace.matches)} matches"
            )
        return cls(workspace=workspace, config=config, sink=sink, clock=clock)

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _now(self) -> datetime:
        return self.clock()

    def _checkpoint(self) -> None:
        self.checkpoints.save(self.workspace.capture(), self._now())

    def _commit(self, action: str, details: str, actor: User) -> AuditLogEntry:
        entry = self.audit.append(action, details, actor, self._now())
        self._persist()
        log_operation(logger, action, actor.id, {"details": details})
        return entry

    def _persist(self) -> None:
        self.sink.save(self.workspace.capture())

    def resolve_user(self, user_id: str) -> User:
        user = self.workspace.get_user(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    # ------------------------------------------------------------------
    # Period lock
    # ------------------------------------------------------------------

    def is_locked(self, value: Union[str, date]) -> bool:
        parsed = parse_cutoff(value)
        if parsed is None:
            return False
        return is_locked(parsed, self.workspace.locked_date)

    def set_cutoff(self, new_cutoff: Union[str, date, None], actor: User) -> Optional[date]:
        """
        Move (or clear, with None) the period lock cutoff.

        Returns:
            The new cutoff.
        """
        self.gate.require(actor, Permission.MANAGE_PERIODS, "manage periods")
        cutoff = parse_cutoff(new_cutoff)

        self._checkpoint()
        previous = set_cutoff(self.workspace, cutoff)

        if cutoff is None:
            details = f"Cleared period lock (was {previous.isoformat() if previous else 'unset'})"
        else:
            details = f"Locked period through {cutoff.isoformat()}"
        self._commit("Period Lock", details, actor)
        return cutoff

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    def create_match(
        self,
        left_ids: Iterable[str],
        right_ids: Iterable[str],
        comment: Optional[str],
        actor: User,
    ) -> Optional[MatchGroup]:
        """
        Match the given transactions as one group.

        Returns:
            The new MatchGroup, or None when nothing was selected.
        """
        left_ids = list(left_ids)
        right_ids = list(right_ids)
        if not left_ids and not right_ids:
            logger.debug("create_match called with an empty selection")
            return None

        self.gate.require(actor, Permission.PERFORM_MATCHING, "perform matches")
        left, right = matching.resolve_selection(self.workspace, left_ids, right_ids)
        ensure_unlocked(left + right, self.workspace.locked_date, "match")

        self._checkpoint()
        match = matching.build_match_group(
            left,
            right,
            comment,
            matched_by=actor.id,
            now=self._now(),
            approval_threshold=self.config.APPROVAL_THRESHOLD,
            write_off_limit=self.config.WRITE_OFF_LIMIT,
        )
        matching.apply_match(self.workspace, match)
        self.workspace.clear_selection()

        self._commit(
            "Match",
            f"Matched {len(left)} left items with {len(right)} right items. "
            f"Diff: {to_cents(match.difference)}. Status: {match.status.value}",
            actor,
        )
        return match

    def match_selected(self, actor: User) -> Optional[MatchGroup]:
        """create_match over the current left/right selection and comment."""
        ws = self.workspace
        left_ids = [t.id for t in ws.transactions if t.id in ws.selected_left_ids]
        right_ids = [t.id for t in ws.transactions if t.id in ws.selected_right_ids]
        return self.create_match(left_ids, right_ids, ws.match_comment, actor)

    def unmatch(self, match_id: str, actor: User) -> MatchGroup:
        """Dissolve one match. Returns the removed group."""
        self.gate.require(actor, Permission.UNMATCH_TRANSACTIONS, "unmatch transactions")
        match = matching.find_match(self.workspace, match_id)
        ensure_unlocked(match.all_transactions(), self.workspace.locked_date, "unmatch")

        self._checkpoint()
        matching.remove_matches(self.workspace, [match_id])
        self.workspace.selected_history_ids.discard(match_id)

        self._commit("Unmatch", f"Unmatched group #{match_id}", actor)
        return match

    def update_comment(self, match_id: str, text: str, actor: User) -> MatchGroup:
        match = matching.find_match(self.workspace, match_id)
        ensure_unlocked(match.all_transactions(), self.workspace.locked_date, "modify")

        self._checkpoint()
        matching.update_comment(match, text)

        self._commit("Update", f"Updated comment for match #{match_id}", actor)
        return match

    def batch_unmatch(self, match_ids: Iterable[str], actor: User) -> BatchResult:
        """
        Unmatch every selected match outside the closed period as one
        mutation. Locked matches are skipped and counted.
        """
        self.gate.require(actor, Permission.UNMATCH_TRANSACTIONS, "unmatch transactions")
        match_ids = list(match_ids)
        if not match_ids:
            return BatchResult(message="No matches selected.")

        valid, locked = matching.partition_by_lock(self.workspace, match_ids)
        if locked:
            logger.warning(f"Batch unmatch skipping {len(locked)} match(es) in a closed period")
        if not valid:
            return BatchResult(
                skipped=len(locked),
                skipped_ids=locked,
                message="No valid matches selected.",
            )

        self._checkpoint()
        removed = matching.remove_matches(self.workspace, valid)
        self.workspace.selected_history_ids = set()

        details = f"Unmatched {removed} groups."
        if locked:
            details += f" Skipped {len(locked)} in closed period."
        self._commit("Batch Unmatch", details, actor)
        return BatchResult(
            processed=removed,
            skipped=len(locked),
            skipped_ids=locked,
            message=details,
        )

    # ------------------------------------------------------------------
    # Approval
    # ------------------------------------------------------------------

    def approve(self, match_id: str, actor: User) -> MatchGroup:
        """Approve one pending match. Already approved matches are left alone."""
        self.gate.require(actor, Permission.APPROVE_ADJUSTMENTS, "approve adjustments")
        match = matching.find_match(self.workspace, match_id)
        if not match.is_pending():
            logger.debug(f"Match {match_id} already approved")
            return match
        check_separation_of_duties(actor, match)

        self._checkpoint()
        approval.approve(match, actor, self._now())

        self._commit("Approval", f"Approved adjustment for match #{match_id}", actor)
        return match

    def batch_approve(self, match_ids: Iterable[str], actor: User) -> BatchResult:
        """Approve the selected matches that are still pending; skip the rest."""
        self.gate.require(actor, Permission.APPROVE_ADJUSTMENTS, "approve adjustments")
        unique_ids = list(dict.fromkeys(match_ids))
        pending = approval.select_pending(self.workspace, unique_ids)
        pending_ids = {m.id for m in pending}
        skipped_ids = [i for i in unique_ids if i not in pending_ids]

        if not pending:
            return BatchResult(
                skipped=len(skipped_ids),
                skipped_ids=skipped_ids,
                message="No pending matches selected.",
            )

        self._checkpoint()
        count = approval.approve_all(pending, actor, self._now())
        self.workspace.selected_history_ids = set()

        details = f"Batch approved {count} adjustments."
        self._commit("Batch Approval", details, actor)
        return BatchResult(
            processed=count,
            skipped=len(skipped_ids),
            skipped_ids=skipped_ids,
            message=details,
        )

    # ------------------------------------------------------------------
    # Undo / redo and snapshots
    # ------------------------------------------------------------------

    def undo(self) -> bool:
        """
        Step back to the most recent checkpoint. Not checkpointed and not
        audited. Returns False when there was nothing to undo.
        """
        restored = self.checkpoints.undo(self.workspace.capture(), self._now())
        if restored is None:
            return False
        self.workspace.apply(restored)
        self.workspace.clear_all_selections()
        self._persist()
        return True

    def redo(self) -> bool:
        restored = self.checkpoints.redo(self.workspace.capture(), self._now())
        if restored is None:
            return False
        self.workspace.apply(restored)
        self.workspace.clear_all_selections()
        self._persist()
        return True

    def save_snapshot(self, label: str, actor: User) -> SystemSnapshot:
        """Save a named MANUAL version of the current transactions and matches."""
        label = (label or "").strip()
        if not label:
            raise ValidationFailedError("A snapshot needs a label")

        self._checkpoint()
        snapshot = create_snapshot(
            label,
            SnapshotType.MANUAL,
            self.workspace.transactions,
            self.workspace.matches,
            created_by=actor.id,
            now=self._now(),
            selected_date=self.workspace.selected_date,
        )
        retain_snapshot(self.workspace, snapshot, self.config.SNAPSHOT_RETENTION_LIMIT)

        self._commit("Version Save", f"Created manual snapshot: {label}", actor)
        return snapshot

    def restore_snapshot(
        self,
        snapshot_id: str,
        actor: User,
        confirm: Callable[[SystemSnapshot], bool],
    ) -> Optional[SystemSnapshot]:
        """
        Replace transactions, matches and the working date with a snapshot.

        Args:
            confirm: asked with the snapshot before anything changes; a
                falsy answer cancels the restore.

        Returns:
            The restored snapshot, or None if the restore was declined.
        """
        snapshot = self.workspace.get_snapshot(snapshot_id)
        if snapshot is None:
            raise SnapshotNotFoundError(snapshot_id)
        if not confirm(snapshot):
            logger.info(f"Restore of snapshot {snapshot_id} declined")
            return None

        self._checkpoint()
        apply_snapshot(self.workspace, snapshot)

        self._commit(
            "Restoration",
            f"Restored snapshot: {snapshot.label} (taken {snapshot.timestamp.isoformat()})",
            actor,
        )
        return snapshot

    def list_snapshots(self) -> List[SystemSnapshot]:
        return list(self.workspace.snapshots)

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def import_transactions(
        self,
        batch: Union[ImportBatch, Dict[str, Any]],
        actor: User,
        for_date: Union[str, date],
    ) -> ImportResult:
        """
        Replace the workspace transactions with a validated import.

        Invalid rows are dropped and counted. Matches and selections are
        cleared, the working date moves to for_date, and an IMPORT snapshot
        is taken after the data lands.
        """
        if not isinstance(batch, ImportBatch):
            try:
                batch = ImportBatch.model_validate(batch)
            except ValidationError as e:
                raise ValidationFailedError(f"Malformed import batch: {e.error_count()} error(s)") from e
        working_date = parse_cutoff(for_date)
        if working_date is None:
            raise ValidationFailedError("An import needs a working date")

        transactions, errors = validate_batch(batch, actor.id)

        self._checkpoint()
        self.workspace.transactions = transactions
        self.workspace.matches = []
        self.workspace.clear_all_selections()
        self.workspace.selected_date = working_date

        label = f"Import: {batch.name or working_date.isoformat()}"
        snapshot = create_snapshot(
            label,
            SnapshotType.IMPORT,
            transactions,
            [],
            created_by=actor.id,
            now=self._now(),
            selected_date=working_date,
        )
        retain_snapshot(self.workspace, snapshot, self.config.SNAPSHOT_RETENTION_LIMIT)

        details = f"Loaded {len(transactions)} transactions for {working_date.isoformat()}"
        if batch.name:
            details += f' from "{batch.name}"'
        if errors:
            details += f". Skipped {len(errors)} invalid rows"
        self._commit("Import", details, actor)

        return ImportResult(
            imported=len(transactions),
            skipped=len(errors),
            snapshot_id=snapshot.id,
            errors=errors,
        )

    async def import_from(
        self,
        fetch: Callable[[date], Awaitable[Union[ImportBatch, Dict[str, Any]]]],
        actor: User,
        for_date: Union[str, date],
    ) -> ImportResult:
        """Await an external fetch, then apply its result synchronously."""
        working_date = parse_cutoff(for_date)
        if working_date is None:
            raise ValidationFailedError("An import needs a working date")
        batch = await fetch(working_date)
        return self.import_transactions(batch, actor, working_date)

    # ------------------------------------------------------------------
    # Role administration
    # ------------------------------------------------------------------

    def set_role_permissions(
        self,
        role: UserRole,
        permissions: Iterable[Permission],
        actor: User,
    ) -> None:
        self.gate.require(actor, Permission.MANAGE_USERS, "manage users")
        permissions = set(permissions)

        self._checkpoint()
        set_role_permissions(self.workspace, role, permissions)

        names = ", ".join(sorted(p.value for p in permissions)) or "none"
        self._commit("Permissions", f"Set {role.value} permissions: {names}", actor)

    def submit_role_request(
        self,
        reason: str,
        actor: User,
        requested_role: UserRole = UserRole.MANAGER,
    ) -> RoleRequest:
        if not reason or not reason.strip():
            raise ValidationFailedError("A role request needs a reason")

        self._checkpoint()
        request = add_role_request(self.workspace, actor, requested_role, reason, self._now())

        self._commit("Role Request", f"User requested upgrade to {requested_role.value}.", actor)
        return request

    def decide_role_request(self, request_id: str, approve: bool, actor: User) -> RoleRequest:
        self.gate.require(actor, Permission.MANAGE_USERS, "manage users")
        request = find_role_request(self.workspace, request_id)
        if request.status != RoleRequestStatus.PENDING:
            raise ValidationFailedError(f"Role request {request_id} is already {request.status.value}")

        self._checkpoint()
        decide_role_request(self.workspace, request, approve)

        verb = "Approved" if approve else "Rejected"
        self._commit("User Mgmt", f"{verb} role upgrade for {request.user_name}", actor)
        return request

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def toggle_select(self, transaction_id: str, side: Side) -> None:
        selected = (
            self.workspace.selected_left_ids if side == Side.LEFT
            else self.workspace.selected_right_ids
        )
        if transaction_id in selected:
            selected.discard(transaction_id)
        else:
            selected.add(transaction_id)

    def toggle_history_select(self, match_id: str) -> None:
        selected = self.workspace.selected_history_ids
        if match_id in selected:
            selected.discard(match_id)
        else:
            selected.add(match_id)

    def toggle_history_select_all(self) -> None:
        all_ids = {m.id for m in self.workspace.matches}
        if self.workspace.selected_history_ids == all_ids:
            self.workspace.selected_history_ids = set()
        else:
            self.workspace.selected_history_ids = all_ids

    def set_match_comment(self, text: str) -> None:
        self.workspace.match_comment = text

    def clear_selection(self) -> None:
        self.workspace.clear_selection()

    def selection_totals(self) -> Dict[str, Decimal]:
        ws = self.workspace
        left = [t for t in ws.transactions if t.id in ws.selected_left_ids]
        right = [t for t in ws.transactions if t.id in ws.selected_right_ids]
        total_left, total_right, difference = matching.compute_totals(left, right)
        return {
            "left_total": total_left,
            "right_total": total_right,
            "difference": difference,
        }

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def list_matches(self) -> List[MatchGroup]:
        return [m.model_copy(deep=True) for m in self.workspace.matches]

    def export_matches(self, actor: User) -> List[MatchGroup]:
        """Match list for the exporter. Formatting is the exporter's job."""
        self.gate.require(actor, Permission.EXPORT_DATA, "export data")
        return self.list_matches()

    def get_audit_log(self, actor: User) -> List[AuditLogEntry]:
        """Every entry for users with view_all_logs, otherwise the actor's own."""
        if self.gate.has_permission(actor.role, Permission.VIEW_ALL_LOGS):
            return self.audit.entries()
        return self.audit.for_user(actor.id)

    def get_summary(self) -> Dict[str, Any]:
        summary = self.workspace.get_summary()
        summary.update({
            "can_undo": self.checkpoints.can_undo,
            "can_redo": self.checkpoints.can_redo,
            "undo_depth": len(self.checkpoints),
            "redo_depth": self.checkpoints.redo_depth,
            "date_warning": is_stale_working_date(
                self.workspace.selected_date,
                self._now().date(),
                self.config.DATE_WARNING_THRESHOLD_DAYS,
            ),
            "write_off_eligible": len([m for m in self.workspace.matches if m.write_off_eligible]),
            "pending_value": sum_amounts(
                m.adjustment for m in self.workspace.matches if m.is_pending() and m.adjustment
            ),
        })
        return summary
