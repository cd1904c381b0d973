"""
FastAPI REST surface over a single reconciliation session.
Can be run with: uvicorn reconcile.api:app --reload

The acting operator is taken from the X-User-Id header and falls back to
DEFAULT_OPERATOR_ID.
"""

from typing import List, Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from reconcile.components.importer import ImportResult
from reconcile.config import get_config
from reconcile.exceptions import (
    CheckpointCorruptedError,
    NotFoundError,
    PeriodLockedError,
    PermissionDeniedError,
    ReconciliationError,
    ValidationFailedError,
)
from reconcile.main import open_session
from reconcile.schemas.audit import AuditLogEntry
from reconcile.schemas.match import BatchResult, MatchGroup
from reconcile.schemas.snapshot import SystemSnapshot
from reconcile.schemas.transaction import Side, Transaction, TransactionStatus
from reconcile.schemas.users import Permission, RoleRequest, User, UserRole
from reconcile.session import ReconciliationSession
from reconcile.utils.logging import setup_logging


logger = setup_logging(__name__)
config = get_config()

app = FastAPI(
    title="Reconciliation Workflow API",
    description="Match, approve and version reconciliations between a ledger and a bank statement",
    version="1.0.0",
)


class MatchRequest(BaseModel):
    left_ids: List[str] = Field(default_factory=list)
    right_ids: List[str] = Field(default_factory=list)
    comment: Optional[str] = None


class CommentRequest(BaseModel):
    text: str


class BatchRequest(BaseModel):
    match_ids: List[str] = Field(default_factory=list)


class CutoffRequest(BaseModel):
    cutoff: Optional[str] = None  # YYYY-MM-DD, null clears the lock


class SnapshotRequest(BaseModel):
    label: str


class RestoreRequest(BaseModel):
    confirm: bool = False


class ImportRequest(BaseModel):
    date: str
    name: Optional[str] = None
    left: List[dict] = Field(default_factory=list)
    right: List[dict] = Field(default_factory=list)


class PermissionsRequest(BaseModel):
    permissions: List[Permission]


class RoleRequestBody(BaseModel):
    reason: str
    requested_role: UserRole = UserRole.MANAGER


class DecisionRequest(BaseModel):
    approve: bool


# Session for this process (single operator per workspace)
_session: Optional[ReconciliationSession] = None


def get_session() -> ReconciliationSession:
    """Get or create the process-wide session."""
    global _session
    if _session is None:
        _session = open_session(config)
    return _session


def get_actor(
    x_user_id: Optional[str] = Header(None),
    session: ReconciliationSession = Depends(get_session),
) -> User:
    return session.resolve_user(x_user_id or session.config.DEFAULT_OPERATOR_ID)


def status_for(error: ReconciliationError) -> int:
    if isinstance(error, PermissionDeniedError):
        return 403
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, PeriodLockedError):
        return 423
    if isinstance(error, ValidationFailedError):
        return 422
    if isinstance(error, CheckpointCorruptedError):
        return 500
    return 400


@app.exception_handler(ReconciliationError)
async def reconciliation_error_handler(request: Request, exc: ReconciliationError):
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        content={
            "error": exc.code,
            "message": str(exc),
        },
        status_code=status_code,
    )


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": "1.0.0"}


@app.get("/config")
async def get_config_endpoint():
    """Get current configuration (sanitized)."""
    return {
        "approval_threshold": str(config.APPROVAL_THRESHOLD),
        "write_off_limit": str(config.WRITE_OFF_LIMIT),
        "max_undo_stack": config.MAX_UNDO_STACK,
        "snapshot_retention_limit": config.SNAPSHOT_RETENTION_LIMIT,
        "date_warning_threshold_days": config.DATE_WARNING_THRESHOLD_DAYS,
    }


@app.get("/summary")
def summary(session: ReconciliationSession = Depends(get_session)):
    return session.get_summary()


@app.get("/transactions", response_model=List[Transaction])
def list_transactions(
    side: Optional[Side] = None,
    status: Optional[TransactionStatus] = None,
    session: ReconciliationSession = Depends(get_session),
):
    return [
        t for t in session.workspace.transactions
        if (side is None or t.side == side) and (status is None or t.status == status)
    ]


@app.get("/matches", response_model=List[MatchGroup])
def list_matches(session: ReconciliationSession = Depends(get_session)):
    return session.list_matches()


@app.post("/matches")
def create_match(
    body: MatchRequest,
    session: ReconciliationSession = Depends(get_session),
    actor: User = Depends(get_actor),
):
    match = session.create_match(body.left_ids, body.right_ids, body.comment, actor)
    if match is None:
        return JSONResponse(content={"match": None, "message": "Nothing selected"}, status_code=200)
    return JSONResponse(content={"match": match.model_dump(mode="json")}, status_code=201)


@app.delete("/matches/{match_id}", response_model=MatchGroup)
def unmatch(
    match_id: str,
    session: ReconciliationSession = Depends(get_session),
    actor: User = Depends(get_actor),
):
    return session.unmatch(match_id, actor)


@app.put("/matches/{match_id}/comment", response_model=MatchGroup)
def update_comment(
    match_id: str,
    body: CommentRequest,
    session: ReconciliationSession = Depends(get_session),
    actor: User = Depends(get_actor),
):
    return session.update_comment(match_id, body.text, actor)


@app.post("/matches/{match_id}/approve", response_model=MatchGroup)
def approve_match(
    match_id: str,
    session: ReconciliationSession = Depends(get_session),
    actor: User = Depends(get_actor),
):
    return session.approve(match_id, actor)


@app.post("/matches/batch-unmatch", response_model=BatchResult)
def batch_unmatch(
    body: BatchRequest,
    session: ReconciliationSession = Depends(get_session),
    actor: User = Depends(get_actor),
):
    return session.batch_unmatch(body.match_ids, actor)


@app.post("/matches/batch-approve", response_model=BatchResult)
def batch_approve(
    body: BatchRequest,
    session: ReconciliationSession = Depends(get_session),
    actor: User = Depends(get_actor),
):
    return session.batch_approve(body.match_ids, actor)


@app.get("/export/matches", response_model=List[MatchGroup])
def export_matches(
    session: ReconciliationSession = Depends(get_session),
    actor: User = Depends(get_actor),
):
    return session.export_matches(actor)


@app.put("/period-lock")
def set_period_lock(
    body: CutoffRequest,
    session: ReconciliationSession = Depends(get_session),
    actor: User = Depends(get_actor),
):
    cutoff = session.set_cutoff(body.cutoff, actor)
    return {"locked_date": cutoff.isoformat() if cutoff else None}


@app.post("/undo")
def undo(session: ReconciliationSession = Depends(get_session)):
    return {"undone": session.undo(), "undo_depth": len(session.checkpoints)}


@app.post("/redo")
def redo(session: ReconciliationSession = Depends(get_session)):
    return {"redone": session.redo(), "undo_depth": len(session.checkpoints)}


@app.get("/snapshots", response_model=List[SystemSnapshot])
def list_snapshots(session: ReconciliationSession = Depends(get_session)):
    return session.list_snapshots()


@app.post("/snapshots", response_model=SystemSnapshot, status_code=201)
def save_snapshot(
    body: SnapshotRequest,
    session: ReconciliationSession = Depends(get_session),
    actor: User = Depends(get_actor),
):
    return session.save_snapshot(body.label, actor)


@app.post("/snapshots/{snapshot_id}/restore")
def restore_snapshot(
    snapshot_id: str,
    body: RestoreRequest,
    session: ReconciliationSession = Depends(get_session),
    actor: User = Depends(get_actor),
):
    restored = session.restore_snapshot(snapshot_id, actor, confirm=lambda _: body.confirm)
    return {"restored": restored is not None, "snapshot_id": snapshot_id}


@app.get("/audit", response_model=List[AuditLogEntry])
def audit_log(
    session: ReconciliationSession = Depends(get_session),
    actor: User = Depends(get_actor),
):
    return session.get_audit_log(actor)


@app.post("/import", response_model=ImportResult)
def import_transactions(
    body: ImportRequest,
    session: ReconciliationSession = Depends(get_session),
    actor: User = Depends(get_actor),
):
    batch = {"left": body.left, "right": body.right, "name": body.name}
    return session.import_transactions(batch, actor, body.date)


@app.put("/roles/{role}/permissions")
def set_role_permissions(
    role: UserRole,
    body: PermissionsRequest,
    session: ReconciliationSession = Depends(get_session),
    actor: User = Depends(get_actor),
):
    session.set_role_permissions(role, body.permissions, actor)
    return {"role": role.value, "permissions": sorted(p.value for p in body.permissions)}


@app.post("/role-requests", response_model=RoleRequest, status_code=201)
def submit_role_request(
    body: RoleRequestBody,
    session: ReconciliationSession = Depends(get_session),
    actor: User = Depends(get_actor),
):
    return session.submit_role_request(body.reason, actor, body.requested_role)


@app.post("/role-requests/{request_id}/decision", response_model=RoleRequest)
def decide_role_request(
    request_id: str,
    body: DecisionRequest,
    session: ReconciliationSession = Depends(get_session),
    actor: User = Depends(get_actor),
):
    return session.decide_role_request(request_id, body.approve, actor)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=config.API_HOST,
        port=config.API_PORT,
        log_level=config.LOG_LEVEL.lower(),
    )
