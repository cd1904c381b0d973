"""
Approval Workflow
PENDING_APPROVAL -> APPROVED. There is no reverse transition and no rejected
state for matches.
"""

from datetime import datetime
from typing import Iterable, List

from reconcile.schemas.match import MatchGroup, MatchStatus
from reconcile.schemas.users import User
from reconcile.state import Workspace
from reconcile.utils.logging import setup_logging


logger = setup_logging(__name__)


def approve(match: MatchGroup, actor: User, now: datetime) -> bool:
    """
    Approve a pending match.

    Returns:
        True if the match transitioned, False if it was already approved.
    """
    if match.status == MatchStatus.APPROVED:
        return False

    match.status = MatchStatus.APPROVED
    match.approved_by = actor.name
    match.approved_at = now
    logger.info(f"[ApprovalWorkflow] Match {match.id} approved by {actor.name}")
    return True


def select_pending(workspace: Workspace, match_ids: Iterable[str]) -> List[MatchGroup]:
    """Selected matches whose current status is PENDING_APPROVAL, each once."""
    pending = []
    for match_id in dict.fromkeys(match_ids):
        match = workspace.get_match(match_id)
        if match is not None and match.is_pending():
            pending.append(match)
    return pending


def approve_all(matches: Iterable[MatchGroup], actor: User, now: datetime) -> int:
    """Approve every given match; returns how many actually transitioned."""
    return sum(1 for match in matches if approve(match, actor, now))
