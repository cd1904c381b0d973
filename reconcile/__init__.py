"""
Reconciliation Workflow Engine
"""

__version__ = "1.0.0"
__description__ = "Matching, approval and versioning engine for ledger-to-bank reconciliation"

from reconcile.config import get_config
from reconcile.session import ReconciliationSession
from reconcile.state import Workspace

__all__ = [
    "get_config",
    "ReconciliationSession",
    "Workspace",
]
