"""
Audit log entry schema.
"""

from datetime import datetime
from pydantic import BaseModel, ConfigDict


class AuditLogEntry(BaseModel):
    """One append-only record of a workspace mutation."""
    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: datetime
    action: str  # Match, Unmatch, Update, Approval, Batch Unmatch, ...
    details: str
    user_id: str
    user_name: str
