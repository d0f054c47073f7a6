"""Audit trail records.

One event per receipt lifecycle step (submit, edit, status change, commit
compensation, reconciliation) and per user-administration action. Events
are frozen once built and the store has no update path.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


class AuditEventType(str, Enum):
    """Audit event types for the receipt lifecycle."""

    RECEIPT_SUBMITTED = "RECEIPT_SUBMITTED"
    """Receipt finalized by the two-phase commit (web or email)."""

    RECEIPT_UPDATED = "RECEIPT_UPDATED"
    """Pending receipt edited by its owner or an admin."""

    RECEIPT_STATUS_CHANGED = "RECEIPT_STATUS_CHANGED"
    """Admin moved a single receipt to a new status."""

    RECEIPTS_BULK_REIMBURSED = "RECEIPTS_BULK_REIMBURSED"
    """All approved receipts marked reimbursed in one update."""

    COMMIT_COMPENSATED = "COMMIT_COMPENSATED"
    """A failed commit attempt ran its compensating action."""

    RECONCILIATION_NEEDED = "RECONCILIATION_NEEDED"
    """Image moved but the record still points at the temp path."""

    RECEIPT_RECONCILED = "RECEIPT_RECONCILED"
    """Admin repaired a receipt flagged for reconciliation."""

    USER_CREATED = "USER_CREATED"
    USER_UPDATED = "USER_UPDATED"
    USER_BANNED = "USER_BANNED"
    USER_UNBANNED = "USER_UNBANNED"


class AuditEvent(BaseModel):
    """A single audit record.

    ``actor`` is the acting user id, or "SYSTEM" for the email channel.
    Both timestamps are UTC.
    """

    model_config = ConfigDict(frozen=True)

    event_id: UUID = Field(default_factory=uuid4)
    event_type: AuditEventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    actor: str
    receipt_id: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
