"""Best-effort audit trail writer.

Audit writes must never change the outcome of the operation being audited:
a receipt that committed stays committed even if audit.db is unavailable.
Failures are logged as warnings and dropped.

Event data is reduced to JSON-safe values with pydantic (Decimal amounts
keep their exact text, UUIDs and dates become strings). Keys that could
carry file contents are removed before storage.
"""

import logging
from typing import Any, Dict, Optional

from pydantic_core import to_jsonable_python

from receipt_tracker.models.audit import AuditEvent, AuditEventType
from receipt_tracker.repositories.audit_repository import AuditRepository

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "SYSTEM"
_BLOCKED_KEYS = {"image_bytes", "image_data", "file_data", "password", "password_hash"}


def audit_payload(data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """JSON-safe copy of data without blocked keys."""
    cleaned = {key: value for key, value in (data or {}).items() if key not in _BLOCKED_KEYS}
    return to_jsonable_python(cleaned, fallback=str)


class AuditLogger:
    """Error boundary between services and AuditRepository.

    Example:
        audit_logger.log(
            AuditEventType.RECEIPT_SUBMITTED,
            actor=str(user.user_id),
            receipt_id=receipt.id,
            data={"amount": receipt.amount},
        )
    """

    def __init__(self, repository: Optional[AuditRepository] = None):
        self.repository = repository or AuditRepository()

    def log(
        self,
        event_type: AuditEventType,
        actor: Optional[str] = None,
        receipt_id: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditEvent]:
        """Record an event; returns it, or None if it could not be stored."""
        try:
            event = AuditEvent(
                event_type=event_type,
                actor=actor or SYSTEM_ACTOR,
                receipt_id=receipt_id,
                data=audit_payload(data),
            )
            self.repository.save_event(event)
        except Exception as exc:
            logger.warning(
                "Audit event %s for receipt=%s dropped: %s",
                getattr(event_type, "value", event_type), receipt_id, exc,
            )
            return None
        return event
