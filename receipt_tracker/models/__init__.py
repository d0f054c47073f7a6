"""Models package for the receipt tracker.

Receipt: stored reimbursement claim and its lifecycle
ExtractedFields / ExtractionPreview: extraction hints and confirmation data
User: identity and roles
EmailAttachment / EmailProcessingResult: email submission channel
AuditEvent: append-only lifecycle trail
"""

from receipt_tracker.models.audit import AuditEvent, AuditEventType
from receipt_tracker.models.category import Category
from receipt_tracker.models.email import EmailAttachment, EmailProcessingResult, EmailReceiptResult
from receipt_tracker.models.extraction import (
    ExtractedFields,
    ExtractionPreview,
    ProcessOutcome,
    SubmissionResult,
)
from receipt_tracker.models.receipt import (
    DuplicateCandidate,
    Receipt,
    ReceiptCreate,
    ReceiptStatus,
    ReceiptUpdate,
    SubmissionSource,
    SubmitReceiptRequest,
)
from receipt_tracker.models.user import User, UserCreate, UserResponse, UserRole, UserUpdate

__all__ = [
    "AuditEvent",
    "AuditEventType",
    "Category",
    "DuplicateCandidate",
    "EmailAttachment",
    "EmailProcessingResult",
    "EmailReceiptResult",
    "ExtractedFields",
    "ExtractionPreview",
    "ProcessOutcome",
    "Receipt",
    "ReceiptCreate",
    "ReceiptStatus",
    "ReceiptUpdate",
    "SubmissionResult",
    "SubmissionSource",
    "SubmitReceiptRequest",
    "User",
    "UserCreate",
    "UserResponse",
    "UserRole",
    "UserUpdate",
]
