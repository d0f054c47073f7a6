"""Admin API Endpoints

Every route requires the ADMIN role.

Endpoints:
- GET   /api/admin/receipts                    - All receipts (status/date filters)
- GET   /api/admin/receipts/reconciliation     - Receipts flagged for repair
- PATCH /api/admin/receipts/{id}/status        - Approve / reject / reimburse one
- POST  /api/admin/receipts/{id}/reconcile     - Repair a flagged receipt
- POST  /api/admin/email-intake                - Receipts from an inbound email (decoded attachments)
- GET   /api/admin/users                       - List users
- POST  /api/admin/users                       - Create user
- PUT   /api/admin/users/{id}                  - Edit name/email/role
- POST  /api/admin/users/{id}/ban              - Ban (indefinite or N hours)
- POST  /api/admin/users/{id}/unban            - Lift a ban
- GET   /api/admin/audits/receipt/{id}         - Audit trail for a receipt
- GET   /api/admin/audits/recent               - Recent audit events (type/actor filters)
"""

from __future__ import annotations

from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from pydantic import BaseModel, Field

from receipt_tracker.api.dependencies import (
    get_audit_repository,
    get_email_processor,
    get_receipt_service,
    get_user_service,
)
from receipt_tracker.api.errors import http_error
from receipt_tracker.auth.dependencies import require_admin
from receipt_tracker.models.audit import AuditEvent, AuditEventType
from receipt_tracker.models.email import EmailAttachment, EmailProcessingResult
from receipt_tracker.models.receipt import Receipt, ReceiptStatus
from receipt_tracker.models.user import User, UserCreate, UserResponse, UserUpdate
from receipt_tracker.repositories.audit_repository import AuditRepository
from receipt_tracker.services.email_intake import EmailReceiptProcessor
from receipt_tracker.services.receipt_service import ReceiptService
from receipt_tracker.services.user_service import UserService
from receipt_tracker.utils.helpers.exceptions import ReceiptProcessingError, StorageError

router = APIRouter(prefix="/api/admin", tags=["admin"])


# ============================================================================
# Request/Response Models
# ============================================================================

class StatusChangeRequest(BaseModel):
    status: ReceiptStatus


class BanRequest(BaseModel):
    hours: Optional[int] = Field(None, ge=1, description="Ban length; omit for an indefinite ban")


class AuditEventResponse(BaseModel):
    """Audit event with JSON-safe fields."""

    event_id: str
    event_type: str
    timestamp: str
    actor: str
    receipt_id: Optional[str] = None
    data: dict
    created_at: str

    @classmethod
    def from_event(cls, event: AuditEvent) -> AuditEventResponse:
        return cls(
            event_id=str(event.event_id),
            event_type=event.event_type.value,
            timestamp=event.timestamp.isoformat(),
            actor=event.actor,
            receipt_id=event.receipt_id,
            data=event.data,
            created_at=event.created_at.isoformat(),
        )


# ============================================================================
# Receipts
# ============================================================================

@router.get("/receipts", response_model=List[Receipt])
def list_all_receipts(
    status_filter: Optional[ReceiptStatus] = Query(None, alias="status"),
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    current_user: User = Depends(require_admin),
    service: ReceiptService = Depends(get_receipt_service),
) -> List[Receipt]:
    """Example: GET /api/admin/receipts?status=Approved&from_date=2024-03-01"""
    try:
        return service.list_all_receipts(current_user, status_filter, from_date, to_date)
    except ReceiptProcessingError as exc:
        raise http_error(exc) from exc


@router.get("/receipts/reconciliation", response_model=List[Receipt])
def list_reconciliation_queue(
    current_user: User = Depends(require_admin),
    service: ReceiptService = Depends(get_receipt_service),
) -> List[Receipt]:
    try:
        return service.list_reconciliation_queue(current_user)
    except (ReceiptProcessingError, StorageError) as exc:
        raise http_error(exc) from exc


@router.patch("/receipts/{receipt_id}/status", response_model=Receipt)
def change_receipt_status(
    receipt_id: str,
    request: StatusChangeRequest,
    current_user: User = Depends(require_admin),
    service: ReceiptService = Depends(get_receipt_service),
) -> Receipt:
    """Allowed: Pending → Approved, Pending → Rejected, Approved → Reimbursed."""
    try:
        return service.set_status(current_user, receipt_id, request.status)
    except ReceiptProcessingError as exc:
        raise http_error(exc) from exc


@router.post("/receipts/{receipt_id}/reconcile", response_model=Receipt)
def reconcile_receipt(
    receipt_id: str,
    current_user: User = Depends(require_admin),
    service: ReceiptService = Depends(get_receipt_service),
) -> Receipt:
    """Returns the receipt; ``needs_reconciliation`` stays true if repair was impossible."""
    try:
        return service.reconcile(current_user, receipt_id)
    except (ReceiptProcessingError, StorageError) as exc:
        raise http_error(exc) from exc


# ============================================================================
# Email channel
# ============================================================================

@router.post("/email-intake", response_model=EmailProcessingResult)
async def receive_email(
    sender_email: str = Form(...),
    subject: str = Form(""),
    attachments: List[UploadFile] = File(...),
    current_user: User = Depends(require_admin),
    processor: EmailReceiptProcessor = Depends(get_email_processor),
) -> EmailProcessingResult:
    """Hand-off point for the mail provider integration.

    Per-attachment failures come back in ``receipts``; ``error`` is set when
    the sender is unknown or no attachment qualified.
    """
    decoded = [
        EmailAttachment(
            filename=upload.filename or "attachment",
            content_type=upload.content_type or "application/octet-stream",
            data=await upload.read(),
        )
        for upload in attachments
    ]
    return processor.process(sender_email, subject, decoded)


# ============================================================================
# Users
# ============================================================================

@router.get("/users", response_model=List[UserResponse])
def list_users(
    current_user: User = Depends(require_admin),
    service: UserService = Depends(get_user_service),
) -> List[UserResponse]:
    return [UserResponse.from_user(user) for user in service.list_users()]


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    request: UserCreate,
    current_user: User = Depends(require_admin),
    service: UserService = Depends(get_user_service),
) -> UserResponse:
    try:
        return UserResponse.from_user(service.create_user(current_user, request))
    except ReceiptProcessingError as exc:
        raise http_error(exc) from exc


@router.put("/users/{user_id}", response_model=UserResponse)
def update_user(
    user_id: UUID,
    request: UserUpdate,
    current_user: User = Depends(require_admin),
    service: UserService = Depends(get_user_service),
) -> UserResponse:
    try:
        return UserResponse.from_user(service.update_user(current_user, user_id, request))
    except ReceiptProcessingError as exc:
        raise http_error(exc) from exc


@router.post("/users/{user_id}/ban", response_model=UserResponse)
def ban_user(
    user_id: UUID,
    request: BanRequest,
    current_user: User = Depends(require_admin),
    service: UserService = Depends(get_user_service),
) -> UserResponse:
    if user_id == current_user.user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Admins cannot ban themselves")
    try:
        return UserResponse.from_user(service.ban_user(current_user, user_id, request.hours))
    except ReceiptProcessingError as exc:
        raise http_error(exc) from exc


@router.post("/users/{user_id}/unban", response_model=UserResponse)
def unban_user(
    user_id: UUID,
    current_user: User = Depends(require_admin),
    service: UserService = Depends(get_user_service),
) -> UserResponse:
    try:
        return UserResponse.from_user(service.unban_user(current_user, user_id))
    except ReceiptProcessingError as exc:
        raise http_error(exc) from exc


# ============================================================================
# Audit trail (read-only)
# ============================================================================

@router.get("/audits/receipt/{receipt_id}", response_model=List[AuditEventResponse])
def get_receipt_audit_trail(
    receipt_id: str,
    limit: int = Query(200, ge=1, le=1000),
    current_user: User = Depends(require_admin),
    repository: AuditRepository = Depends(get_audit_repository),
) -> List[AuditEventResponse]:
    """Events for one receipt, newest first."""
    events = repository.get_events_for_receipt(receipt_id, limit=limit)
    return [AuditEventResponse.from_event(event) for event in events]


@router.get("/audits/recent", response_model=List[AuditEventResponse])
def get_recent_audit_events(
    event_type: Optional[AuditEventType] = None,
    actor: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    current_user: User = Depends(require_admin),
    repository: AuditRepository = Depends(get_audit_repository),
) -> List[AuditEventResponse]:
    """Example: GET /api/admin/audits/recent?event_type=RECONCILIATION_NEEDED"""
    events = repository.find_events(event_type=event_type, actor=actor, limit=limit)
    return [AuditEventResponse.from_event(event) for event in events]
