"""Receipt API Endpoints

Endpoints:
- POST /api/receipts/upload           - Stage an image/PDF at a temp path
- POST /api/receipts/preview          - Extraction preview for a temp upload
- POST /api/receipts/process          - Preview and auto-submit when complete
- POST /api/receipts                  - Submit a confirmed receipt
- GET  /api/receipts                  - List own receipts
- POST /api/receipts/check-duplicate  - Existing receipts with same date/amount
- PUT  /api/receipts/bulk-update      - Approved → Reimbursed (admin)
- GET  /api/receipts/{id}             - Get one receipt
- PUT  /api/receipts/{id}             - Edit a pending receipt
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from pydantic import BaseModel, Field

from receipt_tracker.api.dependencies import get_receipt_service
from receipt_tracker.api.errors import http_error
from receipt_tracker.auth.dependencies import get_current_user, require_admin
from receipt_tracker.models.extraction import ExtractionPreview, ProcessOutcome, SubmissionResult
from receipt_tracker.models.receipt import (
    DuplicateCandidate,
    Receipt,
    ReceiptStatus,
    ReceiptUpdate,
    SubmitReceiptRequest,
)
from receipt_tracker.models.user import User
from receipt_tracker.services.receipt_service import ReceiptService
from receipt_tracker.utils.helpers.exceptions import ReceiptProcessingError, StorageError

router = APIRouter(prefix="/api/receipts", tags=["receipts"])


# ============================================================================
# Request/Response Models
# ============================================================================

class UploadResponse(BaseModel):
    temp_path: str


class TempPathRequest(BaseModel):
    temp_path: str = Field(..., min_length=1)


class CheckDuplicateRequest(BaseModel):
    receipt_date: date
    amount: Decimal = Field(..., ge=0)


class CheckDuplicateResponse(BaseModel):
    is_duplicate: bool
    existing_receipts: List[DuplicateCandidate]


class BulkUpdateRequest(BaseModel):
    from_status: ReceiptStatus
    to_status: ReceiptStatus


class BulkUpdateResponse(BaseModel):
    success: bool
    message: str
    updated_count: int


# ============================================================================
# API Endpoints
# ============================================================================

@router.post("/upload", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_receipt_file(
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    service: ReceiptService = Depends(get_receipt_service),
) -> UploadResponse:
    """Stage an uploaded file; the returned temp_path feeds preview/submit."""
    data = await file.read()
    try:
        temp_path = service.upload_temp(current_user, file.filename, data, file.content_type or "")
    except (ReceiptProcessingError, StorageError) as exc:
        raise http_error(exc) from exc
    return UploadResponse(temp_path=temp_path)


@router.post("/preview", response_model=ExtractionPreview)
def preview_receipt(
    request: TempPathRequest,
    current_user: User = Depends(get_current_user),
    service: ReceiptService = Depends(get_receipt_service),
) -> ExtractionPreview:
    try:
        return service.preview_extraction(current_user, request.temp_path)
    except (ReceiptProcessingError, StorageError) as exc:
        raise http_error(exc) from exc


@router.post("/process", response_model=ProcessOutcome)
def process_receipt(
    request: TempPathRequest,
    current_user: User = Depends(get_current_user),
    service: ReceiptService = Depends(get_receipt_service),
) -> ProcessOutcome:
    """Auto-submit when extraction is complete and no duplicate exists.

    Otherwise the preview comes back with ``auto_submitted=false`` and the
    client shows the confirmation form.
    """
    try:
        return service.process_upload(current_user, request.temp_path)
    except (ReceiptProcessingError, StorageError) as exc:
        raise http_error(exc) from exc


@router.post("", response_model=SubmissionResult, status_code=status.HTTP_201_CREATED)
def submit_receipt(
    request: SubmitReceiptRequest,
    current_user: User = Depends(get_current_user),
    service: ReceiptService = Depends(get_receipt_service),
) -> SubmissionResult:
    """Submit a confirmed receipt.

    Example:
        POST /api/receipts
        {
            "temp_path": "<user_id>/temp_1a2b3c4d_1709251200000.jpg",
            "receipt_date": "2024-03-01",
            "amount": "42.50",
            "category_id": "<category id>",
            "description": "client lunch"
        }
    """
    try:
        return service.submit_receipt(current_user, request)
    except (ReceiptProcessingError, StorageError) as exc:
        raise http_error(exc) from exc


@router.get("", response_model=List[Receipt])
def list_my_receipts(
    current_user: User = Depends(get_current_user),
    service: ReceiptService = Depends(get_receipt_service),
) -> List[Receipt]:
    return service.list_receipts(current_user)


@router.post("/check-duplicate", response_model=CheckDuplicateResponse)
def check_duplicate(
    request: CheckDuplicateRequest,
    current_user: User = Depends(get_current_user),
    service: ReceiptService = Depends(get_receipt_service),
) -> CheckDuplicateResponse:
    matches = service.check_duplicates(current_user, request.receipt_date, request.amount)
    return CheckDuplicateResponse(is_duplicate=bool(matches), existing_receipts=matches)


@router.put("/bulk-update", response_model=BulkUpdateResponse)
def bulk_update(
    request: BulkUpdateRequest,
    current_user: User = Depends(require_admin),
    service: ReceiptService = Depends(get_receipt_service),
) -> BulkUpdateResponse:
    """Only Approved → Reimbursed is supported."""
    if request.from_status != ReceiptStatus.APPROVED or request.to_status != ReceiptStatus.REIMBURSED:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid status transition. Only Approved → Reimbursed is supported.",
        )
    try:
        count = service.bulk_reimburse(current_user)
    except ReceiptProcessingError as exc:
        raise http_error(exc) from exc

    if count == 0:
        message = "No approved receipts found to update"
    else:
        message = f"Successfully updated {count} receipts from Approved to Reimbursed"
    return BulkUpdateResponse(success=True, message=message, updated_count=count)


@router.get("/{receipt_id}", response_model=Receipt)
def get_receipt(
    receipt_id: str,
    current_user: User = Depends(get_current_user),
    service: ReceiptService = Depends(get_receipt_service),
) -> Receipt:
    try:
        return service.get_receipt(current_user, receipt_id)
    except ReceiptProcessingError as exc:
        raise http_error(exc) from exc


@router.put("/{receipt_id}", response_model=Receipt)
def update_receipt(
    receipt_id: str,
    request: ReceiptUpdate,
    current_user: User = Depends(get_current_user),
    service: ReceiptService = Depends(get_receipt_service),
) -> Receipt:
    """Edit date/amount/category/description while the receipt is Pending."""
    try:
        return service.update_receipt(current_user, receipt_id, request)
    except ReceiptProcessingError as exc:
        raise http_error(exc) from exc
