"""Category lookup endpoint (read-only)."""

from typing import List

from fastapi import APIRouter, Depends

from receipt_tracker.api.dependencies import get_receipt_service
from receipt_tracker.auth.dependencies import get_current_user
from receipt_tracker.models.category import Category
from receipt_tracker.models.user import User
from receipt_tracker.services.receipt_service import ReceiptService

router = APIRouter(prefix="/api/categories", tags=["categories"])


@router.get("", response_model=List[Category])
def list_categories(
    current_user: User = Depends(get_current_user),
    service: ReceiptService = Depends(get_receipt_service),
) -> List[Category]:
    return service.list_categories()
