"""Receipt domain model.

A Receipt is one reimbursement claim. It is created in PENDING status by an
employee (web upload) or by the email channel, edited only while PENDING,
and moved by admins through the approval lifecycle:

  PENDING  → APPROVED | REJECTED
  APPROVED → REIMBURSED   (individually or in bulk)

Receipts are never hard-deleted by normal flows. The only delete path is the
compensating action of the two-phase commit workflow, which removes a row
that never reached a stable state.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

CENT = Decimal("0.01")


class ReceiptStatus(str, Enum):
    """Receipt lifecycle states (values match the stored column)."""

    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    REIMBURSED = "Reimbursed"


class SubmissionSource(str, Enum):
    WEB = "web"
    EMAIL = "email"


# Allowed single-receipt admin transitions.
STATUS_TRANSITIONS = {
    ReceiptStatus.PENDING: {ReceiptStatus.APPROVED, ReceiptStatus.REJECTED},
    ReceiptStatus.APPROVED: {ReceiptStatus.REIMBURSED},
    ReceiptStatus.REJECTED: set(),
    ReceiptStatus.REIMBURSED: set(),
}


def to_amount(value: Any) -> Decimal:
    """Coerce a currency amount into a canonical two-place Decimal.

    Floats go through ``str`` first so 42.5 becomes Decimal("42.50") rather
    than its binary expansion.

    Raises:
        ValueError: If the value is not numeric, negative, or has more than
            two fractional digits.
    """
    if isinstance(value, bool):
        raise ValueError("amount must be a number")
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(str(value).strip()) if not isinstance(value, Decimal) else value
    except (InvalidOperation, ValueError):
        raise ValueError(f"amount must be a number, got {value!r}") from None
    if not amount.is_finite():
        raise ValueError("amount must be finite")
    if amount < 0:
        raise ValueError("amount must be non-negative")
    if amount != amount.quantize(CENT):
        raise ValueError("amount must have at most two decimal places")
    return amount.quantize(CENT)


def amount_to_db(amount: Decimal) -> str:
    """Canonical text form used for storage and exact equality matching."""
    return str(to_amount(amount))


class DuplicateCandidate(BaseModel):
    """An existing receipt that collides on (user, date, amount)."""

    id: str
    description: str = ""


class Receipt(BaseModel):
    """Stored receipt record.

    Attributes:
        id: Opaque identifier generated at insert (UUID4 string)
        user_id: Owner
        receipt_date: Calendar date of the purchase
        amount: Non-negative amount with two decimal places
        category_id: Reference into the category table
        description: Free text; the intended disambiguator between duplicates
        status: Lifecycle state
        image_path: Bucket-relative path of the backing image/PDF
        needs_reconciliation: Set when the image moved but the pointer
            update failed; cleared by an admin reconcile
        submission_source: web or email
    """

    id: str
    user_id: str
    receipt_date: date
    amount: Decimal
    category_id: str
    description: str = ""
    status: ReceiptStatus = ReceiptStatus.PENDING
    image_path: str
    needs_reconciliation: bool = False
    submission_source: SubmissionSource = SubmissionSource.WEB
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("amount", mode="before")
    @classmethod
    def _validate_amount(cls, value: Any) -> Decimal:
        return to_amount(value)

    def is_editable(self) -> bool:
        return self.status == ReceiptStatus.PENDING


class ReceiptCreate(BaseModel):
    """Fields required to insert a receipt row (step S1 of the commit)."""

    user_id: str = Field(..., min_length=1)
    receipt_date: date
    amount: Decimal
    category_id: str = Field(..., min_length=1)
    description: str = Field(default="", max_length=500)
    submission_source: SubmissionSource = SubmissionSource.WEB

    @field_validator("amount", mode="before")
    @classmethod
    def _validate_amount(cls, value: Any) -> Decimal:
        return to_amount(value)


class ReceiptUpdate(BaseModel):
    """Partial edit of a PENDING receipt. Omitted fields are left unchanged."""

    receipt_date: Optional[date] = None
    amount: Optional[Decimal] = None
    category_id: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=500)

    @field_validator("amount", mode="before")
    @classmethod
    def _validate_amount(cls, value: Any) -> Optional[Decimal]:
        if value is None:
            return None
        return to_amount(value)

    def changes(self) -> dict:
        return self.model_dump(exclude_none=True)


class SubmitReceiptRequest(BaseModel):
    """Manual (human-confirmed) submission.

    Date, amount and category are optional at the model level so that a
    missing field is reported as IncompleteFieldsError listing every gap,
    rather than as a generic validation failure.
    """

    temp_path: str = Field(..., description="Temp storage path returned by the upload step")
    receipt_date: Optional[date] = None
    amount: Optional[Decimal] = None
    category_id: Optional[str] = None
    description: str = Field(default="", max_length=500)

    @field_validator("amount", mode="before")
    @classmethod
    def _validate_amount(cls, value: Any) -> Optional[Decimal]:
        if value is None or value == "":
            return None
        return to_amount(value)

    @field_validator("category_id", mode="before")
    @classmethod
    def _blank_category_is_missing(cls, value: Any) -> Optional[str]:
        if isinstance(value, str) and not value.strip():
            return None
        return value
