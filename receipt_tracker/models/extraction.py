"""Extraction result and submission preview models.

ExtractedFields is what the extraction collaborator proposes for an image.
Every field is independently nullable: a date that parsed must survive an
amount that did not.
"""

from __future__ import annotations

from datetime import date as date_type
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

from receipt_tracker.models.receipt import DuplicateCandidate, Receipt
from receipt_tracker.utils.helpers.date_utils import parse_amount, parse_receipt_date


class ExtractedFields(BaseModel):
    """Best-effort fields proposed by OCR/LLM extraction (untrusted hints)."""

    date: Optional[date_type] = None
    amount: Optional[Decimal] = None
    category_name: Optional[str] = None

    @field_validator("date", mode="before")
    @classmethod
    def _lenient_date(cls, value: Any) -> Optional[date_type]:
        return parse_receipt_date(value)

    @field_validator("amount", mode="before")
    @classmethod
    def _lenient_amount(cls, value: Any) -> Optional[Decimal]:
        return parse_amount(value)

    @field_validator("category_name", mode="before")
    @classmethod
    def _blank_category(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @classmethod
    def empty(cls) -> ExtractedFields:
        """All-null result used when extraction fails."""
        return cls()


class ExtractionPreview(BaseModel):
    """What the confirmation form is pre-filled with.

    can_auto_submit/reason come from the submission decision engine;
    duplicates are advisory and never block a manual submit.
    """

    temp_path: str
    extracted: ExtractedFields
    category_id: Optional[str] = None
    duplicates: List[DuplicateCandidate] = Field(default_factory=list)
    can_auto_submit: bool = False
    reason: str
    extraction_failed: bool = False


class SubmissionResult(BaseModel):
    """Finalized receipt plus any duplicate warning raised at submit time."""

    receipt: Receipt
    duplicates: List[DuplicateCandidate] = Field(default_factory=list)


class ProcessOutcome(BaseModel):
    """Result of upload processing: auto-submitted, or waiting for the user."""

    auto_submitted: bool
    preview: ExtractionPreview
    receipt: Optional[Receipt] = None
