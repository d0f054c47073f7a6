"""Email channel models.

Attachments arrive already decoded; parsing the inbound webhook is the
mail provider integration's job.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class EmailAttachment(BaseModel):
    filename: str
    content_type: str
    data: bytes = Field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)


class EmailReceiptResult(BaseModel):
    """Outcome for one attachment."""

    filename: str
    success: bool
    receipt_id: Optional[str] = None
    receipt_date: Optional[date] = None
    amount: Optional[Decimal] = None
    error: Optional[str] = None


class EmailProcessingResult(BaseModel):
    """Outcome for one inbound email; error is set when nothing was attempted."""

    error: Optional[str] = None
    receipts: List[EmailReceiptResult] = Field(default_factory=list)
