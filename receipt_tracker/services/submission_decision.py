"""Auto-submit decision for extracted receipts.

Pure functions only: no I/O, no mutation. The decision is a deterministic
function of (date, amount, category_id, duplicates), evaluated in order:

  1. date missing          → incomplete:date
  2. amount missing        → incomplete:amount
  3. category_id missing   → incomplete:category
  4. duplicates non-empty  → duplicate
  5. otherwise             → complete (auto-submit)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import FrozenSet, Optional, Sequence, Union

from receipt_tracker.models.receipt import DuplicateCandidate

# Field order matters: it is the order rules 1-3 are checked in.
REQUIRED_FIELDS = ("date", "amount", "category")

REASON_COMPLETE = "complete"
REASON_DUPLICATE = "duplicate"


def incomplete_reason(field_name: str) -> str:
    return f"incomplete:{field_name}"


@dataclass(frozen=True)
class Complete:
    """All three fields needed to persist a receipt are present."""

    date: date
    amount: Decimal
    category_id: str


@dataclass(frozen=True)
class Incomplete:
    """At least one required field is missing."""

    missing: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def first_missing(self) -> str:
        return next(name for name in REQUIRED_FIELDS if name in self.missing)


ClassifiedExtraction = Union[Complete, Incomplete]


@dataclass(frozen=True)
class SubmissionDecision:
    can_auto_submit: bool
    reason: str


def classify(
    receipt_date: Optional[date],
    amount: Optional[Decimal],
    category_id: Optional[str],
) -> ClassifiedExtraction:
    """Tag an extraction as Complete or Incomplete (with every missing field)."""
    missing = set()
    if receipt_date is None:
        missing.add("date")
    if amount is None:
        missing.add("amount")
    if not category_id:
        missing.add("category")
    if missing:
        return Incomplete(frozenset(missing))
    return Complete(date=receipt_date, amount=amount, category_id=category_id)


def decide(
    extraction: ClassifiedExtraction,
    duplicates: Sequence[DuplicateCandidate],
) -> SubmissionDecision:
    """Apply the ordered auto-submit rule to a classified extraction."""
    if isinstance(extraction, Incomplete):
        return SubmissionDecision(False, incomplete_reason(extraction.first_missing))
    if duplicates:
        return SubmissionDecision(False, REASON_DUPLICATE)
    return SubmissionDecision(True, REASON_COMPLETE)


def evaluate(
    receipt_date: Optional[date],
    amount: Optional[Decimal],
    category_id: Optional[str],
    duplicates: Sequence[DuplicateCandidate],
) -> SubmissionDecision:
    """classify() then decide()."""
    return decide(classify(receipt_date, amount, category_id), duplicates)
