"""Duplicate detection for receipt submissions."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional

from receipt_tracker.models.receipt import DuplicateCandidate
from receipt_tracker.repositories.receipt_repository import ReceiptRepository

logger = logging.getLogger(__name__)


class DuplicateChecker:
    """Find existing receipts for the same user with identical date and amount.

    Matching is exact on (user_id, receipt_date, amount): no tolerance window
    and no fuzzy matching. Description is deliberately not part of the key;
    it is what a human uses to tell two same-day, same-amount claims apart,
    so every match is returned with its description.
    """

    def __init__(self, repository: Optional[ReceiptRepository] = None):
        self.repository = repository or ReceiptRepository()

    def find_duplicates(
        self,
        user_id: str,
        receipt_date: Optional[date],
        amount: Optional[Decimal],
    ) -> List[DuplicateCandidate]:
        """Return all candidate duplicates, or [] when date or amount is missing.

        A missing date or amount skips the query entirely; the store is not
        touched.
        """
        if receipt_date is None or amount is None:
            return []
        matches = self.repository.find_duplicates(user_id, receipt_date, amount)
        if matches:
            logger.info(
                "Found %d duplicate candidate(s) for user=%s date=%s amount=%s",
                len(matches), user_id, receipt_date, amount,
            )
        return matches
