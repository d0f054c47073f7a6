"""Lenient parsers for values coming back from receipt extraction."""

from __future__ import annotations

import re
import unicodedata
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%Y.%m.%d",
    "%Y%m%d",
    "%m/%d/%Y",
    "%m/%d/%y",
    "%d.%m.%Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%b %d %Y",
    "%B %d %Y",
)

_ORDINAL_SUFFIX = re.compile(r"(\d+)(st|nd|rd|th)\b", re.IGNORECASE)
_AMOUNT_NOISE = re.compile(r"[\s$€£¥,]")
_CENT = Decimal("0.01")


def parse_receipt_date(value: Any) -> Optional[date]:
    """Parse receipt dates across varying formats.

    Returns None instead of raising when the value cannot be understood;
    extraction output is a hint, not validated data.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    normalized = unicodedata.normalize("NFKC", str(value)).strip()
    if not normalized:
        return None
    normalized = _ORDINAL_SUFFIX.sub(r"\1", normalized)
    try:
        return date.fromisoformat(normalized[:10])
    except ValueError:
        pass
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(normalized, fmt).date()
        except ValueError:
            continue
    return None


def parse_amount(value: Any) -> Optional[Decimal]:
    """Parse an extracted amount into a two-place Decimal.

    Currency symbols and thousands separators are stripped. Negative and
    unparseable values yield None, and so do amounts with significant digits
    past the cent; the user then confirms the amount by hand.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        raw = str(value)
    else:
        raw = _AMOUNT_NOISE.sub("", unicodedata.normalize("NFKC", str(value)))
    if not raw:
        return None
    try:
        amount = Decimal(raw)
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount < 0:
        return None
    cents = amount.quantize(_CENT)
    if cents != amount:
        return None
    return cents
