from __future__ import annotations

from typing import Optional

from receipt_tracker.repositories.category_repository import CategoryRepository


class CategoryResolver:
    """Map an extracted category name onto a configured category id."""

    def __init__(self, repository: Optional[CategoryRepository] = None):
        self.repository = repository or CategoryRepository()

    def resolve_category(self, name: Optional[str]) -> Optional[str]:
        """Case-insensitive exact match; None when nothing matches."""
        if not name or not name.strip():
            return None
        category = self.repository.get_by_name(name)
        return category.id if category else None
