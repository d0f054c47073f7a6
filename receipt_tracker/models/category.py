from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class Category(BaseModel):
    """Static expense category (owned by configuration, read-only here)."""

    id: str
    name: str = Field(..., min_length=1, max_length=100)
    created_at: datetime = Field(default_factory=datetime.utcnow)
