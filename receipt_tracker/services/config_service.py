"""File and environment based configuration for the receipt tracker."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from receipt_tracker.utils.helpers.exceptions import ConfigurationError

BASE_DIR = Path(__file__).resolve().parents[2]
CONFIG_DIR = BASE_DIR / "config"

ALLOWED_CONTENT_TYPES: Tuple[str, ...] = ("image/jpeg", "image/jpg", "image/png", "application/pdf")
DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    """Runtime settings read from the process environment."""

    receipt_db_path: Optional[str] = None
    audit_db_path: Optional[str] = None
    storage_dir: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    default_category_name: str = "Other"
    allowed_content_types: Tuple[str, ...] = field(default=ALLOWED_CONTENT_TYPES)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            receipt_db_path=os.getenv("RECEIPT_DB_PATH") or None,
            audit_db_path=os.getenv("AUDIT_DB_PATH") or None,
            storage_dir=os.getenv("RECEIPT_STORAGE_DIR") or None,
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_model=os.getenv("OPENAI_MODEL") or "gpt-4o-mini",
            max_upload_bytes=_int_env("MAX_UPLOAD_BYTES", DEFAULT_MAX_UPLOAD_BYTES),
            default_category_name=os.getenv("DEFAULT_CATEGORY_NAME") or "Other",
        )


class ConfigService:
    """Load static config snapshots from the filesystem only."""

    def __init__(self, config_dir: Optional[Path] = None) -> None:
        self.config_dir = Path(config_dir) if config_dir else CONFIG_DIR
        self.categories_path = self.config_dir / "categories.json"
        self._categories: Optional[List[str]] = None
        self._logger = logging.getLogger(__name__)

    def get_category_names(self) -> List[str]:
        """Return the seed category list from config/categories.json."""
        if self._categories is None:
            self._categories = self._load_categories()
        return list(self._categories)

    def _load_categories(self) -> List[str]:
        if not self.categories_path.exists():
            self._logger.warning("Category config not found: %s", self.categories_path)
            return []
        try:
            with self.categories_path.open("r", encoding="utf-8") as handle:
                data = json.load(handle) or {}
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Invalid JSON in {self.categories_path}: {exc}") from exc

        names = data.get("categories", []) if isinstance(data, dict) else data
        cleaned = [str(name).strip() for name in names or [] if str(name).strip()]
        self._logger.info("Loaded %d categories from %s", len(cleaned), self.categories_path)
        return cleaned
