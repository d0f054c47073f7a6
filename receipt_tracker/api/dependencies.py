"""Service providers for the API layer.

Providers lazily build one process-wide instance; the email processor is
assembled per request from the receipt service. Tests replace them through
``app.dependency_overrides``.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends

from receipt_tracker.extractors.openai_vision_extractor import OpenAIReceiptExtractor
from receipt_tracker.repositories.audit_repository import AuditRepository
from receipt_tracker.repositories.category_repository import CategoryRepository
from receipt_tracker.repositories.user_repository import UserRepository
from receipt_tracker.services.audit_logger import AuditLogger
from receipt_tracker.services.config_service import ConfigService, Settings
from receipt_tracker.services.email_intake import EmailReceiptProcessor
from receipt_tracker.services.receipt_service import ReceiptService
from receipt_tracker.services.user_service import UserService
from receipt_tracker.storage.blob_storage import LocalBlobStorage

_settings: Optional[Settings] = None
_user_repository: Optional[UserRepository] = None
_audit_repository: Optional[AuditRepository] = None
_receipt_service: Optional[ReceiptService] = None
_user_service: Optional[UserService] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def get_user_repository() -> UserRepository:
    """Get or create UserRepository singleton."""
    global _user_repository
    if _user_repository is None:
        _user_repository = UserRepository(get_settings().receipt_db_path)
    return _user_repository


def get_audit_repository() -> AuditRepository:
    """Get or create AuditRepository singleton."""
    global _audit_repository
    if _audit_repository is None:
        _audit_repository = AuditRepository(get_settings().audit_db_path)
    return _audit_repository


def get_audit_logger() -> AuditLogger:
    return AuditLogger(get_audit_repository())


def get_receipt_service() -> ReceiptService:
    """Get or create ReceiptService singleton.

    Seeds the category table from config/categories.json on first use.
    """
    global _receipt_service
    if _receipt_service is None:
        settings = get_settings()
        categories = CategoryRepository(settings.receipt_db_path)
        categories.seed(ConfigService().get_category_names())
        extractor = OpenAIReceiptExtractor(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            category_names=[category.name for category in categories.list_all()],
        )
        _receipt_service = ReceiptService(
            category_repository=categories,
            storage=LocalBlobStorage(settings.storage_dir),
            extractor=extractor,
            audit_logger=get_audit_logger(),
            settings=settings,
        )
    return _receipt_service


def get_user_service() -> UserService:
    """Get or create UserService singleton."""
    global _user_service
    if _user_service is None:
        _user_service = UserService(get_user_repository(), get_audit_logger())
    return _user_service


def get_email_processor(
    service: ReceiptService = Depends(get_receipt_service),
    users: UserRepository = Depends(get_user_repository),
) -> EmailReceiptProcessor:
    """Email channel sharing the receipt service's storage, extractor and commit workflow."""
    return EmailReceiptProcessor(
        user_repository=users,
        category_repository=service.category_repository,
        storage=service.storage,
        commit_workflow=service.commit_workflow,
        extractor=service.extractor,
        settings=service.settings,
    )
