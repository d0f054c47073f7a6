"""Pytest configuration and shared fixtures for receipt tracker tests.

- Isolated SQLite files and blob bucket per test (tmp_path)
- Fake extraction client (no network)
- Seeded categories and users
- FastAPI TestClient with service providers overridden
"""

from pathlib import Path
from typing import List, Optional, Union

import pytest
from fastapi.testclient import TestClient

# Add parent directory to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from receipt_tracker.auth.jwt import create_access_token
from receipt_tracker.auth.password import hash_password
from receipt_tracker.models.category import Category
from receipt_tracker.models.extraction import ExtractedFields
from receipt_tracker.models.user import User, UserRole
from receipt_tracker.repositories.audit_repository import AuditRepository
from receipt_tracker.repositories.category_repository import CategoryRepository
from receipt_tracker.repositories.receipt_repository import ReceiptRepository
from receipt_tracker.repositories.user_repository import UserRepository
from receipt_tracker.services.audit_logger import AuditLogger
from receipt_tracker.services.config_service import Settings
from receipt_tracker.services.receipt_service import ReceiptService
from receipt_tracker.services.user_service import UserService
from receipt_tracker.storage.blob_storage import LocalBlobStorage
from receipt_tracker.utils.helpers.exceptions import ExtractionError

TEST_PASSWORD = "password123"
TRAVEL_ID = "cat-1"


class FakeExtractor:
    """Extraction client double: returns a canned result or raises."""

    def __init__(self, result: Union[ExtractedFields, Exception, None] = None):
        self.result = result if result is not None else ExtractedFields.empty()
        self.calls: List[tuple] = []

    def extract(self, image_bytes: bytes, media_type: str) -> ExtractedFields:
        self.calls.append((image_bytes, media_type))
        if isinstance(self.result, Exception):
            raise self.result
        return self.result

    def returns(self, date: Optional[str] = None, amount=None, category_name: Optional[str] = None) -> None:
        self.result = ExtractedFields(date=date, amount=amount, category_name=category_name)

    def fails(self, message: str = "service unavailable") -> None:
        self.result = ExtractionError(message)


@pytest.fixture(autouse=True)
def isolated_event_log(tmp_path, monkeypatch):
    """Keep structured workflow events out of the working tree."""
    log_dir = tmp_path / "logs"
    monkeypatch.setattr("receipt_tracker.utils.logging_utils.LOG_DIR", log_dir)
    monkeypatch.setattr("receipt_tracker.utils.logging_utils.LOG_FILE", log_dir / "receipts.log")
    return log_dir / "receipts.log"


@pytest.fixture
def test_db_path(tmp_path) -> str:
    return str(tmp_path / "receipts.db")


@pytest.fixture
def receipt_repository(test_db_path: str) -> ReceiptRepository:
    return ReceiptRepository(db_path=test_db_path)


@pytest.fixture
def category_repository(test_db_path: str) -> CategoryRepository:
    repo = CategoryRepository(db_path=test_db_path)
    repo.create("Travel", category_id=TRAVEL_ID)
    repo.create("Meals", category_id="cat-2")
    repo.create("Other", category_id="cat-other")
    return repo


@pytest.fixture
def travel(category_repository: CategoryRepository) -> Category:
    return category_repository.get(TRAVEL_ID)


@pytest.fixture
def audit_repository(tmp_path) -> AuditRepository:
    return AuditRepository(db_path=str(tmp_path / "audit.db"))


@pytest.fixture
def audit_logger(audit_repository: AuditRepository) -> AuditLogger:
    return AuditLogger(audit_repository)


@pytest.fixture
def storage(tmp_path) -> LocalBlobStorage:
    return LocalBlobStorage(tmp_path / "bucket")


@pytest.fixture
def extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def settings() -> Settings:
    return Settings(max_upload_bytes=1024 * 1024)


@pytest.fixture(scope="session")
def password_hash() -> str:
    return hash_password(TEST_PASSWORD)


@pytest.fixture
def user_repository(test_db_path: str) -> UserRepository:
    return UserRepository(db_path=test_db_path)


@pytest.fixture
def employee(user_repository: UserRepository, password_hash: str) -> User:
    return user_repository.create_user(
        User(name="Erin Employee", email="erin@example.com", password_hash=password_hash)
    )


@pytest.fixture
def other_employee(user_repository: UserRepository, password_hash: str) -> User:
    return user_repository.create_user(
        User(name="Omar Other", email="omar@example.com", password_hash=password_hash)
    )


@pytest.fixture
def admin(user_repository: UserRepository, password_hash: str) -> User:
    return user_repository.create_user(
        User(name="Ada Admin", email="ada@example.com", password_hash=password_hash, role=UserRole.ADMIN)
    )


@pytest.fixture
def receipt_service(
    receipt_repository: ReceiptRepository,
    category_repository: CategoryRepository,
    storage: LocalBlobStorage,
    extractor: FakeExtractor,
    audit_logger: AuditLogger,
    settings: Settings,
) -> ReceiptService:
    return ReceiptService(
        repository=receipt_repository,
        category_repository=category_repository,
        storage=storage,
        extractor=extractor,
        audit_logger=audit_logger,
        settings=settings,
    )


@pytest.fixture
def user_service(user_repository: UserRepository, audit_logger: AuditLogger) -> UserService:
    return UserService(user_repository, audit_logger)


@pytest.fixture
def upload(receipt_service: ReceiptService):
    """Stage bytes for a user and return the temp path."""
    def _upload(user: User, data: bytes = b"\xff\xd8fake-jpeg", filename: str = "receipt.jpg",
                content_type: str = "image/jpeg") -> str:
        return receipt_service.upload_temp(user, filename, data, content_type)
    return _upload


@pytest.fixture
def api_client(receipt_service, user_service, user_repository, audit_repository):
    """FastAPI test client wired to the per-test services."""
    from receipt_tracker.api import dependencies
    from receipt_tracker.main import create_app

    app = create_app()
    app.dependency_overrides[dependencies.get_receipt_service] = lambda: receipt_service
    app.dependency_overrides[dependencies.get_user_service] = lambda: user_service
    app.dependency_overrides[dependencies.get_user_repository] = lambda: user_repository
    app.dependency_overrides[dependencies.get_audit_repository] = lambda: audit_repository
    with TestClient(app) as client:
        yield client


@pytest.fixture
def auth_headers():
    """Bearer header for a user."""
    def _headers(user: User) -> dict:
        token = create_access_token(user)
        return {"Authorization": f"Bearer {token}"}
    return _headers
