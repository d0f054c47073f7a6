"""Receipt Service Layer

Business logic for receipt submission, review and reimbursement, sitting in
front of the repositories, blob storage and the extraction client.

Key Responsibilities:
- Validate uploads and stage them at a temp path
- Pre-fill the confirmation form from extraction (never trusted as-is)
- Decide auto-submit vs. human confirmation
- Run every persistence through the two-phase commit workflow
- Enforce the edit guard and the admin status lifecycle

Every operation takes the authenticated user as an explicit ``actor``
argument; the service holds no per-request state.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from pathlib import PurePosixPath
from typing import List, Optional, Protocol

from receipt_tracker.models.audit import AuditEventType
from receipt_tracker.models.category import Category
from receipt_tracker.models.extraction import (
    ExtractedFields,
    ExtractionPreview,
    ProcessOutcome,
    SubmissionResult,
)
from receipt_tracker.models.receipt import (
    STATUS_TRANSITIONS,
    DuplicateCandidate,
    Receipt,
    ReceiptCreate,
    ReceiptStatus,
    ReceiptUpdate,
    SubmitReceiptRequest,
)
from receipt_tracker.models.user import User
from receipt_tracker.repositories.category_repository import CategoryRepository
from receipt_tracker.repositories.receipt_repository import ReceiptRepository
from receipt_tracker.services.audit_logger import AuditLogger
from receipt_tracker.services.category_resolver import CategoryResolver
from receipt_tracker.services.config_service import Settings
from receipt_tracker.services.duplicate_checker import DuplicateChecker
from receipt_tracker.services.receipt_commit import ReceiptCommitWorkflow
from receipt_tracker.services.submission_decision import classify, decide
from receipt_tracker.storage.blob_storage import (
    BlobStorage,
    LocalBlobStorage,
    is_temp_path,
    make_temp_path,
    permanent_path,
    split_path,
)
from receipt_tracker.utils.helpers.exceptions import (
    ExtractionError,
    IncompleteFieldsError,
    InvalidStatusTransitionError,
    InvalidUploadError,
    ReceiptAccessError,
    ReceiptNotEditableError,
    ReceiptNotFoundError,
    StorageNotFoundError,
    TempFileMissingError,
    UnknownCategoryError,
)
from receipt_tracker.utils.logging_utils import log_extraction_event

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "application/pdf": "pdf",
}


class ReceiptExtractor(Protocol):
    def extract(self, image_bytes: bytes, media_type: str) -> ExtractedFields:
        ...


def extension_for(filename: Optional[str], content_type: str) -> str:
    """File extension for a stored upload, preferring the original name."""
    if filename:
        suffix = PurePosixPath(filename).suffix.lower().lstrip(".")
        if suffix in ("jpg", "jpeg", "png", "pdf"):
            return "jpg" if suffix == "jpeg" else suffix
    return _EXTENSIONS.get(content_type, "jpg")


class ReceiptService:
    """Service layer for the receipt lifecycle.

    Architecture:
        API Layer
            ↓
        ReceiptService (this class) ← access rules, decision, edit guard
            ↓
        ReceiptCommitWorkflow ← two-phase row + image commit
            ↓
        ReceiptRepository / BlobStorage
    """

    def __init__(
        self,
        repository: Optional[ReceiptRepository] = None,
        category_repository: Optional[CategoryRepository] = None,
        storage: Optional[BlobStorage] = None,
        extractor: Optional[ReceiptExtractor] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[Settings] = None,
    ):
        """Initialize service with dependencies.

        Args:
            repository: ReceiptRepository for persistence. If None, creates default.
            category_repository: Category lookup. If None, creates default.
            storage: Blob storage for images. If None, uses LocalBlobStorage.
            extractor: Extraction client. If None, every extraction falls back
                to manual entry.
            audit_logger: AuditLogger for the audit trail. If None, creates default.
            settings: Upload limits and defaults. If None, read from the environment.
        """
        self.settings = settings or Settings.from_env()
        self.repository = repository or ReceiptRepository(self.settings.receipt_db_path)
        self.category_repository = category_repository or CategoryRepository(self.settings.receipt_db_path)
        self.storage = storage or LocalBlobStorage(self.settings.storage_dir)
        self.extractor = extractor
        self.audit_logger = audit_logger or AuditLogger()

        self.duplicate_checker = DuplicateChecker(self.repository)
        self.category_resolver = CategoryResolver(self.category_repository)
        self.commit_workflow = ReceiptCommitWorkflow(self.repository, self.storage, self.audit_logger)

    # ------------------------------------------------------------------
    # Upload & extraction
    # ------------------------------------------------------------------

    def upload_temp(self, actor: User, filename: Optional[str], data: bytes, content_type: str) -> str:
        """Validate an upload and store it at a fresh temp path.

        Raises:
            InvalidUploadError: Wrong media type, empty body or too large
        """
        content_type = (content_type or "").lower()
        if content_type not in self.settings.allowed_content_types:
            raise InvalidUploadError(f"Unsupported file type: {content_type or 'unknown'}")
        if not data:
            raise InvalidUploadError("Uploaded file is empty")
        if len(data) > self.settings.max_upload_bytes:
            raise InvalidUploadError(
                f"File too large: {len(data)} bytes (max {self.settings.max_upload_bytes})"
            )

        temp_path = make_temp_path(str(actor.user_id), extension_for(filename, content_type))
        self.storage.upload(temp_path, data, content_type)
        logger.info("Stored upload for user=%s at %s (%d bytes)", actor.user_id, temp_path, len(data))
        return temp_path

    def preview_extraction(self, actor: User, temp_path: str) -> ExtractionPreview:
        """Extract, resolve, check duplicates and decide, without persisting.

        Extraction failure is not an error here: the preview comes back with
        all fields empty and ``extraction_failed`` set.
        """
        self._check_temp_path(actor, temp_path)
        try:
            data = self.storage.download(temp_path)
        except StorageNotFoundError as exc:
            raise TempFileMissingError(f"Temporary file not found: {temp_path}") from exc

        extracted, failed = self._extract(data, self.storage.content_type(temp_path), temp_path)
        category_id = self.category_resolver.resolve_category(extracted.category_name)
        duplicates = self.duplicate_checker.find_duplicates(
            str(actor.user_id), extracted.date, extracted.amount
        )
        decision = decide(classify(extracted.date, extracted.amount, category_id), duplicates)

        return ExtractionPreview(
            temp_path=temp_path,
            extracted=extracted,
            category_id=category_id,
            duplicates=duplicates,
            can_auto_submit=decision.can_auto_submit,
            reason=decision.reason,
            extraction_failed=failed,
        )

    def process_upload(self, actor: User, temp_path: str) -> ProcessOutcome:
        """Preview, then auto-submit with an empty description when allowed."""
        preview = self.preview_extraction(actor, temp_path)
        if not preview.can_auto_submit:
            logger.info("Receipt at %s needs confirmation: %s", temp_path, preview.reason)
            return ProcessOutcome(auto_submitted=False, preview=preview)

        fields = ReceiptCreate(
            user_id=str(actor.user_id),
            receipt_date=preview.extracted.date,
            amount=preview.extracted.amount,
            category_id=preview.category_id,
            description="",
        )
        receipt = self.commit_workflow.commit(fields, temp_path, actor=str(actor.user_id))
        return ProcessOutcome(auto_submitted=True, preview=preview, receipt=receipt)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit_receipt(self, actor: User, request: SubmitReceiptRequest) -> SubmissionResult:
        """Manual (confirmed) submission.

        Duplicates are reported alongside the saved receipt and never block.

        Raises:
            IncompleteFieldsError: date, amount or category still missing
            UnknownCategoryError: category id not in the lookup table
            ReceiptAccessError: temp path belongs to another user, is not an
                upload temp path, or is already referenced by a receipt
            RecordInsertError, TempFileMissingError, StorageMoveError,
            ReconciliationNeededError: from the commit workflow
        """
        missing = []
        if request.receipt_date is None:
            missing.append("date")
        if request.amount is None:
            missing.append("amount")
        if not request.category_id:
            missing.append("category")
        if not request.temp_path or not request.temp_path.strip():
            missing.append("temp_path")
        if missing:
            raise IncompleteFieldsError(missing)

        if self.category_repository.get(request.category_id) is None:
            raise UnknownCategoryError(f"Unknown category: {request.category_id}")
        self._check_temp_path(actor, request.temp_path)

        user_id = str(actor.user_id)
        duplicates = self.duplicate_checker.find_duplicates(user_id, request.receipt_date, request.amount)
        fields = ReceiptCreate(
            user_id=user_id,
            receipt_date=request.receipt_date,
            amount=request.amount,
            category_id=request.category_id,
            description=request.description,
        )
        receipt = self.commit_workflow.commit(fields, request.temp_path, actor=user_id)
        return SubmissionResult(receipt=receipt, duplicates=duplicates)

    def check_duplicates(self, actor: User, receipt_date: Optional[date], amount: Optional[Decimal]) -> List[DuplicateCandidate]:
        return self.duplicate_checker.find_duplicates(str(actor.user_id), receipt_date, amount)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_receipts(self, actor: User) -> List[Receipt]:
        return self.repository.list_for_user(str(actor.user_id))

    def list_all_receipts(
        self,
        actor: User,
        status: Optional[ReceiptStatus] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> List[Receipt]:
        self._require_admin(actor)
        return self.repository.list_all(status=status, from_date=from_date, to_date=to_date)

    def get_receipt(self, actor: User, receipt_id: str) -> Receipt:
        receipt = self.repository.get(receipt_id)
        if receipt is None:
            raise ReceiptNotFoundError(f"Receipt not found: {receipt_id}")
        if receipt.user_id != str(actor.user_id) and not actor.is_admin:
            raise ReceiptAccessError(f"User {actor.user_id} cannot access receipt {receipt_id}")
        return receipt

    def list_categories(self) -> List[Category]:
        return self.category_repository.list_all()

    # ------------------------------------------------------------------
    # Edits & lifecycle
    # ------------------------------------------------------------------

    def update_receipt(self, actor: User, receipt_id: str, changes: ReceiptUpdate) -> Receipt:
        """Edit a PENDING receipt (owner or admin).

        Raises:
            ReceiptNotEditableError: Receipt is not PENDING
            UnknownCategoryError: New category id not in the lookup table
        """
        receipt = self.get_receipt(actor, receipt_id)
        if not receipt.is_editable():
            raise ReceiptNotEditableError(receipt.status.value)

        updates = changes.changes()
        if not updates:
            return receipt
        if "category_id" in updates and self.category_repository.get(updates["category_id"]) is None:
            raise UnknownCategoryError(f"Unknown category: {updates['category_id']}")

        updated = self.repository.update(receipt_id, **updates)
        self.audit_logger.log(
            event_type=AuditEventType.RECEIPT_UPDATED,
            actor=str(actor.user_id),
            receipt_id=receipt_id,
            data={"changes": updates},
        )
        return updated

    def set_status(self, actor: User, receipt_id: str, new_status: ReceiptStatus) -> Receipt:
        """Admin status change along the allowed lifecycle edges only."""
        self._require_admin(actor)
        receipt = self.repository.get(receipt_id)
        if receipt is None:
            raise ReceiptNotFoundError(f"Receipt not found: {receipt_id}")
        if new_status not in STATUS_TRANSITIONS.get(receipt.status, set()):
            raise InvalidStatusTransitionError(receipt.status.value, new_status.value)

        updated = self.repository.update(receipt_id, status=new_status)
        self.audit_logger.log(
            event_type=AuditEventType.RECEIPT_STATUS_CHANGED,
            actor=str(actor.user_id),
            receipt_id=receipt_id,
            data={"from": receipt.status, "to": new_status},
        )
        return updated

    def bulk_reimburse(self, actor: User) -> int:
        """Move every APPROVED receipt to REIMBURSED in one update."""
        self._require_admin(actor)
        count = self.repository.update_status_bulk(ReceiptStatus.APPROVED, ReceiptStatus.REIMBURSED)
        logger.info("Bulk reimbursed %d receipt(s) by %s", count, actor.user_id)
        self.audit_logger.log(
            event_type=AuditEventType.RECEIPTS_BULK_REIMBURSED,
            actor=str(actor.user_id),
            data={"count": count},
        )
        return count

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def list_reconciliation_queue(self, actor: User) -> List[Receipt]:
        """Flagged receipts, plus rows whose image already sits at the
        permanent path while image_path still names the upload.

        The second group covers a failed final update whose flag write
        failed as well.
        """
        self._require_admin(actor)
        return [
            receipt for receipt in self.repository.list_unfinalized()
            if receipt.needs_reconciliation
            or self.storage.exists(permanent_path(receipt.user_id, receipt.id, receipt.image_path))
        ]

    def reconcile(self, actor: User, receipt_id: str) -> Receipt:
        """Point a stranded row at its moved image and clear the flag.

        When nothing exists at the permanent path the row is returned
        unchanged (still flagged).
        """
        self._require_admin(actor)
        receipt = self.repository.get(receipt_id)
        if receipt is None:
            raise ReceiptNotFoundError(f"Receipt not found: {receipt_id}")

        final_path = permanent_path(receipt.user_id, receipt.id, receipt.image_path)
        if receipt.image_path == final_path and not receipt.needs_reconciliation:
            return receipt
        if not self.storage.exists(final_path):
            logger.warning("Cannot reconcile receipt %s: no object at %s", receipt_id, final_path)
            return receipt

        repaired = self.repository.update(receipt_id, image_path=final_path, needs_reconciliation=False)
        self.audit_logger.log(
            event_type=AuditEventType.RECEIPT_RECONCILED,
            actor=str(actor.user_id),
            receipt_id=receipt_id,
            data={"stale_path": receipt.image_path, "image_path": final_path},
        )
        return repaired

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _extract(self, data: bytes, media_type: str, temp_path: str) -> tuple[ExtractedFields, bool]:
        if self.extractor is None:
            log_extraction_event({"temp_path": temp_path, "fallback": "no_extractor"})
            return ExtractedFields.empty(), True
        started = datetime.utcnow()
        try:
            return self.extractor.extract(data, media_type), False
        except ExtractionError as exc:
            logger.warning("Extraction failed for %s, falling back to manual entry: %s", temp_path, exc)
            log_extraction_event({
                "temp_path": temp_path,
                "fallback": "manual_entry",
                "error": str(exc),
                "elapsed_ms": int((datetime.utcnow() - started).total_seconds() * 1000),
            })
            return ExtractedFields.empty(), True

    def _check_temp_path(self, actor: User, temp_path: str) -> None:
        user_id = str(actor.user_id)
        if not temp_path or split_path(temp_path)[0] != user_id:
            raise ReceiptAccessError(f"Temp path {temp_path!r} does not belong to user {user_id}")
        if not is_temp_path(temp_path, user_id):
            raise ReceiptAccessError(f"{temp_path!r} is not an upload temp path")
        owner = self.repository.get_by_image_path(temp_path)
        if owner is not None:
            raise ReceiptAccessError(f"{temp_path!r} is already used by receipt {owner.id}")

    @staticmethod
    def _require_admin(actor: User) -> None:
        if not actor.is_admin:
            raise ReceiptAccessError("Admin role required")
