"""Email submission channel.

Each valid attachment of an inbound email becomes one receipt for the
sender: compress, stage at a temp path, extract, then persist through the
same two-phase commit workflow as web uploads. One bad attachment never
aborts the rest of the batch.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from receipt_tracker.models.email import EmailAttachment, EmailProcessingResult, EmailReceiptResult
from receipt_tracker.models.extraction import ExtractedFields
from receipt_tracker.models.receipt import ReceiptCreate, SubmissionSource
from receipt_tracker.repositories.category_repository import CategoryRepository
from receipt_tracker.repositories.user_repository import UserRepository
from receipt_tracker.services.category_resolver import CategoryResolver
from receipt_tracker.services.config_service import Settings
from receipt_tracker.services.receipt_commit import ReceiptCommitWorkflow
from receipt_tracker.services.receipt_service import ReceiptExtractor, extension_for
from receipt_tracker.storage.blob_storage import BlobStorage, make_temp_path
from receipt_tracker.utils.helpers.exceptions import (
    ExtractionError,
    ReceiptProcessingError,
    StorageError,
)
from receipt_tracker.utils.image_utils import compress_image
from receipt_tracker.utils.logging_utils import log_extraction_event

logger = logging.getLogger(__name__)

DESCRIPTION_MAX_LENGTH = 500


class EmailReceiptProcessor:
    """Turn an already-parsed inbound email into receipts for its sender."""

    def __init__(
        self,
        user_repository: UserRepository,
        category_repository: CategoryRepository,
        storage: BlobStorage,
        commit_workflow: ReceiptCommitWorkflow,
        extractor: Optional[ReceiptExtractor] = None,
        settings: Optional[Settings] = None,
    ):
        self.user_repository = user_repository
        self.category_repository = category_repository
        self.category_resolver = CategoryResolver(category_repository)
        self.storage = storage
        self.commit_workflow = commit_workflow
        self.extractor = extractor
        self.settings = settings or Settings.from_env()

    def process(
        self,
        sender_email: str,
        subject: str,
        attachments: Iterable[EmailAttachment],
    ) -> EmailProcessingResult:
        user = self.user_repository.get_user_by_email(sender_email)
        if user is None:
            logger.info("Email from unknown sender %s ignored", sender_email)
            return EmailProcessingResult(
                error=(
                    f"We couldn't find an account associated with {sender_email}. "
                    "Please contact your administrator to add your email address "
                    "to your profile, or use the app."
                ),
            )

        valid = self.filter_attachments(attachments)
        if not valid:
            return EmailProcessingResult(
                error="No valid receipt images found. Please attach JPEG, PNG, or PDF files (max 10MB each).",
            )

        default_category_id = self._default_category_id()
        results: List[EmailReceiptResult] = []
        for attachment in valid:
            try:
                results.append(
                    self._process_attachment(str(user.user_id), subject, attachment, default_category_id)
                )
            except (ReceiptProcessingError, StorageError) as exc:
                logger.error("Email attachment %s failed: %s", attachment.filename, exc)
                results.append(EmailReceiptResult(
                    filename=attachment.filename,
                    success=False,
                    error=f"Failed to process {attachment.filename}",
                ))
        return EmailProcessingResult(receipts=results)

    def filter_attachments(self, attachments: Iterable[EmailAttachment]) -> List[EmailAttachment]:
        """Keep allowed types within the size limit; skip inline images."""
        kept = []
        for attachment in attachments:
            content_type = attachment.content_type.lower()
            if content_type not in self.settings.allowed_content_types:
                continue
            if attachment.size == 0 or attachment.size > self.settings.max_upload_bytes:
                continue
            if attachment.filename.lower().startswith("inline"):
                continue
            kept.append(attachment)
        return kept

    def _process_attachment(
        self,
        user_id: str,
        subject: str,
        attachment: EmailAttachment,
        default_category_id: Optional[str],
    ) -> EmailReceiptResult:
        data = attachment.data
        content_type = attachment.content_type.lower()
        if content_type.startswith("image/"):
            compressed, new_type = compress_image(data)
            if new_type is not None:
                data, content_type = compressed, new_type

        temp_path = make_temp_path(user_id, extension_for(None, content_type), prefix="temp_email")
        self.storage.upload(temp_path, data, content_type)

        extracted = self._extract(data, content_type, temp_path)
        category_id = self.category_resolver.resolve_category(extracted.category_name) or default_category_id

        missing = [
            name for name, value in (
                ("date", extracted.date),
                ("amount", extracted.amount),
                ("category", category_id),
            ) if value is None
        ]
        if missing:
            self._discard(temp_path)
            return EmailReceiptResult(
                filename=attachment.filename,
                success=False,
                receipt_date=extracted.date,
                amount=extracted.amount,
                error=f"Could not read {', '.join(missing)} from {attachment.filename}; please submit it in the app",
            )

        fields = ReceiptCreate(
            user_id=user_id,
            receipt_date=extracted.date,
            amount=extracted.amount,
            category_id=category_id,
            description=f"Email: {subject}"[:DESCRIPTION_MAX_LENGTH],
            submission_source=SubmissionSource.EMAIL,
        )
        receipt = self.commit_workflow.commit(fields, temp_path)
        logger.info("Created receipt %s from email attachment %s", receipt.id, attachment.filename)
        return EmailReceiptResult(
            filename=attachment.filename,
            success=True,
            receipt_id=receipt.id,
            receipt_date=receipt.receipt_date,
            amount=receipt.amount,
        )

    def _extract(self, data: bytes, content_type: str, temp_path: str) -> ExtractedFields:
        if self.extractor is None:
            return ExtractedFields.empty()
        try:
            return self.extractor.extract(data, content_type)
        except ExtractionError as exc:
            logger.warning("Extraction failed for email attachment %s: %s", temp_path, exc)
            log_extraction_event({"temp_path": temp_path, "fallback": "null_fields", "error": str(exc)})
            return ExtractedFields.empty()

    def _default_category_id(self) -> Optional[str]:
        category = self.category_repository.get_by_name(self.settings.default_category_name)
        if category is None:
            logger.error("Default category %r is not configured", self.settings.default_category_name)
            return None
        return category.id

    def _discard(self, temp_path: str) -> None:
        try:
            self.storage.remove(temp_path)
        except StorageError as exc:
            logger.warning("Could not remove temp object %s: %s", temp_path, exc)
