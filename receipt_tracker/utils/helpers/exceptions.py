"""Exception taxonomy for receipt submission and storage.

Every failure the submission workflow can surface to a caller is one of the
ReceiptProcessingError subclasses below. Storage backends raise StorageError
subclasses so callers can tell "not found" apart from "permission" and
"transient" failures.
"""

from __future__ import annotations

from typing import Iterable, Optional


class ReceiptProcessingError(Exception):
    """Raised when high-level receipt workflows fail."""

    #: Message safe to show an end user.
    user_message = "Something went wrong. Please try again."


class ConfigurationError(Exception):
    """Raised when configuration loading encounters issues."""


class ExtractionError(ReceiptProcessingError):
    """Extraction service unreachable, misconfigured or returned garbage.

    Never fatal to a submission attempt: callers fall back to an all-null
    extraction result and route the receipt to manual confirmation.
    """


class IncompleteFieldsError(ReceiptProcessingError):
    """Required fields still missing at manual-submit time."""

    user_message = "Please fill in the receipt date, amount and category."

    def __init__(self, missing: Iterable[str]):
        self.missing = sorted(set(missing))
        super().__init__(f"Missing required fields: {', '.join(self.missing)}")


class UnknownCategoryError(ReceiptProcessingError):
    user_message = "Please choose a valid category."


class InvalidUploadError(ReceiptProcessingError):
    """Upload rejected before reaching storage (type, size, empty body)."""

    user_message = "Please upload a JPEG, PNG or PDF file up to 10MB."


class ReceiptAccessError(ReceiptProcessingError):
    user_message = "You do not have access to this receipt."


class ReceiptNotFoundError(ReceiptProcessingError):
    user_message = "Receipt not found."


class UserNotFoundError(ReceiptProcessingError):
    user_message = "User not found."


class UserConflictError(ReceiptProcessingError):
    """Email already registered to another account."""

    user_message = "A user with this email already exists."


class ReceiptNotEditableError(ReceiptProcessingError):
    def __init__(self, status: str):
        self.status = status
        super().__init__(f"Cannot edit receipt with status {status}")

    @property
    def user_message(self) -> str:  # type: ignore[override]
        return str(self)


class InvalidStatusTransitionError(ReceiptProcessingError):
    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Invalid status transition: {current} → {requested}")

    @property
    def user_message(self) -> str:  # type: ignore[override]
        return str(self)


class RecordInsertError(ReceiptProcessingError):
    """Inserting the receipt row failed; nothing was persisted."""


class TempFileMissingError(ReceiptProcessingError):
    """The uploaded temp object was not found when verifying before the move."""

    user_message = "Your upload could not be found. Please re-upload the receipt."


class StorageMoveError(ReceiptProcessingError):
    """Moving the temp object to its permanent path failed."""

    user_message = "We could not store your receipt image. Please re-upload the receipt."


class ReconciliationNeededError(ReceiptProcessingError):
    """The image moved but the receipt row still points at the temp path.

    This is the one failure the workflow cannot undo on its own; the row is
    left in place and queued for administrative repair.
    """

    user_message = "Your receipt was saved but needs attention. Please contact support."

    def __init__(self, receipt_id: str, temp_path: str, final_path: str, cause: Optional[BaseException] = None):
        self.receipt_id = receipt_id
        self.temp_path = temp_path
        self.final_path = final_path
        detail = f": {cause}" if cause else ""
        super().__init__(
            f"Receipt {receipt_id} image moved to {final_path} but the record still points at {temp_path}{detail}"
        )


# ----------------------------------------------------------------------------
# Storage
# ----------------------------------------------------------------------------

class StorageError(Exception):
    """Base class for blob storage failures."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(message)


class StorageNotFoundError(StorageError):
    pass


class StoragePermissionError(StorageError):
    pass


class StorageConflictError(StorageError):
    """Destination already exists (uploads and moves never overwrite)."""


class StorageTransientError(StorageError):
    """I/O failure that may succeed if retried with a fresh attempt."""


__all__ = [
    "ConfigurationError",
    "ExtractionError",
    "IncompleteFieldsError",
    "InvalidStatusTransitionError",
    "InvalidUploadError",
    "ReceiptAccessError",
    "ReceiptNotEditableError",
    "ReceiptNotFoundError",
    "ReceiptProcessingError",
    "ReconciliationNeededError",
    "RecordInsertError",
    "StorageConflictError",
    "StorageError",
    "StorageMoveError",
    "StorageNotFoundError",
    "StoragePermissionError",
    "StorageTransientError",
    "TempFileMissingError",
    "UnknownCategoryError",
    "UserConflictError",
    "UserNotFoundError",
]
