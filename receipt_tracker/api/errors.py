"""Domain error → HTTP status mapping shared by the routers."""

from fastapi import HTTPException, status

from receipt_tracker.utils.helpers.exceptions import (
    IncompleteFieldsError,
    InvalidStatusTransitionError,
    InvalidUploadError,
    ReceiptAccessError,
    ReceiptNotEditableError,
    ReceiptNotFoundError,
    ReceiptProcessingError,
    ReconciliationNeededError,
    StorageError,
    TempFileMissingError,
    UnknownCategoryError,
    UserConflictError,
    UserNotFoundError,
)

# First matching class wins.
_STATUS_BY_ERROR = (
    (IncompleteFieldsError, status.HTTP_400_BAD_REQUEST),
    (UnknownCategoryError, status.HTTP_400_BAD_REQUEST),
    (InvalidUploadError, status.HTTP_400_BAD_REQUEST),
    (ReceiptAccessError, status.HTTP_403_FORBIDDEN),
    (ReceiptNotFoundError, status.HTTP_404_NOT_FOUND),
    (UserNotFoundError, status.HTTP_404_NOT_FOUND),
    (TempFileMissingError, status.HTTP_404_NOT_FOUND),
    (ReceiptNotEditableError, status.HTTP_409_CONFLICT),
    (InvalidStatusTransitionError, status.HTTP_409_CONFLICT),
    (UserConflictError, status.HTTP_409_CONFLICT),
)


def http_error(exc: Exception) -> HTTPException:
    """Translate a service-layer exception into an HTTPException.

    The detail is always a dict with a user-facing ``message``; the
    reconciliation case also carries the receipt id for support.
    """
    if isinstance(exc, ReconciliationNeededError):
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": "reconciliation_needed",
                "message": exc.user_message,
                "receipt_id": exc.receipt_id,
            },
        )

    if isinstance(exc, StorageError):
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "storage_error", "message": ReceiptProcessingError.user_message},
        )

    for error_class, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_class):
            detail = {"error": _error_code(exc), "message": exc.user_message}
            if isinstance(exc, IncompleteFieldsError):
                detail["missing"] = exc.missing
            return HTTPException(status_code=status_code, detail=detail)

    message = exc.user_message if isinstance(exc, ReceiptProcessingError) else ReceiptProcessingError.user_message
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"error": _error_code(exc), "message": message},
    )


def _error_code(exc: Exception) -> str:
    name = type(exc).__name__
    if name.endswith("Error"):
        name = name[: -len("Error")]
    return "".join(f"_{char.lower()}" if char.isupper() else char for char in name).lstrip("_")
