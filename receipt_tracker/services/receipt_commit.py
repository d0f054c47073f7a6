"""Two-phase receipt commit (database row + image relocation).

A receipt's permanent image path is keyed by its database id, so the row has
to exist before the image can be moved there. The workflow is a small saga
with named states and one compensating action per failure point:

  S0 UPLOADED_TEMP    image bytes at a random temp path (input)
  S1 RECORD_INSERTED  row inserted, image_path = temp path (placeholder)
  S2 TEMP_VERIFIED    temp object confirmed present by listing its folder
  S3 MOVED            object moved to {user_id}/{receipt_id}.{ext}
  S4 FINALIZED        row's image_path points at the permanent path

  failure while in    compensation              raised
  ----------------    ------------------------  --------------------------
  S0 (insert)         remove temp object        RecordInsertError
  S1 (verify)         delete row                TempFileMissingError
  S2 (move)           delete row                StorageMoveError
  S3 (final update)   flag row, no undo         ReconciliationNeededError

Compensations are best-effort: their own failures are logged, never raised.
At every instant either no row exists for the attempt, or one row exists
whose image_path holds the image, or the row needs reconciliation (S3 only).

The workflow is not retryable end to end. On any error the caller discards
the attempt and asks the user to re-upload.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from receipt_tracker.models.audit import AuditEventType
from receipt_tracker.models.receipt import Receipt, ReceiptCreate
from receipt_tracker.repositories.receipt_repository import ReceiptRepository
from receipt_tracker.services.audit_logger import AuditLogger
from receipt_tracker.storage.blob_storage import BlobStorage, permanent_path, split_path
from receipt_tracker.utils.helpers.exceptions import (
    IncompleteFieldsError,
    ReconciliationNeededError,
    RecordInsertError,
    StorageError,
    StorageMoveError,
    TempFileMissingError,
)
from receipt_tracker.utils.logging_utils import log_commit_event

logger = logging.getLogger(__name__)


class CommitState(str, Enum):
    UPLOADED_TEMP = "S0_UPLOADED_TEMP"
    RECORD_INSERTED = "S1_RECORD_INSERTED"
    TEMP_VERIFIED = "S2_TEMP_VERIFIED"
    MOVED = "S3_MOVED"
    FINALIZED = "S4_FINALIZED"


@dataclass
class CommitAttempt:
    """Mutable bookkeeping for one submission attempt."""

    user_id: str
    temp_path: str
    state: CommitState = CommitState.UPLOADED_TEMP
    receipt_id: Optional[str] = None
    final_path: Optional[str] = None
    history: List[CommitState] = field(default_factory=lambda: [CommitState.UPLOADED_TEMP])
    compensation_error: Optional[str] = None

    def advance(self, state: CommitState) -> None:
        self.state = state
        self.history.append(state)
        log_commit_event({
            "state": state.value,
            "user_id": self.user_id,
            "receipt_id": self.receipt_id,
            "temp_path": self.temp_path,
            "final_path": self.final_path,
        })


class ReceiptCommitWorkflow:
    """Persist a receipt and move its image from the temp to the permanent path."""

    # State the attempt was in when the next step failed → compensating action.
    COMPENSATIONS: Dict[CommitState, str] = {
        CommitState.UPLOADED_TEMP: "_remove_temp_object",
        CommitState.RECORD_INSERTED: "_delete_record",
        CommitState.TEMP_VERIFIED: "_delete_record",
        CommitState.MOVED: "_flag_for_reconciliation",
    }

    def __init__(
        self,
        repository: ReceiptRepository,
        storage: BlobStorage,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self.repository = repository
        self.storage = storage
        self.audit_logger = audit_logger or AuditLogger()

    def commit(self, fields: ReceiptCreate, temp_path: str, actor: Optional[str] = None) -> Receipt:
        """Run S0 → S4 and return the finalized receipt.

        Args:
            fields: Complete receipt fields (date, amount and category present)
            temp_path: Storage path produced by the upload step
            actor: Audit actor; defaults to the receipt owner

        Raises:
            IncompleteFieldsError: temp_path empty (nothing is touched)
            RecordInsertError: S1 failed; no row exists
            TempFileMissingError: S2 failed; row deleted, temp object untouched
            StorageMoveError: S3 failed; row deleted, temp object still in place
            ReconciliationNeededError: S4 failed; row kept with stale image_path
        """
        if not temp_path or not temp_path.strip():
            raise IncompleteFieldsError(["temp_path"])

        attempt = CommitAttempt(user_id=fields.user_id, temp_path=temp_path)

        # S0 → S1
        try:
            receipt = self.repository.insert(fields, image_path=temp_path)
        except Exception as exc:
            logger.error("Receipt insert failed for user=%s temp=%s: %s", fields.user_id, temp_path, exc)
            self._compensate(attempt, exc)
            raise RecordInsertError(f"Failed to create receipt record: {exc}") from exc
        attempt.receipt_id = receipt.id
        attempt.advance(CommitState.RECORD_INSERTED)

        # S1 → S2
        verify_error: Optional[BaseException] = None
        try:
            present = self._temp_object_present(temp_path)
        except StorageError as exc:
            present = False
            verify_error = exc
        if not present:
            logger.error("Temp file not found before move: %s (%s)", temp_path, verify_error or "not listed")
            self._compensate(attempt, verify_error)
            raise TempFileMissingError(f"Temporary file not found before move: {temp_path}") from verify_error
        attempt.advance(CommitState.TEMP_VERIFIED)

        # S2 → S3
        attempt.final_path = permanent_path(fields.user_id, receipt.id, temp_path)
        try:
            self.storage.move(temp_path, attempt.final_path)
        except Exception as exc:
            logger.error("Moving %s to %s failed: %s", temp_path, attempt.final_path, exc)
            self._compensate(attempt, exc)
            raise StorageMoveError(f"Failed to finalize image storage: {exc}") from exc
        attempt.advance(CommitState.MOVED)

        # S3 → S4
        try:
            receipt = self.repository.update(receipt.id, image_path=attempt.final_path)
        except Exception as exc:
            logger.critical(
                "Receipt %s image moved to %s but record update failed: %s",
                receipt.id, attempt.final_path, exc,
            )
            self._compensate(attempt, exc)
            raise ReconciliationNeededError(receipt.id, temp_path, attempt.final_path, exc) from exc
        attempt.advance(CommitState.FINALIZED)

        self.audit_logger.log(
            event_type=AuditEventType.RECEIPT_SUBMITTED,
            actor=actor or fields.user_id,
            receipt_id=receipt.id,
            data={
                "receipt_date": receipt.receipt_date,
                "amount": receipt.amount,
                "category_id": receipt.category_id,
                "image_path": receipt.image_path,
                "submission_source": receipt.submission_source,
            },
        )
        return receipt

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _temp_object_present(self, temp_path: str) -> bool:
        """List the temp path's folder and require the exact filename."""
        folder, filename = split_path(temp_path)
        entries = self.storage.list(folder, filename)
        return any(entry.name == filename for entry in entries)

    # ------------------------------------------------------------------
    # Compensation
    # ------------------------------------------------------------------

    def _compensate(self, attempt: CommitAttempt, cause: Optional[BaseException]) -> None:
        action_name = self.COMPENSATIONS.get(attempt.state)
        if action_name is None:
            return
        action: Callable[[CommitAttempt], None] = getattr(self, action_name)
        try:
            action(attempt)
            outcome = "ok"
        except Exception as exc:
            attempt.compensation_error = str(exc)
            outcome = "failed"
            logger.error(
                "Compensation %s failed for receipt=%s temp=%s: %s",
                action_name, attempt.receipt_id, attempt.temp_path, exc,
            )
        log_commit_event({
            "state": attempt.state.value,
            "compensation": action_name,
            "outcome": outcome,
            "cause": str(cause) if cause else None,
            "user_id": attempt.user_id,
            "receipt_id": attempt.receipt_id,
            "temp_path": attempt.temp_path,
        })
        if attempt.state != CommitState.MOVED:
            self.audit_logger.log(
                event_type=AuditEventType.COMMIT_COMPENSATED,
                actor=attempt.user_id,
                receipt_id=attempt.receipt_id,
                data={
                    "failed_after": attempt.state,
                    "compensation": action_name,
                    "outcome": outcome,
                    "temp_path": attempt.temp_path,
                    "cause": str(cause) if cause else None,
                },
            )

    def _remove_temp_object(self, attempt: CommitAttempt) -> None:
        self.storage.remove(attempt.temp_path)

    def _delete_record(self, attempt: CommitAttempt) -> None:
        if attempt.receipt_id is not None:
            self.repository.delete(attempt.receipt_id)

    def _flag_for_reconciliation(self, attempt: CommitAttempt) -> None:
        """Record the repair job. The move is never undone."""
        self.audit_logger.log(
            event_type=AuditEventType.RECONCILIATION_NEEDED,
            actor=attempt.user_id,
            receipt_id=attempt.receipt_id,
            data={"temp_path": attempt.temp_path, "final_path": attempt.final_path},
        )
        self.repository.update(attempt.receipt_id, needs_reconciliation=True)
