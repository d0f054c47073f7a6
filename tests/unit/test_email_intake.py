import io
from datetime import date
from decimal import Decimal

import pytest
from PIL import Image

from receipt_tracker.models.email import EmailAttachment
from receipt_tracker.models.receipt import SubmissionSource
from receipt_tracker.services.email_intake import EmailReceiptProcessor
from receipt_tracker.services.receipt_commit import ReceiptCommitWorkflow
from receipt_tracker.storage.blob_storage import LocalBlobStorage
from receipt_tracker.utils.helpers.exceptions import StorageTransientError

from conftest import TRAVEL_ID


def _jpeg(size=(2400, 1200)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, "white").save(buffer, format="JPEG")
    return buffer.getvalue()


def _attachment(filename="receipt.jpg", content_type="image/jpeg", data=None) -> EmailAttachment:
    return EmailAttachment(filename=filename, content_type=content_type, data=data if data is not None else _jpeg())


class FlakyUploadStorage(LocalBlobStorage):
    """Fails the first upload only."""

    def __init__(self, base_dir):
        super().__init__(base_dir)
        self.failed = False

    def upload(self, path, data, content_type):
        if not self.failed:
            self.failed = True
            raise StorageTransientError("bucket unavailable", path=path)
        return super().upload(path, data, content_type)


def _processor(storage, user_repository, category_repository, receipt_repository, extractor, settings,
               audit_logger):
    return EmailReceiptProcessor(
        user_repository=user_repository,
        category_repository=category_repository,
        storage=storage,
        commit_workflow=ReceiptCommitWorkflow(receipt_repository, storage, audit_logger),
        extractor=extractor,
        settings=settings,
    )


@pytest.fixture
def processor(storage, user_repository, category_repository, receipt_repository, extractor, settings,
              audit_logger):
    return _processor(storage, user_repository, category_repository, receipt_repository, extractor,
                      settings, audit_logger)


def test_unknown_sender_is_reported(processor):
    result = processor.process("stranger@example.com", "Lunch", [_attachment()])

    assert result.receipts == []
    assert "stranger@example.com" in result.error


def test_no_valid_attachments(processor, employee):
    result = processor.process(employee.email, "Lunch", [_attachment("notes.txt", "text/plain", b"hi")])

    assert result.receipts == []
    assert result.error.startswith("No valid receipt images found")


def test_filter_skips_inline_empty_and_oversize(processor, settings):
    attachments = [
        _attachment("inline-logo.png", "image/png"),
        _attachment("empty.jpg", data=b""),
        _attachment("huge.jpg", data=b"x" * (settings.max_upload_bytes + 1)),
        _attachment("scan.PDF", "APPLICATION/PDF", b"%PDF-1.4"),
        _attachment("photo.jpg"),
    ]

    kept = processor.filter_attachments(attachments)

    assert [a.filename for a in kept] == ["scan.PDF", "photo.jpg"]


def test_complete_attachment_becomes_email_receipt(processor, employee, extractor, storage, receipt_repository):
    extractor.returns(date="2024-03-01", amount="42.50", category_name="travel")

    result = processor.process(employee.email, "Taxi to airport", [_attachment()])

    assert result.error is None
    [outcome] = result.receipts
    assert outcome.success is True
    receipt = receipt_repository.get(outcome.receipt_id)
    assert receipt.user_id == str(employee.user_id)
    assert receipt.receipt_date == date(2024, 3, 1)
    assert receipt.amount == Decimal("42.50")
    assert receipt.category_id == TRAVEL_ID
    assert receipt.description == "Email: Taxi to airport"
    assert receipt.submission_source == SubmissionSource.EMAIL
    assert receipt.image_path == f"{employee.user_id}/{receipt.id}.jpg"

    stored = Image.open(io.BytesIO(storage.download(receipt.image_path)))
    assert max(stored.size) <= 1200


def test_unknown_category_falls_back_to_default(processor, employee, extractor, receipt_repository):
    extractor.returns(date="2024-03-01", amount="9.99", category_name="Parking")

    [outcome] = processor.process(employee.email, "Parking", [_attachment()]).receipts

    assert outcome.success is True
    assert receipt_repository.get(outcome.receipt_id).category_id == "cat-other"


def test_long_subject_is_truncated(processor, employee, extractor, receipt_repository):
    extractor.returns(date="2024-03-01", amount="1", category_name="Meals")

    [outcome] = processor.process(employee.email, "x" * 600, [_attachment()]).receipts

    assert len(receipt_repository.get(outcome.receipt_id).description) == 500


def test_incomplete_extraction_discards_temp(processor, employee, extractor, storage, receipt_repository):
    extractor.returns(date="2024-03-01", amount=None, category_name="Travel")

    [outcome] = processor.process(employee.email, "Lunch", [_attachment()]).receipts

    assert outcome.success is False
    assert "amount" in outcome.error
    assert outcome.receipt_date == date(2024, 3, 1)
    assert receipt_repository.list_for_user(str(employee.user_id)) == []
    assert storage.list(str(employee.user_id)) == []


def test_extraction_failure_is_reported_per_attachment(processor, employee, extractor):
    extractor.fails()

    [outcome] = processor.process(employee.email, "Lunch", [_attachment()]).receipts

    assert outcome.success is False
    assert "date" in outcome.error


def test_pdf_is_stored_uncompressed(processor, employee, extractor, storage, receipt_repository):
    extractor.returns(date="2024-03-01", amount="5", category_name="Meals")
    pdf = b"%PDF-1.4 receipt"

    [outcome] = processor.process(employee.email, "Invoice", [_attachment("invoice.pdf", "application/pdf", pdf)]).receipts

    receipt = receipt_repository.get(outcome.receipt_id)
    assert receipt.image_path.endswith(".pdf")
    assert storage.download(receipt.image_path) == pdf
    assert extractor.calls == [(pdf, "application/pdf")]


def test_one_failure_does_not_abort_the_batch(tmp_path, user_repository, category_repository,
                                             receipt_repository, extractor, settings, audit_logger, employee):
    storage = FlakyUploadStorage(tmp_path / "flaky")
    processor = _processor(storage, user_repository, category_repository, receipt_repository, extractor,
                           settings, audit_logger)
    extractor.returns(date="2024-03-01", amount="12", category_name="Meals")

    result = processor.process(employee.email, "Two receipts", [_attachment("a.jpg"), _attachment("b.jpg")])

    first, second = result.receipts
    assert first.success is False
    assert first.error == "Failed to process a.jpg"
    assert second.success is True


def test_uncompressible_png_keeps_png_extension(processor, employee, extractor, storage, receipt_repository):
    extractor.returns(date="2024-03-01", amount="8.00", category_name="Meals")
    broken_png = b"\x89PNG\r\n\x1a\nnot-really-an-image"

    [outcome] = processor.process(employee.email, "Snack", [_attachment("snack.png", "image/png", broken_png)]).receipts

    receipt = receipt_repository.get(outcome.receipt_id)
    assert receipt.image_path == f"{employee.user_id}/{receipt.id}.png"
    assert storage.download(receipt.image_path) == broken_png
    assert extractor.calls == [(broken_png, "image/png")]
