import io
import json
from datetime import date
from decimal import Decimal
from unittest.mock import Mock

import pytest
from PIL import Image
from requests import exceptions as requests_exceptions

from receipt_tracker.extractors.openai_vision_extractor import (
    OpenAIReceiptExtractor,
    build_prompt,
    parse_response_content,
)
from receipt_tracker.utils.helpers.exceptions import ExtractionError


def _png(size=(40, 20)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, "white").save(buffer, format="PNG")
    return buffer.getvalue()


def _response(content: str, status_code: int = 200) -> Mock:
    response = Mock(status_code=status_code, text=content)
    response.json.return_value = {"choices": [{"message": {"content": content}}]}
    return response


def _extractor(session) -> OpenAIReceiptExtractor:
    extractor = OpenAIReceiptExtractor(
        api_key="sk-test", model="gpt-4o-mini", category_names=["Travel", "Meals"], session=session
    )
    extractor.retry_delay = 0
    return extractor


def test_parse_complete_response():
    fields = parse_response_content('{"date": "2024-03-01", "amount": 42.5, "category": "Travel"}')

    assert fields.date == date(2024, 3, 1)
    assert fields.amount == Decimal("42.50")
    assert fields.category_name == "Travel"


def test_fields_fail_independently():
    fields = parse_response_content('{"date": "2024-03-01", "amount": "about forty", "category": ""}')

    assert fields.date == date(2024, 3, 1)
    assert fields.amount is None
    assert fields.category_name is None


def test_parse_strips_code_fences():
    fields = parse_response_content('```json\n{"date": null, "amount": "$1,234.50", "category": "Meals"}\n```')

    assert fields.date is None
    assert fields.amount == Decimal("1234.50")


@pytest.mark.parametrize("content", ["", "not json", "[1, 2]"])
def test_garbage_response_is_an_extraction_error(content):
    with pytest.raises(ExtractionError):
        parse_response_content(content)


def test_prompt_lists_categories():
    assert "Travel, Meals" in build_prompt(["Travel", "Meals"])


def test_extract_sends_image_as_jpeg_data_url():
    session = Mock()
    session.post.return_value = _response('{"date": "2024-03-01", "amount": 10, "category": "Meals"}')

    fields = _extractor(session).extract(_png(), "image/png")

    assert fields.category_name == "Meals"
    payload = session.post.call_args.kwargs["json"]
    image_part = payload["messages"][0]["content"][1]
    assert image_part["image_url"]["url"].startswith("data:image/jpeg;base64,")
    assert payload["response_format"] == {"type": "json_object"}
    assert session.post.call_args.kwargs["headers"]["Authorization"] == "Bearer sk-test"


def test_extract_sends_pdf_as_file_part():
    session = Mock()
    session.post.return_value = _response('{"date": null, "amount": null, "category": null}')

    _extractor(session).extract(b"%PDF-1.4", "application/pdf")

    file_part = session.post.call_args.kwargs["json"]["messages"][0]["content"][1]
    assert file_part["type"] == "file"
    assert file_part["file"]["file_data"].startswith("data:application/pdf;base64,")


def test_large_images_are_downscaled():
    extractor = _extractor(Mock())
    extractor.max_image_dim = 100

    prepared = extractor._prepare_image_payload(_png((400, 200)))

    assert Image.open(io.BytesIO(prepared)).size == (100, 50)


def test_missing_key_is_an_extraction_error():
    extractor = OpenAIReceiptExtractor(api_key="", session=Mock())

    with pytest.raises(ExtractionError):
        extractor.extract(_png(), "image/png")


def test_http_error_is_an_extraction_error():
    session = Mock()
    session.post.return_value = _response("rate limited", status_code=429)

    with pytest.raises(ExtractionError):
        _extractor(session).extract(_png(), "image/png")


def test_network_errors_are_retried_then_reported():
    session = Mock()
    session.post.side_effect = requests_exceptions.ConnectionError("down")
    extractor = _extractor(session)

    with pytest.raises(ExtractionError):
        extractor.extract(_png(), "image/png")

    assert session.post.call_count == extractor.retry_attempts


def test_transient_failure_then_success():
    session = Mock()
    session.post.side_effect = [
        requests_exceptions.Timeout("slow"),
        _response(json.dumps({"date": "2024-03-01", "amount": "5", "category": "Travel"})),
    ]

    fields = _extractor(session).extract(_png(), "image/png")

    assert fields.amount == Decimal("5.00")
