"""
OpenAI Vision receipt extractor
Sends a receipt image (or PDF) to the chat completions endpoint and reads
back date, amount and category as JSON.
"""

import base64
import io
import json
import logging
import os
import re
import time
from typing import Any, Dict, Optional, Sequence

import requests
from requests import exceptions as requests_exceptions
from PIL import Image

from receipt_tracker.models.extraction import ExtractedFields
from receipt_tracker.utils.helpers.exceptions import ExtractionError
from receipt_tracker.utils.logging_utils import log_extraction_event

logger = logging.getLogger(__name__)

OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def build_prompt(category_names: Sequence[str]) -> str:
    categories = ", ".join(category_names) if category_names else "Other"
    return (
        "You read expense receipts and answer with a single JSON object only.\n"
        "Keys: date (YYYY-MM-DD, the purchase date), amount (the total paid as a plain "
        "number without currency symbols), category (one of: " + categories + ").\n"
        "Use null for any value you cannot read. RETURN ONLY JSON."
    )


def parse_response_content(content: Optional[str]) -> ExtractedFields:
    """Turn the model's reply into ExtractedFields.

    Each field is parsed on its own, so a bad amount does not discard a good
    date.

    Raises:
        ExtractionError: If the reply is empty or not a JSON object
    """
    if not content or not content.strip():
        raise ExtractionError("Empty response from extraction service")
    text = _FENCE_RE.sub("", content.strip())
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ExtractionError(f"Failed to parse JSON from response: {exc}") from exc
    if not isinstance(data, dict):
        raise ExtractionError("Extraction response is not a JSON object")

    return ExtractedFields(
        date=data.get("date"),
        amount=data.get("amount", data.get("total")),
        category_name=data.get("category"),
    )


class OpenAIReceiptExtractor:
    """OpenAI GPT-4o Vision receipt field extractor"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        category_names: Sequence[str] = (),
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key if api_key is not None else os.getenv("OPENAI_API_KEY")
        self.model = model or os.getenv("OPENAI_MODEL", "gpt-4o-mini")
        self.category_names = list(category_names)
        self.session = session or requests.Session()
        self.max_image_dim = int(os.getenv("OPENAI_IMAGE_MAX_DIM", "1600"))
        self.retry_attempts = int(os.getenv("OPENAI_RETRY_ATTEMPTS", "3"))
        self.connect_timeout = int(os.getenv("OPENAI_CONNECT_TIMEOUT", "5"))
        self.read_timeout = int(os.getenv("OPENAI_READ_TIMEOUT", "20"))
        self.retry_delay = 1.0

        if not self.api_key:
            logger.warning("OpenAI API key not found; extraction will fall back to manual entry")

    def is_available(self) -> bool:
        return bool(self.api_key)

    def extract(self, image_bytes: bytes, media_type: str) -> ExtractedFields:
        """
        Extract receipt fields from an image or PDF.

        Args:
            image_bytes: Raw file bytes
            media_type: MIME type of the upload

        Returns:
            ExtractedFields with any unreadable field set to None

        Raises:
            ExtractionError: Missing key, network/service failure or garbage reply
        """
        if not self.is_available():
            raise ExtractionError("OPENAI_API_KEY not configured")
        if not image_bytes:
            raise ExtractionError("No file content to extract from")

        payload = {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": build_prompt(self.category_names)},
                        self._file_part(image_bytes, media_type),
                    ],
                }
            ],
            "response_format": {"type": "json_object"},
            "temperature": 0,
            "max_tokens": 300,
        }

        content = self._post(payload)
        fields = parse_response_content(content)
        log_extraction_event({
            "model": self.model,
            "media_type": media_type,
            "date_found": fields.date is not None,
            "amount_found": fields.amount is not None,
            "category_found": fields.category_name is not None,
        })
        return fields

    def _file_part(self, file_bytes: bytes, media_type: str) -> Dict[str, Any]:
        if media_type == "application/pdf":
            encoded = base64.b64encode(file_bytes).decode("utf-8")
            return {
                "type": "file",
                "file": {
                    "filename": "receipt.pdf",
                    "file_data": f"data:application/pdf;base64,{encoded}",
                },
            }
        prepared = self._prepare_image_payload(file_bytes)
        encoded = base64.b64encode(prepared).decode("utf-8")
        return {"type": "image_url", "image_url": {"url": f"data:image/jpeg;base64,{encoded}"}}

    def _post(self, payload: Dict[str, Any]) -> str:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        last_error: Optional[Exception] = None
        for attempt in range(1, self.retry_attempts + 1):
            try:
                response = self.session.post(
                    OPENAI_CHAT_URL,
                    headers=headers,
                    json=payload,
                    timeout=(self.connect_timeout, self.read_timeout),
                )
            except (requests_exceptions.Timeout, requests_exceptions.ConnectionError) as net_err:
                last_error = net_err
                logger.warning(
                    "OpenAI request failed (attempt %d/%d): %s", attempt, self.retry_attempts, net_err
                )
                if attempt < self.retry_attempts:
                    time.sleep(self.retry_delay * attempt)
                continue
            except requests_exceptions.RequestException as exc:
                raise ExtractionError(f"OpenAI request failed: {exc}") from exc

            if response.status_code != 200:
                raise ExtractionError(f"OpenAI API error: {response.status_code} - {response.text[:200]}")
            try:
                result = response.json()
                return result["choices"][0]["message"]["content"]
            except (ValueError, KeyError, IndexError, TypeError) as exc:
                raise ExtractionError(f"Unexpected OpenAI response shape: {exc}") from exc

        raise ExtractionError(f"OpenAI extraction failed after {self.retry_attempts} attempts: {last_error}")

    def _prepare_image_payload(self, image_data: bytes) -> bytes:
        """Downscale and compress the image to reduce upload size."""
        try:
            image = Image.open(io.BytesIO(image_data))
            image = image.convert("RGB")
            width, height = image.size
            max_dim = max(width, height)

            if max_dim > self.max_image_dim:
                resize_ratio = self.max_image_dim / float(max_dim)
                new_size = (int(width * resize_ratio), int(height * resize_ratio))
                image = image.resize(new_size, Image.LANCZOS)

            buffer = io.BytesIO()
            image.save(buffer, format="JPEG", quality=85, optimize=True)
            return buffer.getvalue()
        except Exception as e:
            logger.warning("Image prep failed, sending original bytes: %s", e)
            return image_data
