"""Lightweight JSON logging utilities for receipt workflow instrumentation."""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)

LOG_DIR = Path(os.getenv("RECEIPT_LOG_DIR") or Path("artifacts") / "logs")
LOG_FILE = LOG_DIR / "receipts.log"
SENSITIVE_KEYS = {"image_bytes", "image_data", "raw_image", "data", "base64"}


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once for the application process."""
    logging.basicConfig(
        level=(level or os.getenv("LOG_LEVEL") or "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def log_receipt_event(event: Dict[str, Any]) -> None:
    """Persist a structured workflow event without leaking sensitive payloads."""

    payload: Dict[str, Any] = {
        "timestamp": datetime.utcnow().isoformat(timespec="milliseconds") + "Z",
    }
    for key, value in event.items():
        if key is None:
            continue
        normalized = str(key)
        if normalized.lower() in SENSITIVE_KEYS:
            continue
        payload[normalized] = value

    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        with LOG_FILE.open("a", encoding="utf-8") as handle:
            json.dump(payload, handle, ensure_ascii=False, default=str)
            handle.write("\n")
    except Exception as exc:  # pragma: no cover
        logger.debug("Failed to write receipt event log: %s", exc, exc_info=True)


def log_commit_event(event: Dict[str, Any]) -> None:
    """Record a two-phase commit state transition or compensation."""

    payload = {"event_type": "commit"}
    payload.update(event)
    log_receipt_event(payload)


def log_extraction_event(event: Dict[str, Any]) -> None:
    """Record extraction outcomes (including fallbacks to manual entry)."""

    payload = {"event_type": "extraction"}
    payload.update(event)
    log_receipt_event(payload)
