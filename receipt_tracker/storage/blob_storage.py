"""Blob storage for receipt images.

Paths are bucket-relative POSIX strings partitioned per user:

    {user_id}/temp_{random}_{epoch_ms}.{ext}     uploaded, not yet owned
    {user_id}/{receipt_id}.{ext}                 permanent, owned by a row

LocalBlobStorage keeps the bucket on the filesystem, the same way the
mobile upload queue kept pending uploads under artifacts/.
"""

from __future__ import annotations

import mimetypes
import os
import shutil
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import List, Optional
from uuid import uuid4

from receipt_tracker.utils.helpers.exceptions import (
    StorageConflictError,
    StorageError,
    StorageNotFoundError,
    StoragePermissionError,
    StorageTransientError,
)

DEFAULT_STORAGE_DIR = Path("artifacts") / "receipt-images"
TEMP_PREFIX = "temp"


@dataclass
class StorageEntry:
    name: str
    size: int
    updated_at: datetime


def split_path(path: str) -> tuple[str, str]:
    """Return (folder, filename) for a bucket path."""
    pure = PurePosixPath(path)
    folder = str(pure.parent)
    return ("" if folder == "." else folder), pure.name


def file_extension(path: str, default: str = "jpg") -> str:
    """Extension without the dot, lower-cased ("jpg" when there is none)."""
    suffix = PurePosixPath(path).suffix
    return suffix[1:].lower() if suffix else default


def make_temp_path(user_id: str, extension: str, prefix: str = TEMP_PREFIX) -> str:
    """Fresh random temp path for an upload owned by user_id."""
    extension = extension.lstrip(".").lower() or "jpg"
    return f"{user_id}/{prefix}_{uuid4().hex[:8]}_{int(time.time() * 1000)}.{extension}"


def is_temp_path(path: str, user_id: str) -> bool:
    """True only for a temp object directly inside user_id's folder."""
    folder, filename = split_path(path)
    return folder == user_id and filename.startswith(f"{TEMP_PREFIX}_")


def permanent_path(user_id: str, receipt_id: str, temp_path: str) -> str:
    """Deterministic final path: {user_id}/{receipt_id}.{original extension}."""
    return f"{user_id}/{receipt_id}.{file_extension(temp_path)}"


class BlobStorage(ABC):
    """Storage operations the receipt workflow depends on."""

    @abstractmethod
    def upload(self, path: str, data: bytes, content_type: str) -> str:
        """Store bytes at path; never overwrites. Returns the stored path."""

    @abstractmethod
    def list(self, folder: str, name_filter: Optional[str] = None) -> List[StorageEntry]:
        """Entries directly inside folder whose name contains name_filter."""

    @abstractmethod
    def move(self, src_path: str, dst_path: str) -> None:
        """Rename an object. Source must exist, destination must not."""

    @abstractmethod
    def remove(self, path: str) -> None:
        """Delete an object."""

    @abstractmethod
    def download(self, path: str) -> bytes:
        """Return the bytes stored at path."""

    def exists(self, path: str) -> bool:
        folder, name = split_path(path)
        try:
            return any(entry.name == name for entry in self.list(folder, name))
        except StorageNotFoundError:
            return False

    def content_type(self, path: str) -> str:
        guessed, _ = mimetypes.guess_type(path)
        return guessed or "application/octet-stream"


class LocalBlobStorage(BlobStorage):
    """Filesystem-backed bucket rooted at base_dir."""

    def __init__(self, base_dir: str | Path | None = None) -> None:
        root = Path(base_dir or os.getenv("RECEIPT_STORAGE_DIR") or DEFAULT_STORAGE_DIR)
        root.mkdir(parents=True, exist_ok=True)
        self.base_dir = root.resolve()

    def _resolve(self, path: str) -> Path:
        pure = PurePosixPath(path)
        if not path or pure.is_absolute() or ".." in pure.parts:
            raise StoragePermissionError(f"Invalid storage path: {path!r}", path=path)
        return self.base_dir.joinpath(*pure.parts)

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open("xb") as handle:
                handle.write(data)
        except FileExistsError:
            raise StorageConflictError(f"Object already exists: {path}", path=path) from None
        except OSError as exc:
            raise _translate(exc, path) from exc
        return path

    def list(self, folder: str, name_filter: Optional[str] = None) -> List[StorageEntry]:
        directory = self.base_dir if not folder else self._resolve(folder)
        try:
            children = sorted(directory.iterdir())
        except OSError as exc:
            raise _translate(exc, folder) from exc
        entries: List[StorageEntry] = []
        for child in children:
            if not child.is_file():
                continue
            if name_filter and name_filter not in child.name:
                continue
            stat = child.stat()
            entries.append(StorageEntry(
                name=child.name,
                size=stat.st_size,
                updated_at=datetime.fromtimestamp(stat.st_mtime),
            ))
        return entries

    def move(self, src_path: str, dst_path: str) -> None:
        source = self._resolve(src_path)
        target = self._resolve(dst_path)
        if not source.is_file():
            raise StorageNotFoundError(f"Object not found: {src_path}", path=src_path)
        if target.exists():
            raise StorageConflictError(f"Object already exists: {dst_path}", path=dst_path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(source), str(target))
        except OSError as exc:
            raise _translate(exc, src_path) from exc

    def remove(self, path: str) -> None:
        target = self._resolve(path)
        try:
            target.unlink()
        except OSError as exc:
            raise _translate(exc, path) from exc

    def download(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except OSError as exc:
            raise _translate(exc, path) from exc


def _translate(exc: OSError, path: str) -> StorageError:
    if isinstance(exc, FileNotFoundError):
        return StorageNotFoundError(f"Object not found: {path}", path=path)
    if isinstance(exc, PermissionError):
        return StoragePermissionError(f"Permission denied: {path}", path=path)
    return StorageTransientError(f"Storage I/O error for {path}: {exc}", path=path)
