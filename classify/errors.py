"""
Error types and error logging for classify.

Every failure surfaced by the core carries a machine-checkable ``kind``
and a human-readable message. The CLI logs full stack traces to a file
while showing clean messages to users.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


class ClassifyError(Exception):
    """Base class for all classify failures."""

    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


class ConfigError(ClassifyError):
    """Invalid configuration or unknown backend/provider name."""

    kind = "config"


class FetchError(ClassifyError):
    """A link could not be fetched or turned into text."""

    kind = "fetch"


class ClassifierError(ClassifyError):
    """The external model call failed or returned unusable output."""

    kind = "classifier"


class StoreError(ClassifyError):
    """Base class for storage failures."""

    kind = "store"


class StoreBackendError(StoreError):
    """The storage backend was unreachable or an I/O operation failed."""

    kind = "store_backend"


class StoreCorruptError(StoreError):
    """Stored data exists but could not be decoded."""

    kind = "store_corrupt"


class PartialWriteError(ClassifyError):
    """
    Content was stored but the tag index update failed.

    The record is retrievable by id but will not show up in tag queries
    until it is reindexed.
    """

    kind = "partial_write"

    def __init__(self, record, cause: Exception):
        super().__init__(
            f"Content {record.id} stored but tag indexing failed: {cause}"
        )
        self.record = record
        self.cause = cause

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d["id"] = self.record.id
        return d


class DuplicateContentError(ClassifyError):
    """Identical content has already been classified."""

    kind = "duplicate"

    def __init__(self, record):
        super().__init__(f"Content already classified as {record.id}")
        self.record = record

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d["id"] = self.record.id
        return d


def _error_log_path(store_path: Optional[Path] = None) -> Path:
    """Resolve error log path, respecting CLASSIFY_STORE_PATH."""
    if store_path is not None:
        return Path(store_path) / "classify-errors.log"
    store = os.environ.get("CLASSIFY_STORE_PATH")
    if store:
        return Path(store) / "classify-errors.log"
    return Path.home() / ".classify" / "classify-errors.log"


def log_exception(
    exc: Exception,
    context: str = "",
    store_path: Optional[Path] = None,
) -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)
        store_path: Store directory (defaults to CLASSIFY_STORE_PATH or ~/.classify)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path(store_path)
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # Can't write the error log; not worth crashing over
    return log_path
