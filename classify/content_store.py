"""
Filesystem content store.

Each record is one JSON file named after its id. Writes go to a
temporary file in the same directory and are moved into place with
os.replace, so a reader sees either the old file or the new one and
never a partial record.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from .errors import StoreBackendError, StoreCorruptError
from .types import ContentRecord, validate_id

logger = logging.getLogger(__name__)

RECORD_SUFFIX = ".json"


class FilesystemContentStore:
    """
    Directory-backed store for content records.

    Layout:
        <path>/<id>.json
    """

    def __init__(self, path: str | Path):
        """
        Args:
            path: Directory holding the record files (created if missing)
        """
        self._dir = Path(path).expanduser()
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreBackendError(f"Failed to create content directory {self._dir}: {e}") from e

    @property
    def path(self) -> Path:
        return self._dir

    def _record_path(self, id: str) -> Path:
        validate_id(id)
        return self._dir / f"{id}{RECORD_SUFFIX}"

    def _read(self, path: Path) -> Optional[dict]:
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StoreBackendError(f"Failed to read {path.name}: {e}") from e
        try:
            return json.loads(raw.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise StoreCorruptError(f"Malformed content file {path.name}: {e}") from e

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def put(self, record: ContentRecord) -> None:
        """Write a record atomically (temp file + rename)."""
        path = self._record_path(record.id)
        data = json.dumps(record.to_dict(), ensure_ascii=False, indent=2)
        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(
                dir=self._dir, prefix=f".{record.id}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            raise StoreBackendError(f"Failed to write content {record.id}: {e}") from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass
        logger.debug("Stored content %s (%d chars)", record.id, len(record.body))

    def delete(self, id: str) -> None:
        """Remove a record file; missing files are ignored."""
        path = self._record_path(id)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise StoreBackendError(f"Failed to delete content {id}: {e}") from e

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get(self, id: str) -> Optional[ContentRecord]:
        data = self._read(self._record_path(id))
        if data is None:
            return None
        return ContentRecord.from_dict(data)

    def get_body_text(self, id: str) -> Optional[str]:
        data = self._read(self._record_path(id))
        if data is None:
            return None
        body = data.get("body") if isinstance(data, dict) else None
        if not isinstance(body, str):
            raise StoreCorruptError(f"Content {id} has no body text")
        return body

    def list_ids(self) -> list[str]:
        """List record ids, sorted by file name."""
        try:
            names = sorted(
                entry.name for entry in self._dir.iterdir()
                if entry.is_file()
                and entry.name.endswith(RECORD_SUFFIX)
                and not entry.name.startswith(".")
            )
        except OSError as e:
            raise StoreBackendError(f"Failed to list {self._dir}: {e}") from e
        return [name[:-len(RECORD_SUFFIX)] for name in names]

    def find_by_hash(self, content_hash: str) -> Optional[ContentRecord]:
        """
        Find a record by body hash.

        There is no on-disk hash index, so this scans every record.
        Unreadable records are skipped.
        """
        for id in self.list_ids():
            try:
                record = self.get(id)
            except StoreCorruptError as e:
                logger.warning("Skipping corrupt content file during hash lookup: %s", e)
                continue
            if record is not None and record.content_hash == content_hash:
                return record
        return None

    def close(self) -> None:
        pass
