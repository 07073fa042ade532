"""
Data types for classified content.
"""

import hashlib
import re
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from .errors import StoreCorruptError


# Classifiers may return at most this many tags per record
MAX_TAGS = 5

MAX_ID_LENGTH = 256
MAX_TAG_LENGTH = 128

# Only http(s) input is treated as a link; everything else is body text
_LINK_PREFIXES = ("http://", "https://")

# IDs double as file names and object keys: no separators, no control chars
_ID_BLOCKED_RE = re.compile(r'[\x00-\x1f\x7f/\\`<>|;"\':*?]')

_WHITESPACE_RE = re.compile(r"\s+")


def utc_now() -> str:
    """Current UTC timestamp in canonical format: YYYY-MM-DDTHH:MM:SS.

    All timestamps are UTC, stored without timezone suffix.
    """
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")


def new_content_id() -> str:
    """Generate a fresh, globally unique content identifier."""
    return uuid.uuid4().hex


def content_hash(text: str) -> str:
    """SHA-256 hex digest of the body text (used for duplicate detection)."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def is_link(text: str) -> bool:
    """Check whether the input should be fetched rather than classified as-is."""
    return text.strip().startswith(_LINK_PREFIXES)


def truncate_for_prompt(text: str, max_length: int) -> str:
    """
    Clip text to the maximum prompt length.

    Hard character cutoff, not word- or sentence-aware. Text at or under
    the limit is returned unchanged.
    """
    if max_length < 0:
        raise ValueError(f"max_length must be non-negative: {max_length}")
    if len(text) <= max_length:
        return text
    return text[:max_length]


def normalize_tag(tag: str) -> str:
    """Canonical form of a single tag: trimmed, single-spaced, casefolded."""
    return _WHITESPACE_RE.sub(" ", str(tag)).strip().casefold()


def normalize_tags(raw: Any) -> list[str]:
    """
    Normalize classifier output into a tag list.

    Drops empty and over-long tags, removes duplicates (keeping the first
    occurrence), and caps the result at MAX_TAGS.
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = [raw]

    tags: list[str] = []
    seen: set[str] = set()
    for item in raw:
        tag = normalize_tag(item)
        if not tag or len(tag) > MAX_TAG_LENGTH or tag in seen:
            continue
        seen.add(tag)
        tags.append(tag)
        if len(tags) == MAX_TAGS:
            break
    return tags


def validate_id(id: str) -> None:
    """Validate a content ID: length and no path or shell characters."""
    if not id or len(id) > MAX_ID_LENGTH:
        raise ValueError(f"ID must be 1-{MAX_ID_LENGTH} characters")
    if _ID_BLOCKED_RE.search(id) or id in (".", ".."):
        raise ValueError(f"ID contains invalid characters: {id!r}")


@dataclass
class ContentRecord:
    """
    A classified piece of content.

    The content store holds these records; the tag index references them
    by id. Records are written once and never mutated, so updated_at
    always equals created_at.
    """
    id: str
    body: str
    tags: list[str]
    created_at: str
    updated_at: str
    content_hash: str = ""
    source_url: Optional[str] = None

    _REQUIRED = ("id", "body", "tags", "created_at", "updated_at")

    @classmethod
    def new(
        cls,
        body: str,
        tags: list[str],
        *,
        source_url: Optional[str] = None,
    ) -> "ContentRecord":
        """Create a record with a fresh id and matching timestamps."""
        now = utc_now()
        return cls(
            id=new_content_id(),
            body=body,
            tags=list(tags),
            created_at=now,
            updated_at=now,
            content_hash=content_hash(body),
            source_url=source_url,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serializable form shared by every content store backend."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> "ContentRecord":
        """
        Rebuild a record from its stored form.

        Raises:
            StoreCorruptError: If required fields are missing or mistyped
        """
        if not isinstance(data, dict):
            raise StoreCorruptError(
                f"Content record must be an object, got {type(data).__name__}"
            )
        missing = [k for k in cls._REQUIRED if k not in data]
        if missing:
            raise StoreCorruptError(
                f"Content record {data.get('id', '?')!r} missing fields: {', '.join(missing)}"
            )
        tags = data["tags"]
        if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
            raise StoreCorruptError(
                f"Content record {data['id']!r} has malformed tags: {tags!r}"
            )
        for key in ("id", "body", "created_at", "updated_at"):
            if not isinstance(data[key], str):
                raise StoreCorruptError(
                    f"Content record field {key!r} must be a string"
                )

        body = data["body"]
        return cls(
            id=data["id"],
            body=body,
            tags=list(tags),
            created_at=data["created_at"],
            updated_at=data["updated_at"],
            content_hash=data.get("content_hash") or content_hash(body),
            source_url=data.get("source_url"),
        )

    def __str__(self) -> str:
        preview = self.body if len(self.body) <= 30 else f"{self.body[:30]}..."
        return f"ContentRecord(id={self.id}, body={preview!r}, tags={self.tags})"


@dataclass
class DeleteResult:
    """
    Outcome of deleting a content record.

    found=False means there was nothing to delete (not an error).
    tag_cleanup_error is set when the record was removed but the tag
    index could not be updated; the listed removed_tags are then empty.
    """
    id: str
    found: bool
    removed_tags: list[str] = field(default_factory=list)
    tag_cleanup_error: Optional[str] = None

    @property
    def complete(self) -> bool:
        """True when both stores were updated."""
        return self.tag_cleanup_error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "found": self.found,
            "removed_tags": list(self.removed_tags),
            "complete": self.complete,
            "tag_cleanup_error": self.tag_cleanup_error,
        }


@dataclass
class RepairReport:
    """Result of reconciling the tag index against the content store."""
    records_scanned: int = 0
    reindexed: list[str] = field(default_factory=list)
    dangling_removed: list[str] = field(default_factory=list)
    orphaned_tags: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
