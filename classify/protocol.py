"""
Protocol definitions for the storage backends.

Two logically separate stores with no shared transaction:
- ContentStoreProtocol: id -> ContentRecord (filesystem, Redis, S3)
- TagIndexProtocol: tag -> set of content ids, plus the global tag set
  (SQLite locally, Redis as the shared key-value backend)

Backends raise StoreBackendError for I/O or network failures and
StoreCorruptError for stored data that cannot be decoded.
"""

from typing import Optional, Protocol, runtime_checkable

from .types import ContentRecord


@runtime_checkable
class ContentStoreProtocol(Protocol):
    """
    Durable mapping from content id to content record.

    Implemented by:
    - FilesystemContentStore (one JSON file per record)
    - RedisContentStore (one Redis hash per record)
    - S3ContentStore (one object per record)
    """

    def put(self, record: ContentRecord) -> None:
        """Write or overwrite a record. Readers never see a partial write."""
        ...

    def get(self, id: str) -> Optional[ContentRecord]:
        """Return the record, or None if absent."""
        ...

    def delete(self, id: str) -> None:
        """Remove a record. Deleting a missing id is not an error."""
        ...

    def get_body_text(self, id: str) -> Optional[str]:
        """Return only the body text, or None if absent."""
        ...

    def find_by_hash(self, content_hash: str) -> Optional[ContentRecord]:
        """Return a stored record whose body has this SHA-256 hash."""
        ...

    def list_ids(self) -> list[str]:
        """List every stored content id."""
        ...

    def close(self) -> None: ...


@runtime_checkable
class TagIndexProtocol(Protocol):
    """
    Reverse index from tag to content ids.

    Membership sets behave as sets, not counters: adding the same id twice
    is a no-op. Implementations must not lose concurrent adds to the same
    tag, and a tag is in the global set only while its membership set is
    non-empty.

    Implemented by:
    - SqliteTagIndex (local, transactional)
    - RedisTagIndex (native set operations)
    """

    def add_content_to_tags(self, id: str, tags: list[str]) -> None:
        """Add id to each tag's membership set and each tag to the global set."""
        ...

    def remove_content_from_tags(self, id: str, tags: list[str]) -> list[str]:
        """
        Remove id from each tag's membership set.

        Tags whose set becomes empty are removed from the global set.

        Returns:
            The tags that were removed (orphaned)
        """
        ...

    def list_all_tags(self) -> list[str]:
        """Return the global tag set, sorted."""
        ...

    def list_content_ids_for_tags(self, tags: list[str]) -> list[str]:
        """Return the union of membership sets, each id once."""
        ...

    def tag_counts(self) -> dict[str, int]:
        """Return the membership set size for every known tag."""
        ...

    def close(self) -> None: ...
