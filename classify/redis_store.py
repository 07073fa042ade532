"""
Redis backends: content store and tag index.

Key layout (default prefixes):
    classify:content:<id>               hash: one content record
    classify:content:hash_index         hash: content_hash -> id
    classify:tag:<tag>:contents         set: content ids carrying <tag>
    classify:tags                       set: every tag with members

Redis set operations are atomic per command, so concurrent adds to the
same tag never lose a member. Removing a tag from the global set is
guarded by WATCH so a member added concurrently keeps the tag listed.
"""

import json
import logging
from typing import Any, Optional

import redis

from .errors import StoreBackendError, StoreCorruptError
from .types import ContentRecord, validate_id

logger = logging.getLogger(__name__)

DEFAULT_URL = "redis://127.0.0.1:6379"
CONTENT_PREFIX = "classify:content:"
TAG_PREFIX = "classify:"

HASH_INDEX_KEY = "hash_index"

# Retries for the WATCHed orphan check before giving up on one tag
_WATCH_RETRIES = 5


def _connect(url: str, password: Optional[str]) -> "redis.Redis":
    kwargs: dict[str, Any] = {"decode_responses": True}
    if password:
        kwargs["password"] = password
    try:
        return redis.Redis.from_url(url, **kwargs)
    except (redis.RedisError, ValueError) as e:
        raise StoreBackendError(f"Invalid Redis URL {url!r}: {e}") from e


class RedisContentStore:
    """
    Content records as Redis hashes.

    Tags are stored JSON-encoded in the ``tags`` field; every other field
    is a plain string. ``source_url`` is omitted when unset.
    """

    def __init__(
        self,
        url: str = DEFAULT_URL,
        password: Optional[str] = None,
        prefix: str = CONTENT_PREFIX,
        client: Optional["redis.Redis"] = None,
    ):
        """
        Args:
            url: Redis connection URL
            password: Password, if not embedded in the URL
            prefix: Key prefix for record hashes
            client: Pre-built client (tests pass a fakeredis instance)
        """
        self._prefix = prefix
        self._hash_index = f"{prefix}{HASH_INDEX_KEY}"
        self._client = client if client is not None else _connect(url, password)

    def _key(self, id: str) -> str:
        validate_id(id)
        if id == HASH_INDEX_KEY:
            raise ValueError(f"Reserved content id: {id!r}")
        return f"{self._prefix}{id}"

    @staticmethod
    def _encode(record: ContentRecord) -> dict[str, str]:
        mapping = {
            "id": record.id,
            "body": record.body,
            "tags": json.dumps(record.tags),
            "created_at": record.created_at,
            "updated_at": record.updated_at,
            "content_hash": record.content_hash,
        }
        if record.source_url:
            mapping["source_url"] = record.source_url
        return mapping

    @staticmethod
    def _decode(id: str, fields: dict[str, str]) -> ContentRecord:
        data: dict[str, Any] = dict(fields)
        try:
            data["tags"] = json.loads(fields.get("tags", ""))
        except json.JSONDecodeError as e:
            raise StoreCorruptError(f"Content {id} has malformed tags: {e}") from e
        return ContentRecord.from_dict(data)

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def put(self, record: ContentRecord) -> None:
        """Write the record hash and its hash-index entry in one MULTI."""
        key = self._key(record.id)
        try:
            pipe = self._client.pipeline(transaction=True)
            # Overwrite, not merge: drop fields left by a previous version
            pipe.delete(key)
            pipe.hset(key, mapping=self._encode(record))
            if record.content_hash:
                pipe.hset(self._hash_index, record.content_hash, record.id)
            pipe.execute()
        except redis.RedisError as e:
            raise StoreBackendError(f"Failed to write content {record.id}: {e}") from e
        logger.debug("Stored content %s in Redis", record.id)

    def delete(self, id: str) -> None:
        key = self._key(id)
        try:
            digest = self._client.hget(key, "content_hash")
            pipe = self._client.pipeline(transaction=True)
            pipe.delete(key)
            if digest:
                pipe.hdel(self._hash_index, digest)
            pipe.execute()
        except redis.RedisError as e:
            raise StoreBackendError(f"Failed to delete content {id}: {e}") from e

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get(self, id: str) -> Optional[ContentRecord]:
        key = self._key(id)
        try:
            fields = self._client.hgetall(key)
        except redis.RedisError as e:
            raise StoreBackendError(f"Failed to read content {id}: {e}") from e
        if not fields:
            return None
        return self._decode(id, fields)

    def get_body_text(self, id: str) -> Optional[str]:
        key = self._key(id)
        try:
            pipe = self._client.pipeline(transaction=False)
            pipe.exists(key)
            pipe.hget(key, "body")
            exists, body = pipe.execute()
        except redis.RedisError as e:
            raise StoreBackendError(f"Failed to read content {id}: {e}") from e
        if not exists:
            return None
        if body is None:
            raise StoreCorruptError(f"Content {id} has no body text")
        return body

    def find_by_hash(self, content_hash: str) -> Optional[ContentRecord]:
        try:
            id = self._client.hget(self._hash_index, content_hash)
        except redis.RedisError as e:
            raise StoreBackendError(f"Failed to look up content hash: {e}") from e
        if not id:
            return None
        record = self.get(id)
        if record is None:
            logger.debug("Hash index points at missing content %s", id)
        return record

    def list_ids(self) -> list[str]:
        """List stored ids using SCAN."""
        ids = []
        try:
            for key in self._client.scan_iter(match=f"{self._prefix}*", count=500):
                id = key[len(self._prefix):]
                if id == HASH_INDEX_KEY:
                    continue
                ids.append(id)
        except redis.RedisError as e:
            raise StoreBackendError(f"Failed to list content: {e}") from e
        return sorted(ids)

    def close(self) -> None:
        self._client.close()


class RedisTagIndex:
    """Tag index on native Redis sets."""

    def __init__(
        self,
        url: str = DEFAULT_URL,
        password: Optional[str] = None,
        prefix: str = TAG_PREFIX,
        client: Optional["redis.Redis"] = None,
    ):
        self._prefix = prefix
        self._tags_key = f"{prefix}tags"
        self._client = client if client is not None else _connect(url, password)

    def _members_key(self, tag: str) -> str:
        return f"{self._prefix}tag:{tag}:contents"

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def add_content_to_tags(self, id: str, tags: list[str]) -> None:
        if not tags:
            return
        try:
            pipe = self._client.pipeline(transaction=True)
            for tag in tags:
                pipe.sadd(self._members_key(tag), id)
                pipe.sadd(self._tags_key, tag)
            pipe.execute()
        except redis.RedisError as e:
            raise StoreBackendError(f"Failed to index content {id}: {e}") from e

    def remove_content_from_tags(self, id: str, tags: list[str]) -> list[str]:
        """
        Remove id from each tag, then prune tags left with no members.

        Returns:
            Tags removed from the global set
        """
        if not tags:
            return []
        try:
            pipe = self._client.pipeline(transaction=True)
            for tag in tags:
                pipe.srem(self._members_key(tag), id)
                pipe.scard(self._members_key(tag))
            results = pipe.execute()
        except redis.RedisError as e:
            raise StoreBackendError(f"Failed to unindex content {id}: {e}") from e

        # results alternate: srem count, remaining cardinality
        candidates = [tag for tag, remaining in zip(tags, results[1::2]) if remaining == 0]
        return [tag for tag in candidates if self._prune_tag(tag)]

    def _prune_tag(self, tag: str) -> bool:
        """Drop tag from the global set if its membership set is still empty."""
        members_key = self._members_key(tag)
        try:
            with self._client.pipeline(transaction=True) as pipe:
                for _ in range(_WATCH_RETRIES):
                    try:
                        pipe.watch(members_key)
                        if pipe.scard(members_key) != 0:
                            pipe.unwatch()
                            return False
                        pipe.multi()
                        pipe.srem(self._tags_key, tag)
                        removed, = pipe.execute()
                        return bool(removed)
                    except redis.WatchError:
                        # A concurrent write touched the tag; check again
                        continue
        except redis.RedisError as e:
            raise StoreBackendError(f"Failed to prune tag {tag!r}: {e}") from e
        logger.warning("Tag %r changed during prune %d times; left in place", tag, _WATCH_RETRIES)
        return False

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def list_all_tags(self) -> list[str]:
        try:
            return sorted(self._client.smembers(self._tags_key))
        except redis.RedisError as e:
            raise StoreBackendError(f"Failed to list tags: {e}") from e

    def list_content_ids_for_tags(self, tags: list[str]) -> list[str]:
        if not tags:
            return []
        try:
            pipe = self._client.pipeline(transaction=False)
            for tag in tags:
                pipe.smembers(self._members_key(tag))
            member_sets = pipe.execute()
        except redis.RedisError as e:
            raise StoreBackendError(f"Failed to query tags: {e}") from e

        ids: list[str] = []
        seen: set[str] = set()
        for members in member_sets:
            for cid in sorted(members):
                if cid not in seen:
                    seen.add(cid)
                    ids.append(cid)
        return ids

    def tag_counts(self) -> dict[str, int]:
        tags = self.list_all_tags()
        if not tags:
            return {}
        try:
            pipe = self._client.pipeline(transaction=False)
            for tag in tags:
                pipe.scard(self._members_key(tag))
            counts = pipe.execute()
        except redis.RedisError as e:
            raise StoreBackendError(f"Failed to count tags: {e}") from e
        return dict(zip(tags, counts))

    def close(self) -> None:
        self._client.close()
