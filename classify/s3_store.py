"""
S3 content store.

Each record is one JSON object at ``<prefix><id>.json``. PutObject
replaces an object atomically, so readers never observe a partial
record. A small marker object at ``<prefix>_hash/<content_hash>`` holds
the id for duplicate lookups.
"""

import json
import logging
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .errors import StoreBackendError, StoreCorruptError
from .types import ContentRecord, validate_id

logger = logging.getLogger(__name__)

RECORD_SUFFIX = ".json"
HASH_MARKER_DIR = "_hash/"

_NOT_FOUND_CODES = ("NoSuchKey", "404", "NotFound")


def _is_not_found(e: ClientError) -> bool:
    return e.response.get("Error", {}).get("Code") in _NOT_FOUND_CODES


class S3ContentStore:
    """Content records as S3 objects."""

    def __init__(
        self,
        bucket: str,
        prefix: str = "content/",
        region: Optional[str] = None,
        profile: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        client: Any = None,
    ):
        """
        Args:
            bucket: Bucket name
            prefix: Key prefix for record objects
            region: AWS region (defaults to the environment/profile)
            profile: Named AWS profile
            access_key: Explicit credentials (otherwise boto3's chain is used)
            secret_key: Explicit credentials
            endpoint_url: Alternate endpoint (MinIO, localstack)
            client: Pre-built S3 client
        """
        if not bucket:
            raise ValueError("S3 bucket name is required")
        self._bucket = bucket
        self._prefix = prefix
        if client is not None:
            self._client = client
        else:
            try:
                session = boto3.Session(
                    profile_name=profile,
                    region_name=region,
                    aws_access_key_id=access_key,
                    aws_secret_access_key=secret_key,
                )
                self._client = session.client("s3", endpoint_url=endpoint_url)
            except BotoCoreError as e:
                raise StoreBackendError(f"Failed to create S3 client: {e}") from e

    def _key(self, id: str) -> str:
        validate_id(id)
        return f"{self._prefix}{id}{RECORD_SUFFIX}"

    def _hash_key(self, content_hash: str) -> str:
        return f"{self._prefix}{HASH_MARKER_DIR}{content_hash}"

    def _read_object(self, key: str) -> Optional[bytes]:
        try:
            response = self._client.get_object(Bucket=self._bucket, Key=key)
            return response["Body"].read()
        except ClientError as e:
            if _is_not_found(e):
                return None
            raise StoreBackendError(f"Failed to read s3://{self._bucket}/{key}: {e}") from e
        except BotoCoreError as e:
            raise StoreBackendError(f"Failed to read s3://{self._bucket}/{key}: {e}") from e

    def _load(self, id: str) -> Optional[dict]:
        raw = self._read_object(self._key(id))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise StoreCorruptError(f"Malformed content object {id}: {e}") from e

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def put(self, record: ContentRecord) -> None:
        key = self._key(record.id)
        body = json.dumps(record.to_dict(), ensure_ascii=False).encode("utf-8")
        try:
            self._client.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=body,
                ContentType="application/json",
            )
        except (ClientError, BotoCoreError) as e:
            raise StoreBackendError(f"Failed to write content {record.id}: {e}") from e
        logger.debug("Stored content %s at s3://%s/%s", record.id, self._bucket, key)

        # Marker follows the record: a marker never points at nothing.
        # A missing marker only disables duplicate detection for this body.
        if record.content_hash:
            try:
                self._client.put_object(
                    Bucket=self._bucket,
                    Key=self._hash_key(record.content_hash),
                    Body=record.id.encode("utf-8"),
                    ContentType="text/plain",
                )
            except (ClientError, BotoCoreError) as e:
                logger.warning("Stored content %s without hash marker: %s", record.id, e)

    def delete(self, id: str) -> None:
        """Delete the record and its hash marker. Missing objects are fine."""
        key = self._key(id)
        data = None
        try:
            data = self._load(id)
        except StoreCorruptError:
            logger.warning("Deleting unreadable content object %s", id)
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
            digest = data.get("content_hash") if isinstance(data, dict) else None
            if digest:
                self._client.delete_object(Bucket=self._bucket, Key=self._hash_key(digest))
        except (ClientError, BotoCoreError) as e:
            raise StoreBackendError(f"Failed to delete content {id}: {e}") from e

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get(self, id: str) -> Optional[ContentRecord]:
        data = self._load(id)
        if data is None:
            return None
        return ContentRecord.from_dict(data)

    def get_body_text(self, id: str) -> Optional[str]:
        data = self._load(id)
        if data is None:
            return None
        body = data.get("body") if isinstance(data, dict) else None
        if not isinstance(body, str):
            raise StoreCorruptError(f"Content {id} has no body text")
        return body

    def find_by_hash(self, content_hash: str) -> Optional[ContentRecord]:
        raw = self._read_object(self._hash_key(content_hash))
        if raw is None:
            return None
        id = raw.decode("utf-8", errors="replace").strip()
        try:
            return self.get(id)
        except ValueError:
            logger.warning("Ignoring malformed hash marker for %s", content_hash)
            return None

    def list_ids(self) -> list[str]:
        ids = []
        try:
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self._bucket, Prefix=self._prefix):
                for obj in page.get("Contents", []):
                    name = obj["Key"][len(self._prefix):]
                    if "/" in name or not name.endswith(RECORD_SUFFIX):
                        continue
                    ids.append(name[:-len(RECORD_SUFFIX)])
        except (ClientError, BotoCoreError) as e:
            raise StoreBackendError(f"Failed to list s3://{self._bucket}/{self._prefix}: {e}") from e
        return sorted(ids)

    def close(self) -> None:
        pass
