"""
Shared pytest fixtures for classify tests.

Provides mock providers and an in-memory S3 client so no test touches
the network or a real model.
"""

import io
from pathlib import Path

import fakeredis
import pytest
from botocore.exceptions import ClientError

from classify.config import StoreConfig
from classify.content_store import FilesystemContentStore
from classify.orchestrator import ClassificationOrchestrator
from classify.providers.base import Document
from classify.tag_index import SqliteTagIndex


class MockClassifier:
    """
    Deterministic classifier for testing.

    Returns tags from a keyword table, or a fixed list, and records what
    it was asked to classify.
    """

    def __init__(self, tags: list[str] | None = None, table: dict[str, list[str]] | None = None):
        self.tags = tags
        self.table = table or {}
        self.calls: list[tuple[str, int]] = []

    def classify(self, text: str, *, max_length: int) -> list[str]:
        self.calls.append((text, max_length))
        if self.tags is not None:
            return list(self.tags)
        result = []
        for keyword, tags in self.table.items():
            if keyword in text:
                result.extend(tags)
        return result


class FailingClassifier:
    """Classifier whose external call always fails."""

    def __init__(self, error: Exception):
        self.error = error
        self.calls = 0

    def classify(self, text: str, *, max_length: int) -> list[str]:
        self.calls += 1
        raise self.error


class MockDocumentProvider:
    """Document provider serving canned pages."""

    def __init__(self, pages: dict[str, str] | None = None, error: Exception | None = None):
        self.pages = pages or {}
        self.error = error
        self.fetched: list[str] = []

    def supports(self, uri: str) -> bool:
        return uri.startswith(("http://", "https://"))

    def fetch(self, uri: str) -> Document:
        self.fetched.append(uri)
        if self.error is not None:
            raise self.error
        return Document(uri=uri, content=self.pages.get(uri, f"Content for {uri}"),
                        content_type="text/plain")


class FailingTagIndex:
    """Wraps a tag index and fails selected operations on demand."""

    def __init__(self, real, error: Exception):
        self._real = real
        self.error = error
        self.fail_add = False
        self.fail_remove = False

    def __getattr__(self, name):
        return getattr(self._real, name)

    def add_content_to_tags(self, id, tags):
        if self.fail_add:
            raise self.error
        return self._real.add_content_to_tags(id, tags)

    def remove_content_from_tags(self, id, tags):
        if self.fail_remove:
            raise self.error
        return self._real.remove_content_from_tags(id, tags)


class FakeS3Client:
    """
    Minimal in-memory stand-in for a boto3 S3 client.

    Implements the calls S3ContentStore makes: put_object, get_object,
    delete_object and the list_objects_v2 paginator.
    """

    def __init__(self, page_size: int = 1000):
        self.objects: dict[tuple[str, str], bytes] = {}
        self.page_size = page_size
        self.fail_with: ClientError | None = None

    def _check(self, op: str):
        if self.fail_with is not None:
            raise self.fail_with

    def put_object(self, *, Bucket, Key, Body, ContentType=None):
        self._check("PutObject")
        self.objects[(Bucket, Key)] = Body if isinstance(Body, bytes) else Body.encode("utf-8")
        return {}

    def get_object(self, *, Bucket, Key):
        self._check("GetObject")
        if (Bucket, Key) not in self.objects:
            raise ClientError(
                {"Error": {"Code": "NoSuchKey", "Message": "The specified key does not exist."}},
                "GetObject",
            )
        return {"Body": io.BytesIO(self.objects[(Bucket, Key)])}

    def delete_object(self, *, Bucket, Key):
        self._check("DeleteObject")
        self.objects.pop((Bucket, Key), None)
        return {}

    def get_paginator(self, name):
        assert name == "list_objects_v2"
        return _FakePaginator(self)


class MarkerFailingS3Client(FakeS3Client):
    """FakeS3Client whose hash marker writes fail; record writes succeed."""

    def put_object(self, *, Bucket, Key, Body, ContentType=None):
        if "/_hash/" in Key:
            raise ClientError(
                {"Error": {"Code": "SlowDown", "Message": "Reduce your request rate."}},
                "PutObject",
            )
        return super().put_object(Bucket=Bucket, Key=Key, Body=Body, ContentType=ContentType)


class _FakePaginator:
    def __init__(self, client: FakeS3Client):
        self._client = client

    def paginate(self, *, Bucket, Prefix=""):
        self._client._check("ListObjectsV2")
        keys = sorted(k for b, k in self._client.objects if b == Bucket and k.startswith(Prefix))
        size = self._client.page_size
        if not keys:
            yield {"KeyCount": 0}
            return
        for start in range(0, len(keys), size):
            yield {"Contents": [{"Key": k} for k in keys[start:start + size]]}


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's environment out of the tests."""
    for name in (
        "ANTHROPIC_API_KEY",
        "OPENAI_API_KEY",
        "CLASSIFY_OPENAI_API_KEY",
        "CLASSIFY_STORE_PATH",
        "CLASSIFY_MAX_PROMPT_LENGTH",
        "CLASSIFY_VERBOSE",
        "REDIS_URL",
        "REDIS_PASSWORD",
        "S3_BUCKET",
        "S3_PREFIX",
        "S3_REGION",
        "AWS_PROFILE",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def content_store(tmp_path: Path):
    store = FilesystemContentStore(tmp_path / "content")
    yield store
    store.close()


@pytest.fixture
def tag_index(tmp_path: Path):
    index = SqliteTagIndex(tmp_path / "tags.db")
    yield index
    index.close()


@pytest.fixture
def mock_classifier():
    return MockClassifier(table={
        "cooking": ["cooking"],
        "travel": ["travel"],
        "rust": ["rust", "programming"],
    })


@pytest.fixture
def mock_documents():
    return MockDocumentProvider({
        "http://example.com/a": "Some article about cooking and travel",
    })


@pytest.fixture
def orchestrator(content_store, tag_index, mock_classifier, mock_documents):
    return ClassificationOrchestrator(
        content_store,
        tag_index,
        mock_classifier,
        mock_documents,
        max_prompt_length=1000,
    )


@pytest.fixture
def store_config(tmp_path: Path) -> StoreConfig:
    return StoreConfig(path=tmp_path / "store")


@pytest.fixture
def fake_s3():
    return FakeS3Client()


@pytest.fixture
def redis_client():
    """Isolated in-memory Redis (a fresh server per test)."""
    return fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "e2e: marks tests as end-to-end (require real providers)"
    )
