"""Tests for the storage backend factory."""

from unittest.mock import MagicMock, patch

import pytest

from classify.backend import create_content_store, create_stores, create_tag_index
from classify.config import ProviderConfig, StoreConfig
from classify.content_store import FilesystemContentStore
from classify.errors import ConfigError
from classify.redis_store import RedisContentStore, RedisTagIndex
from classify.s3_store import S3ContentStore
from classify.tag_index import SqliteTagIndex


class TestDefaults:

    def test_default_backends(self, store_config):
        bundle = create_stores(store_config)
        try:
            assert isinstance(bundle.content_store, FilesystemContentStore)
            assert isinstance(bundle.tag_index, SqliteTagIndex)
            assert bundle.content_store.path == store_config.path / "content"
            assert (store_config.path / "tags.db").exists()
        finally:
            bundle.content_store.close()
            bundle.tag_index.close()

    def test_relative_paths_resolve_against_store(self, store_config):
        store_config.content = ProviderConfig("filesystem", {"path": "records"})
        store = create_content_store(store_config)
        assert store.path == store_config.path / "records"

    def test_custom_tag_index_path(self, store_config, tmp_path):
        store_config.tags = ProviderConfig("sqlite", {"path": str(tmp_path / "elsewhere.db")})
        index = create_tag_index(store_config)
        index.close()
        assert (tmp_path / "elsewhere.db").exists()


class TestNamedBackends:

    def test_redis(self, store_config, redis_client):
        store_config.content = ProviderConfig("redis", {"client": redis_client})
        store_config.tags = ProviderConfig("redis", {"client": redis_client, "prefix": "t:"})
        bundle = create_stores(store_config)
        assert isinstance(bundle.content_store, RedisContentStore)
        assert isinstance(bundle.tag_index, RedisTagIndex)

    def test_s3(self, store_config, fake_s3):
        store_config.content = ProviderConfig("s3", {"bucket": "b", "client": fake_s3})
        assert isinstance(create_content_store(store_config), S3ContentStore)

    def test_bad_params(self, store_config):
        store_config.content = ProviderConfig("redis", {"colour": "blue"})
        with pytest.raises(ConfigError, match="Invalid parameters"):
            create_content_store(store_config)


class TestEntryPoints:

    def test_unknown_backend(self, store_config):
        store_config.content = ProviderConfig("nonexistent")
        with patch("importlib.metadata.entry_points", return_value=[]):
            with pytest.raises(ConfigError, match="Unknown backend"):
                create_content_store(store_config)

    def test_entry_point_factory(self, store_config):
        sentinel = object()
        factory = MagicMock(return_value=sentinel)
        ep = MagicMock()
        ep.name = "custom"
        ep.load.return_value = factory
        store_config.tags = ProviderConfig("custom", {"option": 1})

        with patch("importlib.metadata.entry_points", return_value=[ep]):
            assert create_tag_index(store_config) is sentinel
        factory.assert_called_once_with(store_config, {"option": 1})

    def test_content_store_closed_when_tag_index_fails(self, store_config):
        store_config.tags = ProviderConfig("nonexistent")
        closed = []
        with patch.object(FilesystemContentStore, "close", lambda self: closed.append(True)):
            with patch("importlib.metadata.entry_points", return_value=[]):
                with pytest.raises(ConfigError):
                    create_stores(store_config)
        assert closed == [True]
