"""
Pluggable storage backend factory.

Creates the content store and tag index named in the configuration.
Built-in backends:

    content: filesystem (default), redis, s3
    tags:    sqlite (default), redis

Other names are resolved through the ``classify.backends`` entry point
group. External backend packages provide a factory function::

    def create_content_store(config: StoreConfig, params: dict) -> ContentStoreProtocol:
        ...

and register it in their pyproject.toml under the name used in
``[content]`` or ``[tags]``::

    [project.entry-points."classify.backends"]
    my-backend = "my_package.backend:create_content_store"
"""

from pathlib import Path
from typing import Any, NamedTuple

from .config import StoreConfig
from .errors import ConfigError
from .protocol import ContentStoreProtocol, TagIndexProtocol

CONTENT_DIRNAME = "content"
TAG_INDEX_FILENAME = "tags.db"


class StoreBundle(NamedTuple):
    """Storage backends returned by the factory."""
    content_store: ContentStoreProtocol
    tag_index: TagIndexProtocol


def create_stores(config: StoreConfig) -> StoreBundle:
    """
    Create both storage backends from configuration.

    Called once when a Tagger is opened; the selection is fixed for the
    life of that instance.
    """
    content_store = create_content_store(config)
    try:
        tag_index = create_tag_index(config)
    except Exception:
        content_store.close()
        raise
    return StoreBundle(content_store=content_store, tag_index=tag_index)


def create_content_store(config: StoreConfig) -> ContentStoreProtocol:
    name = config.content.name
    params = dict(config.content.params)

    if name == "filesystem":
        from .content_store import FilesystemContentStore
        path = Path(params.pop("path", config.path / CONTENT_DIRNAME)).expanduser()
        if not path.is_absolute():
            path = config.path / path
        return _construct("content", name, FilesystemContentStore, {"path": path, **params})
    if name == "redis":
        from .redis_store import RedisContentStore
        return _construct("content", name, RedisContentStore, params)
    if name == "s3":
        from .s3_store import S3ContentStore
        return _construct("content", name, S3ContentStore, params)
    return _load_backend(name, config, params)


def create_tag_index(config: StoreConfig) -> TagIndexProtocol:
    name = config.tags.name
    params = dict(config.tags.params)

    if name == "sqlite":
        from .tag_index import SqliteTagIndex
        path = Path(params.pop("path", config.path / TAG_INDEX_FILENAME)).expanduser()
        if not path.is_absolute():
            path = config.path / path
        return _construct("tags", name, SqliteTagIndex, {"store_path": path, **params})
    if name == "redis":
        from .redis_store import RedisTagIndex
        return _construct("tags", name, RedisTagIndex, params)
    return _load_backend(name, config, params)


def _construct(kind: str, name: str, cls: type, params: dict[str, Any]):
    try:
        return cls(**params)
    except TypeError as e:
        raise ConfigError(f"Invalid parameters for {kind} backend {name!r}: {e}") from e


def _load_backend(name: str, config: StoreConfig, params: dict[str, Any]):
    """Load a backend by entry point name."""
    from importlib.metadata import entry_points

    eps = entry_points(group="classify.backends")
    for ep in eps:
        if ep.name == name:
            factory = ep.load()
            return factory(config, params)

    available = [ep.name for ep in eps]
    if available:
        raise ConfigError(
            f"Unknown backend: {name!r}. Available: {available}"
        )
    raise ConfigError(
        f"Unknown backend: {name!r}. Built-in backends are "
        f"filesystem, redis and s3 (content) and sqlite and redis (tags)."
    )
