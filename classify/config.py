"""
Configuration management for classify stores.

The configuration is stored as a TOML file in the store directory.
It names the content store, tag index, classifier and document fetcher
to use, along with their parameters.
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import tomli_w

from .errors import ConfigError
from .types import utc_now


CONFIG_FILENAME = "classify.toml"
CONFIG_VERSION = 1

DEFAULT_MAX_PROMPT_LENGTH = 200_000

# Parameters that must never be written to disk
SECRET_PARAMS = frozenset({"password", "api_key", "access_key", "secret_key"})

# Environment variables that fill unset S3 content store parameters
_S3_ENV = {
    "S3_BUCKET": "bucket",
    "S3_PREFIX": "prefix",
    "S3_REGION": "region",
    "AWS_PROFILE": "profile",
}


def get_default_store_path() -> Path:
    """Default store directory: CLASSIFY_STORE_PATH or ~/.classify."""
    env_path = os.environ.get("CLASSIFY_STORE_PATH")
    if env_path:
        return Path(env_path).expanduser().resolve()
    return Path.home() / ".classify"


@dataclass
class ProviderConfig:
    """Configuration for a single provider or backend."""
    name: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class StoreConfig:
    """Complete store configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=utc_now)
    max_prompt_length: int = DEFAULT_MAX_PROMPT_LENGTH
    dedupe: bool = True

    # Storage backends
    content: ProviderConfig = field(default_factory=lambda: ProviderConfig("filesystem"))
    tags: ProviderConfig = field(default_factory=lambda: ProviderConfig("sqlite"))

    # Providers
    classifier: ProviderConfig = field(default_factory=lambda: ProviderConfig("keyword"))
    document: ProviderConfig = field(default_factory=lambda: ProviderConfig("http"))

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def detect_default_classifier() -> ProviderConfig:
    """
    Pick the classifier for a new store from the environment.

    Priority:
    1. Anthropic (if ANTHROPIC_API_KEY is set)
    2. OpenAI (if CLASSIFY_OPENAI_API_KEY or OPENAI_API_KEY is set)
    3. Fallback: offline keyword matching
    """
    if os.environ.get("ANTHROPIC_API_KEY"):
        return ProviderConfig("anthropic")
    if os.environ.get("CLASSIFY_OPENAI_API_KEY") or os.environ.get("OPENAI_API_KEY"):
        return ProviderConfig("openai")
    return ProviderConfig("keyword")


def create_default_config(store_path: Path) -> StoreConfig:
    """Create a new config with auto-detected defaults."""
    return StoreConfig(
        path=store_path,
        classifier=detect_default_classifier(),
    )


def apply_env_overrides(config: StoreConfig) -> StoreConfig:
    """
    Fill in settings that come from the environment rather than the file.

    - CLASSIFY_MAX_PROMPT_LENGTH replaces max_prompt_length
    - REDIS_URL / REDIS_PASSWORD fill redis backends that lack them
    - S3_BUCKET, S3_PREFIX, S3_REGION, AWS_PROFILE fill the s3 backend
    """
    raw = os.environ.get("CLASSIFY_MAX_PROMPT_LENGTH")
    if raw:
        try:
            config.max_prompt_length = int(raw)
        except ValueError:
            raise ConfigError(f"CLASSIFY_MAX_PROMPT_LENGTH must be an integer: {raw!r}")
    if config.max_prompt_length < 0:
        raise ConfigError(f"max_prompt_length must be non-negative: {config.max_prompt_length}")

    redis_url = os.environ.get("REDIS_URL")
    redis_password = os.environ.get("REDIS_PASSWORD")
    for backend in (config.content, config.tags):
        if backend.name != "redis":
            continue
        if redis_url:
            backend.params.setdefault("url", redis_url)
        if redis_password:
            backend.params.setdefault("password", redis_password)

    if config.content.name == "s3":
        for env_name, param in _S3_ENV.items():
            value = os.environ.get(env_name)
            if value:
                config.content.params.setdefault(param, value)
    return config


def _parse_provider(section: Any, default: str) -> ProviderConfig:
    if not isinstance(section, dict):
        raise ConfigError(f"Expected a table for provider config, got {section!r}")
    return ProviderConfig(
        name=section.get("name", default),
        params={k: v for k, v in section.items() if k != "name"},
    )


def load_config(store_path: Path) -> StoreConfig:
    """
    Load configuration from a store directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ConfigError: If config is invalid
    """
    config_path = store_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid config {config_path}: {e}") from e

    store = data.get("store", {})

    # Validate version
    version = store.get("version", 1)
    if version > CONFIG_VERSION:
        raise ConfigError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    max_prompt_length = store.get("max_prompt_length", DEFAULT_MAX_PROMPT_LENGTH)
    if not isinstance(max_prompt_length, int) or isinstance(max_prompt_length, bool):
        raise ConfigError(f"max_prompt_length must be an integer: {max_prompt_length!r}")

    return StoreConfig(
        path=store_path,
        version=version,
        created=store.get("created", ""),
        max_prompt_length=max_prompt_length,
        dedupe=bool(store.get("dedupe", True)),
        content=_parse_provider(data.get("content", {}), "filesystem"),
        tags=_parse_provider(data.get("tags", {}), "sqlite"),
        classifier=_parse_provider(data.get("classifier", {}), "keyword"),
        document=_parse_provider(data.get("document", {}), "http"),
    )


def save_config(config: StoreConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist. Secret parameters are
    left out; they come from the environment.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    def provider_to_dict(p: ProviderConfig) -> dict:
        d = {"name": p.name}
        d.update({k: v for k, v in p.params.items() if k not in SECRET_PARAMS and v is not None})
        return d

    data = {
        "store": {
            "version": config.version,
            "created": config.created,
            "max_prompt_length": config.max_prompt_length,
            "dedupe": config.dedupe,
        },
        "content": provider_to_dict(config.content),
        "tags": provider_to_dict(config.tags),
        "classifier": provider_to_dict(config.classifier),
        "document": provider_to_dict(config.document),
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Optional[Path] = None) -> StoreConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management. Environment
    overrides are applied after loading and never saved.
    """
    store_path = Path(store_path) if store_path is not None else get_default_store_path()
    config_path = store_path / CONFIG_FILENAME

    if config_path.exists():
        config = load_config(store_path)
    else:
        config = create_default_config(store_path)
        save_config(config)
    return apply_env_overrides(config)
