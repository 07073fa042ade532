"""
classify

Tag arbitrary text or web links with up to five topic tags from an AI
classifier, store the content, and query it back by tag.

Quick Start:
    from classify import Tagger

    tg = Tagger()  # uses ~/.classify/
    record = tg.classify("https://example.com/some-article")
    for match in tg.find(["cooking", "travel"]):
        print(match.id, match.tags)

CLI Usage:
    classify add "text or https://link"
    classify tags --counts
    classify find -t cooking -t travel
    classify delete <id>

Default Store:
    ~/.classify/ (created automatically).
    Override with CLASSIFY_STORE_PATH or an explicit path argument.

Environment Variables:
    CLASSIFY_STORE_PATH         - Override default store location
    CLASSIFY_MAX_PROMPT_LENGTH  - Characters sent to the classifier (default 200000)
    ANTHROPIC_API_KEY           - Enables the Anthropic classifier
    CLASSIFY_OPENAI_API_KEY     - Enables the OpenAI classifier (or OPENAI_API_KEY)
    REDIS_URL, REDIS_PASSWORD   - Connection for the redis backends
    CLASSIFY_VERBOSE            - Set to 1 for debug logging

The store is initialized automatically on first use. Configuration is persisted
in a TOML file within the store directory.
"""

__version__ = "0.3.0"

from .api import Tagger
from .errors import (
    ClassifierError,
    ClassifyError,
    ConfigError,
    DuplicateContentError,
    FetchError,
    PartialWriteError,
    StoreBackendError,
    StoreCorruptError,
    StoreError,
)
from .types import ContentRecord, DeleteResult, RepairReport, MAX_TAGS

__all__ = [
    "Tagger",
    "ContentRecord",
    "DeleteResult",
    "RepairReport",
    "MAX_TAGS",
    "ClassifyError",
    "ConfigError",
    "FetchError",
    "ClassifierError",
    "StoreError",
    "StoreBackendError",
    "StoreCorruptError",
    "PartialWriteError",
    "DuplicateContentError",
]
