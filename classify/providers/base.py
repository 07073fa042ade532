"""
Base provider protocols.

Interfaces for link fetchers and tag classifiers, plus the registry that
builds them by name. Providers match the Protocols structurally.
"""

import re
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from ..errors import ConfigError
from ..types import MAX_TAGS, normalize_tags


# -----------------------------------------------------------------------------
# Document Fetching
# -----------------------------------------------------------------------------

@dataclass
class Document:
    """
    A fetched document ready for classification.

    Attributes:
        uri: The link as given
        content: Extracted text
        content_type: MIME type if known (e.g., "text/html", "text/plain")
        metadata: Additional metadata from the source (status, headers)
    """
    uri: str
    content: str
    content_type: str | None = None
    metadata: dict[str, Any] | None = None


@runtime_checkable
class DocumentProvider(Protocol):
    """
    Fetches document content from a URI and converts it to text.

    Example implementation:
        class StaticDocumentProvider:
            def supports(self, uri: str) -> bool:
                return uri.startswith("https://")

            def fetch(self, uri: str) -> Document:
                return Document(uri=uri, content="fixed text", content_type="text/plain")
    """

    def supports(self, uri: str) -> bool:
        """Check if this provider can handle the given URI."""
        ...

    def fetch(self, uri: str) -> Document:
        """
        Download the URI and return its text.

        Raises:
            FetchError: If the URI is invalid, blocked, or cannot be fetched
        """
        ...


# -----------------------------------------------------------------------------
# Classification
# -----------------------------------------------------------------------------

# Shared system prompt for all LLM-based classifiers
CLASSIFICATION_SYSTEM_PROMPT = f"""Classify the content into at most {MAX_TAGS} short topic tags.

Respond with the tags only, comma-separated, on a single line. Use lowercase.
Prefer broad, reusable categories (e.g., "programming", "web", "database")
over phrases copied from the text. No explanation, no numbering."""


def build_classification_prompt(content: str) -> str:
    """Wrap the content for the user turn of a classification request."""
    return f"Content to classify:\n\n{content}"


# "1.", "2)", "-", "*" list markers a model may add despite instructions
_LIST_MARKER_RE = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s*")
_QUOTES = "\"'`"


def parse_tag_list(text: str | None) -> list[str]:
    """
    Parse model output into a tag list.

    Accepts comma- or newline-separated tags, drops list markers and
    surrounding quotes, and normalizes through normalize_tags (so the
    result is deduplicated and capped at MAX_TAGS).
    """
    if not text:
        return []
    parts = []
    for line in text.splitlines():
        for piece in line.split(","):
            piece = _LIST_MARKER_RE.sub("", piece).strip().strip(_QUOTES).strip()
            if piece:
                parts.append(piece)
    return normalize_tags(parts)


@runtime_checkable
class ClassifierProvider(Protocol):
    """
    Assigns topic tags to text.

    The caller truncates the input to max_length before the call, so
    providers can rely on len(text) <= max_length. Implementations return
    up to MAX_TAGS tags and raise ClassifierError when the external call
    fails. An empty list is a valid answer.

    Example implementation:
        class FixedClassifier:
            def classify(self, text: str, *, max_length: int) -> list[str]:
                return ["general"]
    """

    def classify(self, text: str, *, max_length: int) -> list[str]:
        ...


# -----------------------------------------------------------------------------
# Provider Registry
# -----------------------------------------------------------------------------

class ProviderRegistry:
    """
    Name-to-class lookup for classifiers and link fetchers.

    The [classifier] and [document] sections of classify.toml name a
    provider; the registry turns that name and its params into an instance.

    Example:
        registry = ProviderRegistry()
        registry.register_classifier("keyword", KeywordClassifier)

        # Later, from config:
        provider = registry.create_classifier("anthropic", {"model": "claude-3-haiku-20240307"})
    """

    def __init__(self):
        self._classifier_providers: dict[str, type] = {}
        self._document_providers: dict[str, type] = {}
        self._lazy_loaded = False

    def _ensure_providers_loaded(self) -> None:
        """Import the built-in provider modules on first use."""
        if self._lazy_loaded:
            return
        self._lazy_loaded = True

        # Importing the modules registers their providers
        from . import documents  # noqa: F401
        from . import llm  # noqa: F401

    # Registration methods

    def register_classifier(self, name: str, provider_class: type) -> None:
        """Make a classifier class available under name."""
        self._classifier_providers[name] = provider_class

    def register_document(self, name: str, provider_class: type) -> None:
        """Make a link fetcher class available under name."""
        self._document_providers[name] = provider_class

    # Factory methods

    @staticmethod
    def _create_provider(kind: str, name: str, providers: dict, params: dict | None):
        """Instantiate providers[name] with params, mapping setup failures to ConfigError."""
        if name not in providers:
            available = ", ".join(sorted(providers)) or "none"
            raise ConfigError(
                f"Unknown {kind} provider: '{name}'. "
                f"Available providers: {available}."
            )
        try:
            return providers[name](**(params or {}))
        except TypeError as e:
            raise ConfigError(
                f"Invalid parameters for {kind} provider '{name}': {e}"
            ) from e
        except ValueError as e:
            # Missing API key and similar setup problems
            raise ConfigError(
                f"Failed to create {kind} provider '{name}': {e}"
            ) from e

    def create_classifier(self, name: str, params: dict | None = None) -> ClassifierProvider:
        """Build the named classifier."""
        self._ensure_providers_loaded()
        return self._create_provider("classifier", name, self._classifier_providers, params)

    def create_document(self, name: str, params: dict | None = None) -> DocumentProvider:
        """Build the named link fetcher."""
        self._ensure_providers_loaded()
        return self._create_provider("document", name, self._document_providers, params)

    # Introspection

    def list_classifier_providers(self) -> list[str]:
        self._ensure_providers_loaded()
        return sorted(self._classifier_providers)

    def list_document_providers(self) -> list[str]:
        self._ensure_providers_loaded()
        return sorted(self._document_providers)


# Built-in providers add themselves when their module is imported
_registry = ProviderRegistry()


def get_registry() -> ProviderRegistry:
    """The process-wide registry."""
    return _registry
