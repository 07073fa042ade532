"""
Core API for classify.

The Tagger facade wires configuration, storage backends and providers:
- classify(): fetch/read content, tag it, store it, index it
- find(): records carrying any of the given tags
- delete(): remove a record and prune tags left empty
- reindex()/repair(): bring the tag index back in line with the content
"""

import logging
import threading
from pathlib import Path
from typing import Optional

from .backend import create_stores
from .config import StoreConfig, get_default_store_path, load_or_create_config
from .orchestrator import ClassificationOrchestrator
from .protocol import ContentStoreProtocol, TagIndexProtocol
from .providers import get_registry
from .providers.base import ClassifierProvider, DocumentProvider
from .query import QueryService
from .types import ContentRecord, DeleteResult, RepairReport, validate_id

logger = logging.getLogger(__name__)


class _LazyClassifier:
    """Defers classifier creation (and its API key check) to the first call."""

    def __init__(self, factory):
        self._factory = factory

    def classify(self, text: str, *, max_length: int) -> list[str]:
        return self._factory().classify(text, max_length=max_length)


class _LazyDocumentProvider:
    """Defers document provider creation to the first link."""

    def __init__(self, factory):
        self._factory = factory

    def supports(self, uri: str) -> bool:
        return self._factory().supports(uri)

    def fetch(self, uri: str):
        return self._factory().fetch(uri)


class Tagger:
    """
    Content classification store - tag text or links, query by tag.

    Example:
        tg = Tagger()
        record = tg.classify("https://example.com/article")
        matches = tg.find(["cooking", "travel"])
    """

    def __init__(
        self,
        store_path: Optional[str | Path] = None,
        *,
        config: Optional[StoreConfig] = None,
        content_store: Optional[ContentStoreProtocol] = None,
        tag_index: Optional[TagIndexProtocol] = None,
        classifier: Optional[ClassifierProvider] = None,
        document_provider: Optional[DocumentProvider] = None,
    ) -> None:
        """
        Open (or create) a classify store.

        Args:
            store_path: Store directory. Defaults to CLASSIFY_STORE_PATH or ~/.classify.
            config: Pre-loaded StoreConfig (skips config file discovery).
            content_store: Injected content store (skips backend creation).
            tag_index: Injected tag index (skips backend creation).
            classifier: Injected classifier (skips provider creation).
            document_provider: Injected link fetcher.
        """
        # --- Config resolution ---
        if config is not None:
            self._config: StoreConfig = config
        else:
            path = Path(store_path).expanduser().resolve() if store_path is not None else get_default_store_path()
            self._config = load_or_create_config(path)
        self._store_path = self._config.path

        # Providers created on first use: read-only commands need no API key
        self._classifier = classifier
        self._document_provider = document_provider
        self._provider_init_lock = threading.Lock()

        # --- Storage backends (injected or factory-created) ---
        if content_store is not None and tag_index is not None:
            self._content_store = content_store
            self._tag_index = tag_index
        else:
            bundle = create_stores(self._config)
            self._content_store = bundle.content_store
            self._tag_index = bundle.tag_index
            if content_store is not None:
                bundle.content_store.close()
                self._content_store = content_store
            if tag_index is not None:
                bundle.tag_index.close()
                self._tag_index = tag_index

        # --- Persistent operations log ---
        from .logging_config import configure_ops_log
        self._store_path.mkdir(parents=True, exist_ok=True)
        self._ops_log_handler = configure_ops_log(self._store_path)

        self._query = QueryService(self._content_store, self._tag_index)
        self._orchestrator = ClassificationOrchestrator(
            self._content_store,
            self._tag_index,
            _LazyClassifier(self._get_classifier),
            _LazyDocumentProvider(self._get_document_provider),
            max_prompt_length=self._config.max_prompt_length,
            dedupe=self._config.dedupe,
        )

    @property
    def config(self) -> StoreConfig:
        return self._config

    @property
    def store_path(self) -> Path:
        return self._store_path

    def _get_classifier(self) -> ClassifierProvider:
        """Get classifier provider, creating it lazily on first use."""
        if self._classifier is None:
            with self._provider_init_lock:
                if self._classifier is None:
                    self._classifier = get_registry().create_classifier(
                        self._config.classifier.name,
                        self._config.classifier.params,
                    )
                    logger.debug("Created classifier %s", self._config.classifier.name)
        return self._classifier

    def _get_document_provider(self) -> DocumentProvider:
        if self._document_provider is None:
            with self._provider_init_lock:
                if self._document_provider is None:
                    self._document_provider = get_registry().create_document(
                        self._config.document.name,
                        self._config.document.params,
                    )
        return self._document_provider

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def classify(self, content: str) -> ContentRecord:
        """
        Classify text or an http(s) link and store it.

        See ClassificationOrchestrator.classify for the failure modes.
        """
        return self._orchestrator.classify(content)

    def delete(self, id: str) -> DeleteResult:
        """Delete a record; unknown ids return found=False."""
        validate_id(id)
        return self._orchestrator.delete(id)

    def reindex(self, id: str) -> Optional[ContentRecord]:
        """Re-add a record's tags to the tag index."""
        validate_id(id)
        return self._orchestrator.reindex(id)

    def repair(self) -> RepairReport:
        """Reconcile the tag index with the content store."""
        return self._orchestrator.repair()

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get(self, id: str) -> Optional[ContentRecord]:
        validate_id(id)
        return self._query.get_content(id)

    def get_text(self, id: str) -> Optional[str]:
        """Body text only (the fetched text for links)."""
        validate_id(id)
        return self._query.get_content_body(id)

    def find(self, tags: list[str]) -> list[ContentRecord]:
        """Records carrying any of the tags."""
        return self._query.get_content_by_tags(tags)

    def list_tags(self) -> list[str]:
        return self._query.get_all_tags()

    def tag_counts(self) -> dict[str, int]:
        return self._query.tag_counts()

    def list_content(self) -> list[ContentRecord]:
        return self._query.list_content()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close stores and detach the operations log."""
        if getattr(self, "_content_store", None) is not None:
            self._content_store.close()
            self._content_store = None
        if getattr(self, "_tag_index", None) is not None:
            self._tag_index.close()
            self._tag_index = None

        # Remove ops log handler to avoid handler accumulation
        if getattr(self, "_ops_log_handler", None) is not None:
            logging.getLogger("classify").removeHandler(self._ops_log_handler)
            self._ops_log_handler.close()
            self._ops_log_handler = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        try:
            self.close()
        except Exception:
            pass  # Suppress errors during garbage collection

