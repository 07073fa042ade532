"""
Classification orchestrator.

Coordinates the two stores for every write:

    classify: resolve input -> truncate -> classify -> persist
    delete:   read record -> delete content -> detach tags

The content store is written first and is the source of truth. There is
no transaction spanning both stores, so two windows exist:

- the record is stored but indexing failed (PartialWriteError); the
  record is retrievable by id and invisible to tag queries until
  reindexed
- the record is deleted but tag cleanup failed (reported on the
  DeleteResult); tag queries may return its id until repaired, and
  query resolution drops it
"""

import logging
from typing import Optional

from .errors import DuplicateContentError, PartialWriteError, StoreCorruptError
from .protocol import ContentStoreProtocol, TagIndexProtocol
from .providers.base import ClassifierProvider, DocumentProvider
from .types import (
    ContentRecord,
    DeleteResult,
    RepairReport,
    content_hash,
    is_link,
    normalize_tags,
    truncate_for_prompt,
)

logger = logging.getLogger(__name__)


class ClassificationOrchestrator:
    """Runs classification and deletion across the content store and tag index."""

    def __init__(
        self,
        content_store: ContentStoreProtocol,
        tag_index: TagIndexProtocol,
        classifier: ClassifierProvider,
        document_provider: Optional[DocumentProvider] = None,
        *,
        max_prompt_length: int,
        dedupe: bool = True,
    ):
        if max_prompt_length < 0:
            raise ValueError(f"max_prompt_length must be non-negative: {max_prompt_length}")
        self._content_store = content_store
        self._tag_index = tag_index
        self._classifier = classifier
        self._document_provider = document_provider
        self._max_prompt_length = max_prompt_length
        self._dedupe = dedupe

    @property
    def max_prompt_length(self) -> int:
        return self._max_prompt_length

    # -------------------------------------------------------------------------
    # Classification
    # -------------------------------------------------------------------------

    def classify(self, content: str) -> ContentRecord:
        """
        Classify text or a link and persist the result.

        Args:
            content: Body text, or an http(s) link to fetch

        Returns:
            The stored record

        Raises:
            ValueError: Empty input
            FetchError: The link could not be fetched
            ClassifierError: The classifier call failed
            DuplicateContentError: Identical content is already stored
            StoreError: The content store write failed (nothing was written)
            PartialWriteError: Stored, but the tag index update failed
        """
        body, source_url = self._resolve_input(content)

        prompt_text = truncate_for_prompt(body, self._max_prompt_length)
        if len(prompt_text) < len(body):
            logger.debug("Truncated %d chars to %d for classification",
                         len(body), len(prompt_text))

        # Duplicate check before the model call: no cost for repeats
        if self._dedupe:
            existing = self._content_store.find_by_hash(content_hash(body))
            if existing is not None:
                raise DuplicateContentError(existing)

        raw_tags = self._classifier.classify(prompt_text, max_length=self._max_prompt_length)
        tags = normalize_tags(raw_tags)

        record = ContentRecord.new(body, tags, source_url=source_url)
        return self._persist(record)

    def _resolve_input(self, content: str) -> tuple[str, Optional[str]]:
        if not content or not content.strip():
            raise ValueError("Content is empty")
        if not is_link(content):
            return content, None

        url = content.strip()
        if self._document_provider is None:
            raise ValueError(f"No document provider configured to fetch {url}")
        doc = self._document_provider.fetch(url)
        logger.debug("Fetched %s (%s, %d chars)", url, doc.content_type, len(doc.content))
        return doc.content, url

    def _persist(self, record: ContentRecord) -> ContentRecord:
        # Content first; a failure here leaves no trace in either store
        self._content_store.put(record)
        try:
            self._tag_index.add_content_to_tags(record.id, record.tags)
        except Exception as e:
            logger.warning(
                "Partial write: content %s stored but tags %s not indexed: %s",
                record.id, record.tags, e,
            )
            raise PartialWriteError(record, e) from e

        logger.info("Classified %s tags=%s", record.id, ",".join(record.tags) or "-")
        return record

    # -------------------------------------------------------------------------
    # Deletion
    # -------------------------------------------------------------------------

    def delete(self, id: str) -> DeleteResult:
        """
        Delete a record and detach it from its tags.

        Deleting an unknown id succeeds with found=False. A failure to
        delete the content propagates; a failure to update the tag index
        afterwards is reported on the result, not raised.

        A corrupt record is deleted without detaching its tags; repair
        removes the index entries it leaves behind.
        """
        try:
            record = self._content_store.get(id)
        except StoreCorruptError as e:
            logger.warning("Deleting corrupt record %s; tags left for repair: %s", id, e)
            tags: list[str] = []
        else:
            if record is None:
                return DeleteResult(id=id, found=False)
            tags = record.tags

        self._content_store.delete(id)

        try:
            removed = self._tag_index.remove_content_from_tags(id, tags)
        except Exception as e:
            logger.warning(
                "Partial delete: content %s removed but tag cleanup failed for %s: %s",
                id, tags, e,
            )
            return DeleteResult(id=id, found=True, tag_cleanup_error=str(e))

        if removed:
            logger.info("Deleted %s; removed tags %s", id, ",".join(removed))
        else:
            logger.info("Deleted %s", id)
        return DeleteResult(id=id, found=True, removed_tags=removed)

    # -------------------------------------------------------------------------
    # Backfill
    # -------------------------------------------------------------------------

    def reindex(self, id: str) -> Optional[ContentRecord]:
        """
        Re-add a record's tags to the index.

        Heals a partial write. Returns the record, or None if it does not exist.
        """
        record = self._content_store.get(id)
        if record is None:
            return None
        self._tag_index.add_content_to_tags(record.id, record.tags)
        logger.info("Reindexed %s tags=%s", record.id, ",".join(record.tags) or "-")
        return record

    def repair(self) -> RepairReport:
        """
        Reconcile the tag index with the content store.

        1. Re-add the tags of every stored record (heals partial writes).
        2. Remove index entries pointing at ids with no record (heals
           partial deletes), pruning tags left empty.

        Corrupt records are skipped with a warning and left untouched.
        """
        report = RepairReport()
        stored: set[str] = set()

        for id in self._content_store.list_ids():
            stored.add(id)
            report.records_scanned += 1
            try:
                record = self._content_store.get(id)
            except StoreCorruptError as e:
                logger.warning("Repair skipping corrupt record %s: %s", id, e)
                continue
            if record is None:
                # Deleted while scanning
                stored.discard(id)
                continue
            if record.tags:
                self._tag_index.add_content_to_tags(record.id, record.tags)
                report.reindexed.append(record.id)

        for tag in self._tag_index.list_all_tags():
            for id in self._tag_index.list_content_ids_for_tags([tag]):
                if id in stored:
                    continue
                # Re-check: a record created after the scan is not dangling
                if self._content_store.get(id) is not None:
                    continue
                removed = self._tag_index.remove_content_from_tags(id, [tag])
                if id not in report.dangling_removed:
                    report.dangling_removed.append(id)
                report.orphaned_tags.extend(removed)

        logger.info(
            "Repair: scanned=%d reindexed=%d dangling=%d orphaned_tags=%d",
            report.records_scanned, len(report.reindexed),
            len(report.dangling_removed), len(report.orphaned_tags),
        )
        return report
