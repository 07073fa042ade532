"""
Read-only queries over the content store and tag index.
"""

import logging
from typing import Optional

from .errors import StoreCorruptError
from .protocol import ContentStoreProtocol, TagIndexProtocol
from .types import ContentRecord, normalize_tag

logger = logging.getLogger(__name__)


class QueryService:
    """
    Tag and id lookups.

    Tag queries use union semantics: a record matches if it carries any
    of the requested tags. Ids the index returns but the content store
    cannot produce (a delete whose tag cleanup lagged) are dropped from
    results rather than failing the query.
    """

    def __init__(self, content_store: ContentStoreProtocol, tag_index: TagIndexProtocol):
        self._content_store = content_store
        self._tag_index = tag_index

    def get_all_tags(self) -> list[str]:
        return self._tag_index.list_all_tags()

    def tag_counts(self) -> dict[str, int]:
        return self._tag_index.tag_counts()

    def get_content_by_tags(self, tags: list[str]) -> list[ContentRecord]:
        """
        Records carrying any of the given tags.

        Tags are normalized the same way classifier output is, so a query
        for "Web" matches records tagged "web". Each record appears once,
        in the order the index returns its id.
        """
        wanted = list(dict.fromkeys(t for t in (normalize_tag(tag) for tag in tags) if t))
        if not wanted:
            return []

        records = []
        for id in self._tag_index.list_content_ids_for_tags(wanted):
            try:
                record = self._content_store.get(id)
            except StoreCorruptError as e:
                logger.warning("Dropping unreadable content %s from tag query: %s", id, e)
                continue
            if record is None:
                logger.debug("Tag index references missing content %s", id)
                continue
            records.append(record)
        return records

    def get_content(self, id: str) -> Optional[ContentRecord]:
        return self._content_store.get(id)

    def get_content_body(self, id: str) -> Optional[str]:
        return self._content_store.get_body_text(id)

    def list_content(self) -> list[ContentRecord]:
        """Every stored record, skipping ones that cannot be decoded."""
        records = []
        for id in self._content_store.list_ids():
            try:
                record = self._content_store.get(id)
            except StoreCorruptError as e:
                logger.warning("Skipping unreadable content %s: %s", id, e)
                continue
            if record is not None:
                records.append(record)
        return records
