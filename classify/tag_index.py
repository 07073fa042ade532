"""
Tag index using SQLite.

Maps each tag to the set of content ids carrying it, and keeps the
global set of known tags. The content store remains the source of
truth; this index is secondary and can be rebuilt from it.

Every mutation runs in a single BEGIN IMMEDIATE transaction, so adding
to and pruning a tag's membership set are atomic across threads and
processes sharing the database file.
"""

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Optional

from .errors import StoreBackendError

logger = logging.getLogger(__name__)

# Wait this long for a competing writer before failing (milliseconds)
BUSY_TIMEOUT_MS = 5000


class SqliteTagIndex:
    """
    SQLite-backed reverse index from tags to content ids.

    Tables:
    - tags: the global tag set
    - tag_members: (tag, content_id) membership pairs
    """

    def __init__(self, store_path: Path):
        """
        Args:
            store_path: Path to SQLite database file
        """
        self._db_path = Path(store_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            # Autocommit mode; transactions are opened explicitly
            self._conn = sqlite3.connect(
                str(self._db_path),
                check_same_thread=False,
                isolation_level=None,
                timeout=BUSY_TIMEOUT_MS / 1000,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS}")

            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS tags (
                    tag TEXT PRIMARY KEY
                )
            """)

            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS tag_members (
                    tag TEXT NOT NULL,
                    content_id TEXT NOT NULL,
                    PRIMARY KEY (tag, content_id)
                )
            """)

            # Index for reverse lookups during repair
            self._conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_tag_members_content
                ON tag_members(content_id)
            """)
        except (sqlite3.Error, OSError) as e:
            raise StoreBackendError(f"Failed to open tag index {self._db_path}: {e}") from e

    def _conn_or_raise(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreBackendError("Tag index is closed")
        return self._conn

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def add_content_to_tags(self, id: str, tags: list[str]) -> None:
        """
        Add a content id under each tag.

        Idempotent: re-adding an existing membership changes nothing.

        Args:
            id: Content identifier
            tags: Tags the content carries
        """
        if not tags:
            return
        with self._lock:
            conn = self._conn_or_raise()
            try:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    conn.executemany(
                        "INSERT OR IGNORE INTO tags (tag) VALUES (?)",
                        [(tag,) for tag in tags],
                    )
                    conn.executemany(
                        "INSERT OR IGNORE INTO tag_members (tag, content_id) VALUES (?, ?)",
                        [(tag, id) for tag in tags],
                    )
                except BaseException:
                    conn.execute("ROLLBACK")
                    raise
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                raise StoreBackendError(f"Failed to index content {id}: {e}") from e

    def remove_content_from_tags(self, id: str, tags: list[str]) -> list[str]:
        """
        Remove a content id from each tag's membership set.

        Args:
            id: Content identifier
            tags: Tags to detach the content from

        Returns:
            Tags whose membership set became empty and were removed
        """
        if not tags:
            return []
        removed: list[str] = []
        with self._lock:
            conn = self._conn_or_raise()
            try:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    for tag in tags:
                        conn.execute(
                            "DELETE FROM tag_members WHERE tag = ? AND content_id = ?",
                            (tag, id),
                        )
                        remaining = conn.execute(
                            "SELECT COUNT(*) FROM tag_members WHERE tag = ?",
                            (tag,),
                        ).fetchone()[0]
                        if remaining == 0:
                            cursor = conn.execute("DELETE FROM tags WHERE tag = ?", (tag,))
                            if cursor.rowcount > 0:
                                removed.append(tag)
                except BaseException:
                    conn.execute("ROLLBACK")
                    raise
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                raise StoreBackendError(f"Failed to unindex content {id}: {e}") from e
        return removed

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def list_all_tags(self) -> list[str]:
        with self._lock:
            conn = self._conn_or_raise()
            try:
                cursor = conn.execute("SELECT tag FROM tags ORDER BY tag")
                return [row["tag"] for row in cursor]
            except sqlite3.Error as e:
                raise StoreBackendError(f"Failed to list tags: {e}") from e

    def list_content_ids_for_tags(self, tags: list[str]) -> list[str]:
        """
        Union of the membership sets of the given tags.

        Returns:
            Content ids in order of first appearance, each id once
        """
        if not tags:
            return []
        ids: list[str] = []
        seen: set[str] = set()
        with self._lock:
            conn = self._conn_or_raise()
            try:
                for tag in tags:
                    cursor = conn.execute(
                        "SELECT content_id FROM tag_members WHERE tag = ? ORDER BY content_id",
                        (tag,),
                    )
                    for row in cursor:
                        cid = row["content_id"]
                        if cid not in seen:
                            seen.add(cid)
                            ids.append(cid)
            except sqlite3.Error as e:
                raise StoreBackendError(f"Failed to query tags: {e}") from e
        return ids

    def tag_counts(self) -> dict[str, int]:
        with self._lock:
            conn = self._conn_or_raise()
            try:
                cursor = conn.execute("""
                    SELECT t.tag AS tag, COUNT(m.content_id) AS n
                    FROM tags t
                    LEFT JOIN tag_members m ON m.tag = t.tag
                    GROUP BY t.tag
                    ORDER BY t.tag
                """)
                return {row["tag"]: row["n"] for row in cursor}
            except sqlite3.Error as e:
                raise StoreBackendError(f"Failed to count tags: {e}") from e

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        try:
            self.close()
        except Exception:
            pass
