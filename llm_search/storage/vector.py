# Copyright (c) 2025 Dave Tofflemire, SigilDERG Project
# Licensed under the GNU Affero General Public License v3.0 (AGPLv3).
# Commercial licenses are available. Contact: davetmire85@gmail.com

"""SQLite-backed vector store for per-file embeddings.

One row per indexed file, keyed by repository-relative path. The indexer is the
only writer; queries and validation read through ``iter_records``.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import numpy as np

from ..errors import RecordNotFoundError, StorageError
from ..similarity import deserialize_embedding, serialize_embedding

logger = logging.getLogger(__name__)


@dataclass
class IndexRecord:
    """Stored metadata and embedding for one repository file."""

    path: str
    content_hash: str
    embedding: np.ndarray = field(repr=False)
    last_modified: int
    file_size: int
    indexed_at: int


class VectorStore:
    def __init__(self, db_path: Path, *, timeout: float = 60.0):
        self.db_path = Path(db_path)
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=timeout)
            self.conn.execute("PRAGMA journal_mode=WAL;")
            self.conn.execute("PRAGMA synchronous=NORMAL;")
            self.conn.execute("PRAGMA busy_timeout=60000;")
            self._init_schema()
        except (OSError, sqlite3.Error) as exc:
            raise StorageError(f"failed to open vector store at {self.db_path}: {exc}") from exc

    def _init_schema(self) -> None:
        """Create the embeddings table and its secondary indexes."""
        cur = self.conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS embeddings (
                filepath TEXT PRIMARY KEY,
                content_hash TEXT NOT NULL,
                embedding BLOB NOT NULL,
                last_modified INTEGER NOT NULL,
                file_size INTEGER NOT NULL,
                indexed_at INTEGER NOT NULL
            )
        """
        )

        # Dedup lookups by content
        cur.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_hash
            ON embeddings(content_hash)
        """
        )

        # Time-range maintenance queries
        cur.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_modified
            ON embeddings(last_modified)
        """
        )
        self.conn.commit()

    def close(self) -> None:
        try:
            self.conn.close()
        except Exception:
            logger.debug("Error closing vector store database", exc_info=True)

    def put(self, record: IndexRecord) -> None:
        """Insert or replace the record for ``record.path``."""
        try:
            self.conn.execute(
                """
                INSERT OR REPLACE INTO embeddings
                (filepath, content_hash, embedding, last_modified, file_size, indexed_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    record.path,
                    record.content_hash,
                    serialize_embedding(record.embedding),
                    int(record.last_modified),
                    int(record.file_size),
                    int(record.indexed_at),
                ),
            )
            self.conn.commit()
        except (sqlite3.Error, UnicodeError) as exc:
            raise StorageError(f"failed to store {record.path}: {exc}") from exc

    def get(self, path: str) -> IndexRecord:
        try:
            cur = self.conn.cursor()
            cur.execute(
                """
                SELECT filepath, content_hash, embedding, last_modified, file_size, indexed_at
                FROM embeddings WHERE filepath = ?
                """,
                (path,),
            )
            row = cur.fetchone()
        except (sqlite3.Error, UnicodeError) as exc:
            raise StorageError(f"failed to read {path}: {exc}") from exc
        if row is None:
            raise RecordNotFoundError(path)
        return self._row_to_record(row)

    def find(self, path: str) -> IndexRecord | None:
        """Like ``get`` but returns None when no record exists."""
        try:
            return self.get(path)
        except RecordNotFoundError:
            return None

    def delete(self, path: str) -> None:
        """Remove the record for ``path``; absent paths are not an error."""
        try:
            self.conn.execute("DELETE FROM embeddings WHERE filepath = ?", (path,))
            self.conn.commit()
        except (sqlite3.Error, UnicodeError) as exc:
            raise StorageError(f"failed to delete {path}: {exc}") from exc

    def list_paths(self) -> list[str]:
        try:
            cur = self.conn.cursor()
            cur.execute("SELECT filepath FROM embeddings ORDER BY filepath")
            return [row[0] for row in cur.fetchall()]
        except sqlite3.Error as exc:
            raise StorageError(f"failed to list indexed files: {exc}") from exc

    def iter_records(self) -> Iterator[IndexRecord]:
        """Yield every stored record; embeddings are deserialized as-is."""
        try:
            cur = self.conn.cursor()
            cur.execute(
                """
                SELECT filepath, content_hash, embedding, last_modified, file_size, indexed_at
                FROM embeddings ORDER BY filepath
                """
            )
            rows = cur.fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"failed to scan embeddings: {exc}") from exc
        for row in rows:
            yield self._row_to_record(row)

    def count(self) -> int:
        try:
            cur = self.conn.cursor()
            cur.execute("SELECT COUNT(*) FROM embeddings")
            return int(cur.fetchone()[0])
        except sqlite3.Error as exc:
            raise StorageError(f"failed to count embeddings: {exc}") from exc

    def stats(self) -> dict[str, object]:
        """Return record count, total bytes and the indexed_at range."""
        try:
            cur = self.conn.cursor()
            cur.execute(
                """
                SELECT COUNT(*), COALESCE(SUM(file_size), 0),
                       COALESCE(MIN(indexed_at), 0), COALESCE(MAX(indexed_at), 0)
                FROM embeddings
                """
            )
            total_files, total_size, oldest, newest = cur.fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"failed to read index statistics: {exc}") from exc

        return {
            "total_files": int(total_files),
            "total_size": int(total_size),
            "oldest_index": datetime.fromtimestamp(int(oldest)),
            "newest_index": datetime.fromtimestamp(int(newest)),
        }

    @staticmethod
    def _row_to_record(row: tuple) -> IndexRecord:
        return IndexRecord(
            path=row[0],
            content_hash=row[1],
            embedding=deserialize_embedding(row[2]),
            last_modified=int(row[3]),
            file_size=int(row[4]),
            indexed_at=int(row[5]),
        )
