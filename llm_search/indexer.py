# Copyright (c) 2025 Dave Tofflemire, SigilDERG Project
# Licensed under the GNU Affero General Public License v3.0 (AGPLv3).
# Commercial licenses are available. Contact: davetmire85@gmail.com

"""
Repository indexing for semantic search.

Walks a repository, filters candidate files, and keeps one embedding per file
in the vector store. Full, incremental and cleanup runs share the same
filter/decide/act steps; failures on individual files are counted and logged
without stopping the walk.
"""

from __future__ import annotations

import hashlib
import logging
import time
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from .analysis import DiskInfo, is_text_file, needs_reindex, should_index_file
from .config import SearchConfig
from .embeddings import EmbeddingAdapter
from .errors import SearchError
from .storage.vector import IndexRecord, VectorStore

logger = logging.getLogger(__name__)

PROGRESS_EVERY = 100


@dataclass
class IndexStats:
    """Counters for one indexing run."""

    total_files: int = 0
    indexed_files: int = 0
    skipped_files: int = 0
    error_files: int = 0
    bytes_indexed: int = 0
    removed_files: int = 0
    start_time: datetime = field(default_factory=datetime.now)
    end_time: datetime | None = None

    @property
    def duration_seconds(self) -> float:
        end = self.end_time or datetime.now()
        return (end - self.start_time).total_seconds()

    def to_dict(self) -> dict[str, object]:
        return {
            "total_files": self.total_files,
            "indexed_files": self.indexed_files,
            "skipped_files": self.skipped_files,
            "error_files": self.error_files,
            "bytes_indexed": self.bytes_indexed,
            "removed_files": self.removed_files,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_seconds": round(self.duration_seconds, 3),
        }


def compute_content_hash(content: bytes) -> str:
    """SHA-256 hex digest of the raw file bytes."""
    return hashlib.sha256(content).hexdigest()


class RepositoryIndexer:
    """Builds and maintains the per-file embedding index for one repository."""

    def __init__(
        self,
        store: VectorStore,
        adapter: EmbeddingAdapter,
        config: SearchConfig,
        repo_root: Path,
    ):
        self.store = store
        self.adapter = adapter
        self.config = config
        self.repo_root = Path(repo_root)

    def _iter_files(self) -> Iterator[tuple[Path, str]]:
        """Yield (absolute path, repo-relative POSIX path) for every file."""
        for file_path in sorted(self.repo_root.rglob("*")):
            if not file_path.is_file():
                continue
            yield file_path, file_path.relative_to(self.repo_root).as_posix()

    def _process_file(
        self, file_path: Path, rel_path: str, force: bool, stats: IndexStats
    ) -> None:
        if not should_index_file(
            rel_path, self.config.index_extensions, self.config.excluded_paths
        ):
            stats.skipped_files += 1
            return

        try:
            disk = DiskInfo.from_stat(file_path.stat())
        except OSError as exc:
            stats.error_files += 1
            logger.warning("Error checking %s: %s", rel_path, exc)
            return

        if disk.size > self.config.max_file_size:
            stats.skipped_files += 1
            return

        if not is_text_file(file_path):
            stats.skipped_files += 1
            return

        try:
            previous = None if force else self.store.find(rel_path)
        except SearchError as exc:
            stats.error_files += 1
            logger.warning("Error checking %s: %s", rel_path, exc)
            return

        if not needs_reindex(previous, disk, force):
            stats.skipped_files += 1
            return

        try:
            self._index_file(file_path, rel_path, disk)
        except (OSError, SearchError) as exc:
            stats.error_files += 1
            logger.warning("Error indexing %s: %s", rel_path, exc)
            logger.debug("Indexing failure detail for %s", rel_path, exc_info=True)
            return

        stats.indexed_files += 1
        stats.bytes_indexed += disk.size

    def _index_file(self, file_path: Path, rel_path: str, disk: DiskInfo) -> None:
        """Read, hash, embed and store one file."""
        content = file_path.read_bytes()
        text = content.decode("utf-8", errors="replace")
        embedding = self.adapter.embed(text)
        self.store.put(
            IndexRecord(
                path=rel_path,
                content_hash=compute_content_hash(content),
                embedding=embedding,
                last_modified=disk.mtime,
                file_size=disk.size,
                indexed_at=int(time.time()),
            )
        )

    def _walk(self, force: bool, observed: set[str] | None = None) -> IndexStats:
        stats = IndexStats()
        for file_path, rel_path in self._iter_files():
            stats.total_files += 1
            if observed is not None:
                observed.add(rel_path)
            self._process_file(file_path, rel_path, force, stats)
            if stats.total_files % PROGRESS_EVERY == 0:
                logger.info(
                    "Indexing: %s files processed, %s indexed",
                    stats.total_files,
                    stats.indexed_files,
                )
        return stats

    def index_repository(self, force: bool = False) -> IndexStats:
        """
        Index every eligible file under the repository root.

        Args:
            force: Re-embed files even when their mtime and size are unchanged

        Returns:
            Statistics about the indexing run
        """
        logger.info("Indexing repository at %s (force=%s)", self.repo_root, force)
        stats = self._walk(force)
        stats.end_time = datetime.now()
        self._log_summary("Indexed", stats)
        return stats

    def update_index(self) -> IndexStats:
        """Embed new or changed files and drop records for files gone from disk."""
        logger.info("Updating index for %s", self.repo_root)
        observed: set[str] = set()
        stats = self._walk(False, observed)

        for path in self.store.list_paths():
            if path not in observed:
                self.store.delete(path)
                stats.removed_files += 1
                logger.debug("Removed stale index record %s", path)

        stats.end_time = datetime.now()
        self._log_summary("Updated", stats)
        return stats

    def cleanup_index(self) -> list[str]:
        """Delete records whose files no longer exist; returns removed paths."""
        removed: list[str] = []
        for path in self.store.list_paths():
            if not (self.repo_root / path).exists():
                self.store.delete(path)
                removed.append(path)
        logger.info("Cleanup removed %s index records", len(removed))
        return removed

    def _log_summary(self, verb: str, stats: IndexStats) -> None:
        logger.info(
            "%s %s: %s files found, %s indexed, %s skipped, %s errors, %s removed in %.1fs",
            verb,
            self.repo_root,
            stats.total_files,
            stats.indexed_files,
            stats.skipped_files,
            stats.error_files,
            stats.removed_files,
            stats.duration_seconds,
        )
