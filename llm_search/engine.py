# Copyright (c) 2025 Dave Tofflemire, SigilDERG Project
# Licensed under the GNU Affero General Public License v3.0 (AGPLv3).
# Commercial licenses are available. Contact: davetmire85@gmail.com

"""
Search engine facade.

Owns the vector store connection and the embedding adapter for one repository
and exposes the operations the command layer calls: index, update, cleanup,
validate, search and stats.
"""

from __future__ import annotations

import logging
from pathlib import Path

from .config import SearchConfig
from .embeddings import (EmbeddingAdapter, EmbeddingProvider,
                         select_embedding_provider)
from .errors import (IndexIntegrityError, ProviderUnavailableError,
                     SearchConfigError, StorageError)
from .indexer import IndexStats, RepositoryIndexer
from .integrity import IndexIssue, IntegrityChecker
from .results import (HeuristicRanker, SearchResult, count_lines,
                      generate_preview, rank_results, relevance_label)
from .similarity import cosine_similarity
from .storage.vector import VectorStore

logger = logging.getLogger(__name__)


class SearchEngine:
    """Semantic search over one repository's files."""

    def __init__(
        self,
        config: SearchConfig,
        repo_root: Path,
        provider: EmbeddingProvider | None = None,
    ):
        if not config.enabled:
            raise SearchConfigError("search is not enabled in configuration")

        self.config = config
        self.repo_root = Path(repo_root).expanduser().resolve()
        if not self.repo_root.is_dir():
            raise SearchConfigError(f"repository root {self.repo_root} is not a directory")

        db_path = Path(config.vector_db_path).expanduser()
        if not db_path.is_absolute():
            db_path = self.repo_root / db_path
        self.db_path = db_path

        if provider is None:
            provider = select_embedding_provider(config)
        self.adapter = EmbeddingAdapter(
            provider, config.embedding_dimension, config.max_embed_tokens
        )
        try:
            self.store = VectorStore(self.db_path)
        except StorageError:
            self.adapter.close()
            raise
        self.indexer = RepositoryIndexer(self.store, self.adapter, config, self.repo_root)
        self.integrity = IntegrityChecker(self.store, self.repo_root)
        self.ranker = HeuristicRanker() if config.heuristic_ranking else None

        logger.info(
            "Search engine ready: repo=%s db=%s provider=%s dim=%s",
            self.repo_root,
            self.db_path,
            provider.name,
            config.embedding_dimension,
        )

    def __enter__(self) -> "SearchEngine":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def provider(self) -> EmbeddingProvider:
        return self.adapter.provider

    def check_provider(self) -> None:
        """One-shot availability probe; raises ProviderUnavailableError."""
        try:
            self.adapter.check_available()
        except ProviderUnavailableError as exc:
            raise ProviderUnavailableError(
                f"{self.provider.name} embedding provider not available: {exc}"
            ) from exc

    def index_repository(self, force_all: bool = False) -> IndexStats:
        self.check_provider()
        return self.indexer.index_repository(force=force_all)

    def update_index(self) -> IndexStats:
        self.check_provider()
        return self.indexer.update_index()

    def cleanup_index(self) -> list[str]:
        return self.indexer.cleanup_index()

    def initialize_index(self) -> IndexStats | None:
        """Build the index on first use; no-op when records already exist."""
        if self.store.count() > 0:
            return None
        logger.info("No search index found. Building initial index...")
        return self.index_repository(force_all=False)

    def find_issues(self, prune_missing: bool = False) -> list[IndexIssue]:
        return self.integrity.validate(prune_missing=prune_missing)

    def validate_index(self) -> None:
        """Raise IndexIntegrityError when any record is missing or modified."""
        issues = self.find_issues()
        if issues:
            raise IndexIntegrityError(issues)

    def stats(self) -> dict[str, object]:
        return self.integrity.stats()

    def search(self, query: str) -> list[SearchResult]:
        """
        Rank indexed files by cosine similarity to ``query``.

        Results below ``min_similarity_score`` are dropped, the rest are sorted
        by score (ties by path) and capped at ``max_results`` when positive.
        """
        self.check_provider()
        query_vec = self.adapter.embed(query)
        dimension = self.config.embedding_dimension

        results: list[SearchResult] = []
        corrupt = 0
        for record in self.store.iter_records():
            if record.embedding.shape[0] != dimension:
                corrupt += 1
                continue

            similarity = cosine_similarity(query_vec, record.embedding)
            if similarity < self.config.min_similarity_score:
                continue

            score = similarity
            if self.ranker is not None:
                score = self.ranker.adjust(
                    similarity, record.path, query, record.file_size, record.last_modified
                )

            full_path = self.repo_root / record.path
            results.append(
                SearchResult(
                    path=record.path,
                    score=score,
                    file_size=record.file_size,
                    line_count=count_lines(full_path),
                    preview=generate_preview(full_path, self.config.max_preview_length),
                    relevance=relevance_label(similarity),
                )
            )

        if corrupt:
            logger.debug("Skipped %s index records with unexpected dimension", corrupt)

        results = rank_results(results)
        if self.config.max_results > 0:
            results = results[: self.config.max_results]
        logger.info("Search %r returned %s results", query[:80], len(results))
        return results

    def close(self) -> None:
        """Close the store connection and any provider resources."""
        self.store.close()
        self.adapter.close()
