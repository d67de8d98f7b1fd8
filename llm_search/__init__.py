"""Semantic code search and indexing for repository-scoped LLM tooling."""

from .config import SearchConfig
from .engine import SearchEngine
from .errors import (EmbeddingParseError, EmbeddingShapeError,
                     IndexIntegrityError, ProviderUnavailableError,
                     RecordNotFoundError, SearchConfigError, SearchError,
                     StorageError)
from .indexer import IndexStats
from .results import SearchResult

__version__ = "0.1.0"

__all__ = [
    "EmbeddingParseError",
    "EmbeddingShapeError",
    "IndexIntegrityError",
    "IndexStats",
    "ProviderUnavailableError",
    "RecordNotFoundError",
    "SearchConfig",
    "SearchConfigError",
    "SearchEngine",
    "SearchError",
    "SearchResult",
    "StorageError",
]
