# Copyright (c) 2025 Dave Tofflemire, SigilDERG Project
# Licensed under the GNU Affero General Public License v3.0 (AGPLv3).
# Commercial licenses are available. Contact: davetmire85@gmail.com

"""Exception types raised by the search engine.

Callers (CLI, admin API) catch ``SearchError`` to report any engine failure;
the subclasses let them distinguish configuration problems from provider or
storage outages.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any


class SearchError(Exception):
    """Base class for all search engine errors."""


class SearchConfigError(SearchError):
    """Search is disabled or its configuration is unusable."""


class ProviderUnavailableError(SearchError):
    """The embedding provider could not be reached or exited with an error."""


class EmbeddingParseError(SearchError):
    """The embedding provider returned output that is not a float array."""


class EmbeddingShapeError(SearchError):
    """The embedding provider returned a vector of the wrong dimension."""

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"unexpected embedding dimension: got {actual}, expected {expected}"
        )
        self.expected = expected
        self.actual = actual


class StorageError(SearchError):
    """Opening, reading or writing the vector store failed."""


class RecordNotFoundError(StorageError):
    """No record is stored for the requested path."""

    def __init__(self, path: str):
        super().__init__(f"no index record for {path!r}")
        self.path = path


class IndexIntegrityError(SearchError):
    """Validation found stored records that no longer match the filesystem."""

    def __init__(self, issues: Sequence[Any]):
        super().__init__(f"found {len(issues)} issues in index")
        self.issues = list(issues)
