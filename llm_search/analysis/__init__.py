"""Pure analysis helpers for file filtering and staleness decisions."""

from .filters import (has_allowed_extension, is_excluded, is_text_file,
                      should_index_file)
from .staleness import DiskInfo, needs_reindex

__all__ = [
    "DiskInfo",
    "has_allowed_extension",
    "is_excluded",
    "is_text_file",
    "needs_reindex",
    "should_index_file",
]
