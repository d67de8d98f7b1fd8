# Copyright (c) 2025 Dave Tofflemire, SigilDERG Project
# Licensed under the GNU Affero General Public License v3.0 (AGPLv3).
# Commercial licenses are available. Contact: davetmire85@gmail.com

"""Path and content filters deciding which repository files get embedded."""

from __future__ import annotations

import fnmatch
import logging
import posixpath
from collections.abc import Iterable
from pathlib import Path

logger = logging.getLogger(__name__)

BINARY_SNIFF_BYTES = 8192


def has_allowed_extension(rel_path: str, extensions: Iterable[str]) -> bool:
    """Case-insensitive suffix check; files without an extension never match."""
    ext = posixpath.splitext(rel_path)[1].lower()
    if not ext:
        return False
    return any(ext == allowed.lower() for allowed in extensions)


def is_excluded(rel_path: str, excluded_patterns: Iterable[str]) -> bool:
    """Match a glob against the basename, or a pattern as a leading directory."""
    name = posixpath.basename(rel_path)
    for pattern in excluded_patterns:
        if fnmatch.fnmatchcase(name, pattern):
            return True
        if rel_path.startswith(pattern.rstrip("/") + "/"):
            return True
    return False


def should_index_file(
    rel_path: str, extensions: Iterable[str], excluded_patterns: Iterable[str]
) -> bool:
    """Return True when ``rel_path`` passes the extension and exclusion checks.

    Pure function of its arguments; size and binary checks need the
    filesystem and live in the indexer.
    """
    if not has_allowed_extension(rel_path, extensions):
        return False
    return not is_excluded(rel_path, excluded_patterns)


def is_text_file(path: Path) -> bool:
    """Treat a file as text unless a null byte appears in its first 8 KiB."""
    try:
        with open(path, "rb") as fh:
            head = fh.read(BINARY_SNIFF_BYTES)
    except OSError:
        logger.debug("Could not read %s for binary check", path, exc_info=True)
        return False
    return b"\x00" not in head
