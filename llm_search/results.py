# Copyright (c) 2025 Dave Tofflemire, SigilDERG Project
# Licensed under the GNU Affero General Public License v3.0 (AGPLv3).
# Commercial licenses are available. Contact: davetmire85@gmail.com

"""Query-time result shaping: previews, relevance labels, ranking, display."""

from __future__ import annotations

import logging
import posixpath
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

RELEVANCE_BANDS = (
    (0.9, "Excellent"),
    (0.8, "Very Good"),
    (0.7, "Good"),
    (0.6, "Fair"),
    (0.5, "Marginal"),
)


@dataclass
class SearchResult:
    """Represents a semantic search hit for one file."""

    path: str
    score: float
    file_size: int
    line_count: int
    preview: str
    relevance: str


def relevance_label(score: float) -> str:
    """Map a similarity score to its display band (lower edges inclusive)."""
    for threshold, label in RELEVANCE_BANDS:
        if score >= threshold:
            return label
    return "Low"


def count_lines(path: Path) -> int:
    """Number of newline-delimited segments in the file, or 0 if unreadable."""
    try:
        content = path.read_bytes()
    except OSError:
        logger.debug("Could not read %s for line count", path, exc_info=True)
        return 0
    return content.count(b"\n") + 1


def generate_preview(path: Path, max_length: int) -> str:
    """Build an indented excerpt of at most ``max_length`` characters.

    Long files are cut at the last newline past the midpoint of the limit
    when there is one, and marked with a trailing ``...`` line.
    """
    if max_length <= 0:
        return ""
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        logger.debug("Could not read %s for preview", path, exc_info=True)
        return ""

    text = text.strip()
    if len(text) > max_length:
        truncated = text[:max_length]
        last_newline = truncated.rfind("\n")
        if last_newline > max_length // 2:
            truncated = truncated[:last_newline]
        text = truncated + "\n..."

    return "\n".join("  " + line for line in text.split("\n"))


def rank_results(results: list[SearchResult]) -> list[SearchResult]:
    """Sort by score descending; equal scores fall back to path order."""
    return sorted(results, key=lambda r: (-r.score, r.path))


class HeuristicRanker:
    """Optional score adjustments layered on top of raw cosine similarity."""

    NAME_MATCH_BOOST = 0.10
    KEY_DIR_BOOST = 0.05
    LARGE_FILE_PENALTY = 0.05
    RECENT_BOOST = 0.02
    LARGE_FILE_BYTES = 50_000
    RECENT_SECONDS = 24 * 60 * 60

    def __init__(self, now: float | None = None):
        self.now = now

    def adjust(
        self, score: float, path: str, query: str, file_size: int, last_modified: int
    ) -> float:
        now = self.now if self.now is not None else time.time()
        query_l = query.lower().strip()

        if query_l and query_l in posixpath.basename(path).lower():
            score += self.NAME_MATCH_BOOST
        if "src/" in path or "lib/" in path or "main" in path:
            score += self.KEY_DIR_BOOST
        if file_size > self.LARGE_FILE_BYTES:
            score -= self.LARGE_FILE_PENALTY
        if now - last_modified < self.RECENT_SECONDS:
            score += self.RECENT_BOOST
        return score


def format_file_size(size: int) -> str:
    """Format a byte count for humans (B, KB, MB, GB)."""
    kb = 1024
    mb = kb * 1024
    gb = mb * 1024
    if size >= gb:
        return f"{size / gb:.2f} GB"
    if size >= mb:
        return f"{size / mb:.2f} MB"
    if size >= kb:
        return f"{size / kb:.2f} KB"
    return f"{size} B"


def format_search_results(results: Sequence[SearchResult], query: str, max_results: int = 0) -> str:
    if not results:
        return f"No results found for query: {query}"

    lines = [f"Search results for: {query}", f"Found {len(results)} matching files", ""]
    display_count = len(results)
    if max_results > 0:
        display_count = min(display_count, max_results)

    for i, result in enumerate(results[:display_count], start=1):
        lines.append(f"─── {i}. {result.path} ───")
        lines.append(
            f"Score: {result.score * 100:.2f}% ({result.relevance}) | "
            f"Size: {format_file_size(result.file_size)} | Lines: {result.line_count}"
        )
        if result.preview:
            lines.append("Preview:")
            lines.append(result.preview)
        lines.append("")

    if len(results) > display_count:
        lines.append(f"... and {len(results) - display_count} more results")

    return "\n".join(lines)


def format_index_stats(stats: Any) -> str:
    """Render an ``IndexStats`` summary the way the CLI prints it."""
    lines = [
        "=== Indexing Complete ===",
        f"Duration: {stats.duration_seconds:.2f}s",
        f"Total files found: {stats.total_files}",
        f"Files indexed: {stats.indexed_files}",
        f"Files skipped: {stats.skipped_files}",
        f"Files with errors: {stats.error_files}",
        f"Data indexed: {stats.bytes_indexed / 1024:.2f} KB",
    ]
    if stats.removed_files:
        lines.append(f"Records removed: {stats.removed_files}")
    if stats.indexed_files > 0:
        lines.append(f"Average time per file: {stats.duration_seconds / stats.indexed_files:.3f}s")
    return "\n".join(lines)


def format_status(stats: Mapping[str, Any]) -> str:
    lines = [
        "Search Index Status",
        "===================",
        f"Total files indexed: {stats['total_files']}",
        f"Total size: {stats['total_size']} bytes",
        f"Oldest index: {stats['oldest_index']}",
        f"Newest index: {stats['newest_index']}",
    ]
    return "\n".join(lines)
