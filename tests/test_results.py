# Copyright (c) 2025 Dave Tofflemire, SigilDERG Project
# Licensed under the GNU Affero General Public License v3.0 (AGPLv3).
# Commercial licenses are available. Contact: davetmire85@gmail.com

"""
Tests for result shaping: labels, previews, ranking and text formatting.
"""

from datetime import datetime

import pytest

from llm_search.indexer import IndexStats
from llm_search.results import (HeuristicRanker, SearchResult, count_lines,
                                format_file_size, format_index_stats,
                                format_search_results, format_status,
                                generate_preview, rank_results,
                                relevance_label)


def _result(path, score, relevance="Good"):
    return SearchResult(
        path=path,
        score=score,
        file_size=2048,
        line_count=12,
        preview="  line one",
        relevance=relevance,
    )


class TestRelevanceLabel:
    @pytest.mark.parametrize(
        "score,label",
        [
            (1.0, "Excellent"),
            (0.9, "Excellent"),
            (0.85, "Very Good"),
            (0.8, "Very Good"),
            (0.7, "Good"),
            (0.65, "Fair"),
            (0.5, "Marginal"),
            (0.49, "Low"),
            (-0.3, "Low"),
        ],
    )
    def test_bands(self, score, label):
        assert relevance_label(score) == label


class TestCountLines:
    def test_counts_newline_segments(self, temp_dir):
        path = temp_dir / "a.txt"
        path.write_text("one\ntwo\nthree\n")
        assert count_lines(path) == 4

    def test_no_trailing_newline(self, temp_dir):
        path = temp_dir / "a.txt"
        path.write_text("one\ntwo")
        assert count_lines(path) == 2

    def test_empty_file(self, temp_dir):
        path = temp_dir / "a.txt"
        path.write_text("")
        assert count_lines(path) == 1

    def test_unreadable(self, temp_dir):
        assert count_lines(temp_dir / "missing.txt") == 0


class TestGeneratePreview:
    """Tests for generate_preview."""

    def test_short_file_indented(self, temp_dir):
        path = temp_dir / "a.py"
        path.write_text("\n\nimport os\nprint(os.sep)\n\n")
        assert generate_preview(path, 100) == "  import os\n  print(os.sep)"

    def test_cut_at_late_newline(self, temp_dir):
        path = temp_dir / "a.txt"
        path.write_text("abcdefgh\nijklmnopqrstuvwxyz")
        # Limit of 12: newline at index 8 is past the midpoint (6)
        assert generate_preview(path, 12) == "  abcdefgh\n  ..."

    def test_hard_cut_when_newline_early(self, temp_dir):
        path = temp_dir / "a.txt"
        path.write_text("ab\ncdefghijklmnopqrstuvwxyz")
        # Newline at index 2 is before the midpoint (5)
        assert generate_preview(path, 10) == "  ab\n  cdefghi\n  ..."

    def test_exact_length_not_truncated(self, temp_dir):
        path = temp_dir / "a.txt"
        path.write_text("0123456789")
        assert generate_preview(path, 10) == "  0123456789"

    def test_zero_length(self, temp_dir):
        path = temp_dir / "a.txt"
        path.write_text("content")
        assert generate_preview(path, 0) == ""

    def test_missing_file(self, temp_dir):
        assert generate_preview(temp_dir / "missing.txt", 100) == ""


class TestRankResults:
    def test_descending_score_then_path(self):
        results = [_result("b.py", 0.8), _result("c.py", 0.9), _result("a.py", 0.8)]
        ranked = rank_results(results)
        assert [r.path for r in ranked] == ["c.py", "a.py", "b.py"]

    def test_does_not_mutate_input(self):
        results = [_result("b.py", 0.1), _result("a.py", 0.9)]
        rank_results(results)
        assert [r.path for r in results] == ["b.py", "a.py"]


class TestHeuristicRanker:
    """Tests for HeuristicRanker.adjust."""

    NOW = 1_700_000_000.0
    OLD = int(NOW) - 7 * 24 * 3600

    def test_no_adjustment(self):
        ranker = HeuristicRanker(now=self.NOW)
        assert ranker.adjust(0.5, "docs/readme.md", "query", 100, self.OLD) == pytest.approx(0.5)

    def test_name_match_boost(self):
        ranker = HeuristicRanker(now=self.NOW)
        assert ranker.adjust(0.5, "pkg/Config.go", "config", 100, self.OLD) == pytest.approx(0.6)

    def test_key_directory_boost(self):
        ranker = HeuristicRanker(now=self.NOW)
        assert ranker.adjust(0.5, "src/app.py", "zzz", 100, self.OLD) == pytest.approx(0.55)
        assert ranker.adjust(0.5, "cmd/main.go", "zzz", 100, self.OLD) == pytest.approx(0.55)

    def test_large_file_penalty(self):
        ranker = HeuristicRanker(now=self.NOW)
        assert ranker.adjust(0.5, "docs/a.md", "zzz", 50_001, self.OLD) == pytest.approx(0.45)
        assert ranker.adjust(0.5, "docs/a.md", "zzz", 50_000, self.OLD) == pytest.approx(0.5)

    def test_recent_boost(self):
        ranker = HeuristicRanker(now=self.NOW)
        recent = int(self.NOW) - 3600
        assert ranker.adjust(0.5, "docs/a.md", "zzz", 100, recent) == pytest.approx(0.52)

    def test_blank_query_never_matches_name(self):
        ranker = HeuristicRanker(now=self.NOW)
        assert ranker.adjust(0.5, "docs/a.md", "  ", 100, self.OLD) == pytest.approx(0.5)


class TestFormatting:
    """Tests for the text formatters the CLI prints."""

    @pytest.mark.parametrize(
        "size,expected",
        [
            (512, "512 B"),
            (1024, "1.00 KB"),
            (1536, "1.50 KB"),
            (1024 * 1024, "1.00 MB"),
            (3 * 1024 ** 3, "3.00 GB"),
        ],
    )
    def test_format_file_size(self, size, expected):
        assert format_file_size(size) == expected

    def test_no_results(self):
        assert format_search_results([], "nothing") == "No results found for query: nothing"

    def test_results_block(self):
        text = format_search_results([_result("a.py", 0.8123, "Very Good")], "query")
        assert "Search results for: query" in text
        assert "Found 1 matching files" in text
        assert "1. a.py" in text
        assert "Score: 81.23% (Very Good)" in text
        assert "Size: 2.00 KB" in text
        assert "Lines: 12" in text
        assert "  line one" in text

    def test_results_truncated_display(self):
        results = [_result(f"f{i}.py", 0.9) for i in range(3)]
        text = format_search_results(results, "q", max_results=2)
        assert "f2.py" not in text
        assert "... and 1 more results" in text

    def test_format_index_stats(self):
        stats = IndexStats(
            total_files=10,
            indexed_files=4,
            skipped_files=5,
            error_files=1,
            bytes_indexed=2048,
            start_time=datetime(2025, 1, 1, 12, 0, 0),
            end_time=datetime(2025, 1, 1, 12, 0, 2),
        )
        text = format_index_stats(stats)
        assert "Duration: 2.00s" in text
        assert "Files indexed: 4" in text
        assert "Files with errors: 1" in text
        assert "Data indexed: 2.00 KB" in text
        assert "Average time per file: 0.500s" in text
        assert "Records removed" not in text

    def test_format_status(self):
        text = format_status(
            {
                "total_files": 3,
                "total_size": 1234,
                "oldest_index": datetime(2025, 1, 1),
                "newest_index": datetime(2025, 1, 2),
            }
        )
        assert "Total files indexed: 3" in text
        assert "Total size: 1234 bytes" in text
        assert "2025-01-02" in text
