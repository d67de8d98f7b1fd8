# Copyright (c) 2025 Dave Tofflemire, SigilDERG Project
# Licensed under the GNU Affero General Public License v3.0 (AGPLv3).
# Commercial licenses are available. Contact: davetmire85@gmail.com

"""Command-line entry point: ``llm-search <command>``."""

from __future__ import annotations

import argparse
import dataclasses
import json
import sys
from pathlib import Path
from typing import Optional, Sequence

from .config import (Config, SearchConfig, configure_logging,
                     load_config)
from .engine import SearchEngine
from .errors import IndexIntegrityError, SearchError
from .results import format_index_stats, format_search_results, format_status

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_ISSUES = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="llm-search",
        description="Semantic search over a repository's files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s search "database connection retry"
  %(prog)s reindex                 # Rebuild every record
  %(prog)s update                  # Re-embed changed files, drop deleted ones
  %(prog)s validate --prune        # Report and remove records of deleted files

Environment variables:
- LLM_SEARCH_ENABLED=true (required unless set in config.json)
- LLM_SEARCH_REPO_ROOT=. (repository to index)
- LLM_SEARCH_PROVIDER=auto|python|ollama
        """,
    )
    parser.add_argument("--config", type=Path, help="Path to config.json")
    parser.add_argument("--repo", type=Path, help="Repository root (overrides config)")
    parser.add_argument("--log-level", help="Log level (overrides config)")
    parser.add_argument(
        "--json", "-j",
        action="store_true",
        help="Output results as JSON instead of human-readable text",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    search = sub.add_parser("search", help="Run a semantic query")
    search.add_argument("query", help="Free-text query")
    search.add_argument("--max-results", "-n", type=int, help="Maximum results to return")
    search.add_argument("--min-score", type=float, help="Minimum similarity score")

    sub.add_parser("reindex", help="Re-embed every eligible file")
    sub.add_parser("update", help="Incremental update, removing records of deleted files")
    sub.add_parser("status", help="Show index statistics")

    validate = sub.add_parser("validate", help="Check records against the filesystem")
    validate.add_argument(
        "--prune",
        action="store_true",
        help="Delete records whose file no longer exists",
    )

    sub.add_parser("cleanup", help="Remove records of deleted files")
    sub.add_parser("check-provider", help="Check that the embedding provider responds")
    return parser


def _apply_overrides(args: argparse.Namespace, search_config: SearchConfig) -> SearchConfig:
    overrides = {}
    if getattr(args, "max_results", None) is not None:
        overrides["max_results"] = args.max_results
    if getattr(args, "min_score", None) is not None:
        overrides["min_similarity_score"] = args.min_score
    if overrides:
        search_config = dataclasses.replace(search_config, **overrides)
    return search_config


def _build_engine(args: argparse.Namespace, config: Config) -> SearchEngine:
    repo_root = args.repo if args.repo is not None else config.repository_root
    return SearchEngine(_apply_overrides(args, SearchConfig.from_config(config)), repo_root)


def _emit(args: argparse.Namespace, payload, text: str) -> None:
    if args.json:
        print(json.dumps(payload, indent=2, default=str))
    else:
        print(text)


def _run(args: argparse.Namespace, engine: SearchEngine) -> int:
    command = args.command

    if command == "check-provider":
        engine.check_provider()
        _emit(
            args,
            {"provider": engine.provider.name, "available": True},
            f"Embedding provider '{engine.provider.name}' is available",
        )
        return EXIT_OK

    if command == "search":
        initial = engine.initialize_index()
        if initial is not None and not args.json:
            print(format_index_stats(initial))
            print()
        results = engine.search(args.query)
        _emit(
            args,
            {"query": args.query, "results": [dataclasses.asdict(r) for r in results]},
            format_search_results(results, args.query, engine.config.max_results),
        )
        return EXIT_OK

    if command in ("reindex", "update"):
        if command == "reindex":
            stats = engine.index_repository(force_all=True)
        else:
            stats = engine.update_index()
        _emit(args, stats.to_dict(), format_index_stats(stats))
        return EXIT_OK if stats.error_files == 0 else EXIT_ISSUES

    if command == "status":
        stats = engine.stats()
        _emit(args, stats, format_status(stats))
        return EXIT_OK

    if command == "validate":
        issues = engine.find_issues(prune_missing=args.prune)
        if args.json:
            _emit(args, {"valid": not issues, "issues": [dataclasses.asdict(i) for i in issues]}, "")
        elif issues:
            for issue in issues:
                print(f"{issue.kind}: {issue.path}")
            print(str(IndexIntegrityError(issues)))
        else:
            print("Index validation passed")
        return EXIT_ISSUES if issues else EXIT_OK

    if command == "cleanup":
        removed = engine.cleanup_index()
        _emit(
            args,
            {"removed": removed},
            f"Cleanup complete: removed {len(removed)} records",
        )
        return EXIT_OK

    raise ValueError(f"unknown command: {command}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    config = load_config(args.config)
    configure_logging(args.log_level or config.log_level, config.log_file)

    try:
        engine = _build_engine(args, config)
    except SearchError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_ERROR

    try:
        with engine:
            return _run(args, engine)
    except SearchError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
