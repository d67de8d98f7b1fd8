# Copyright (c) 2025 Dave Tofflemire, SigilDERG Project
# Licensed under the GNU Affero General Public License v3.0 (AGPLv3).
# Commercial licenses are available. Contact: davetmire85@gmail.com

"""Consistency checks between stored index records and the filesystem."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from .storage.vector import VectorStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndexIssue:
    path: str
    kind: str  # "missing", "modified" or "unreadable"


class IntegrityChecker:
    def __init__(self, store: VectorStore, repo_root: Path):
        self.store = store
        self.repo_root = Path(repo_root)

    def validate(self, prune_missing: bool = False) -> list[IndexIssue]:
        """Report records whose file is gone or whose mtime changed.

        Other stat failures are reported as ``unreadable`` issues.

        Content hashes are not re-verified. With ``prune_missing`` the records
        of missing files are deleted as they are found.
        """
        issues: list[IndexIssue] = []
        for record in self.store.iter_records():
            full_path = self.repo_root / record.path
            try:
                st = full_path.stat()
            except (FileNotFoundError, NotADirectoryError):
                logger.warning("Missing file: %s", record.path)
                issues.append(IndexIssue(record.path, "missing"))
                if prune_missing:
                    self.store.delete(record.path)
                continue
            except OSError as exc:
                logger.warning("Cannot stat %s: %s", record.path, exc)
                issues.append(IndexIssue(record.path, "unreadable"))
                continue

            if int(st.st_mtime) != record.last_modified:
                logger.warning("Modified file: %s", record.path)
                issues.append(IndexIssue(record.path, "modified"))

        if not issues:
            logger.info("Index validation passed")
        return issues

    def stats(self) -> dict[str, object]:
        return self.store.stats()
