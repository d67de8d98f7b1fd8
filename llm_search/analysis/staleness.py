# Copyright (c) 2025 Dave Tofflemire, SigilDERG Project
# Licensed under the GNU Affero General Public License v3.0 (AGPLv3).
# Commercial licenses are available. Contact: davetmire85@gmail.com

"""Metadata-only staleness checks for indexed files."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Protocol


class StoredMetadata(Protocol):
    last_modified: int
    file_size: int


@dataclass(frozen=True)
class DiskInfo:
    """Size and whole-second mtime of a file as seen on disk."""

    size: int
    mtime: int

    @classmethod
    def from_stat(cls, st: os.stat_result) -> "DiskInfo":
        return cls(size=int(st.st_size), mtime=int(st.st_mtime))


def needs_reindex(
    previous: StoredMetadata | None, disk: DiskInfo, force_all: bool = False
) -> bool:
    """Decide whether a file must be re-embedded.

    Compares stored mtime and size with what is on disk; content is never
    read, so an edit that preserves both goes unnoticed.
    """
    if force_all:
        return True
    if previous is None:
        return True
    if previous.last_modified != disk.mtime:
        return True
    if previous.file_size != disk.size:
        return True
    return False
