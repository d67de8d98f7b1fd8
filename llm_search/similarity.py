# Copyright (c) 2025 Dave Tofflemire, SigilDERG Project
# Licensed under the GNU Affero General Public License v3.0 (AGPLv3).
# Commercial licenses are available. Contact: davetmire85@gmail.com

"""Vector math and the on-disk embedding byte layout."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

# 4-byte little-endian IEEE-754 floats, independent of host byte order
EMBEDDING_DTYPE = np.dtype("<f4")


def serialize_embedding(embedding: Sequence[float] | np.ndarray) -> bytes:
    """Pack a vector as consecutive 4-byte floats."""
    return np.asarray(embedding, dtype=EMBEDDING_DTYPE).tobytes()


def deserialize_embedding(data: bytes | None) -> np.ndarray:
    """Unpack as many whole floats as ``data`` holds.

    Callers compare the resulting length with their configured dimension; a
    mismatch marks the stored row as corrupt.
    """
    if not data:
        return np.zeros(0, dtype=np.float32)
    usable = len(data) - (len(data) % EMBEDDING_DTYPE.itemsize)
    return np.frombuffer(data[:usable], dtype=EMBEDDING_DTYPE).astype(np.float32)


def cosine_similarity(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """Dot product over the product of magnitudes.

    Returns 0.0 for vectors of different length and when either vector has
    zero magnitude.
    """
    va = np.asarray(a, dtype=np.float64).ravel()
    vb = np.asarray(b, dtype=np.float64).ravel()
    if va.shape != vb.shape or va.size == 0:
        return 0.0

    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    return float(np.dot(va, vb) / (norm_a * norm_b))
