"""Persistence layer for the search index."""

from .vector import IndexRecord, VectorStore

__all__ = ["IndexRecord", "VectorStore"]
