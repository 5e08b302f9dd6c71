# src/govflow/retrieval/__init__.py
"""Chunking and retrieval-augmented context assembly."""

from .chunking import LineWindowChunker, walk_source_tree
from .retriever import TRUNCATION_MARKER, ContextRetriever, truncate_context

__all__ = [
    "ContextRetriever",
    "LineWindowChunker",
    "TRUNCATION_MARKER",
    "truncate_context",
    "walk_source_tree",
]
