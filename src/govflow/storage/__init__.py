# src/govflow/storage/__init__.py
"""Vector storage backends."""

from .chromadb_vector import ChromaVectorStore, collection_name_for

__all__ = ["ChromaVectorStore", "collection_name_for"]
