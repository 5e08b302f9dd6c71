# src/govflow/embedding/__init__.py
"""Embedding models used by the context retriever."""

from .ollama import OllamaEmbedding

__all__ = ["OllamaEmbedding"]
