# src/govflow/providers/__init__.py
"""Inference service clients."""

from .ollama_client import GenerationClient

__all__ = ["GenerationClient"]
