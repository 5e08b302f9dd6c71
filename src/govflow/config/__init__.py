# src/govflow/config/__init__.py
"""
Configuration package for govflow.

Settings are pydantic-settings models with defaults; TOML files (tomllib),
a dictionary and ``GOVFLOW_SECTION__KEY`` environment variables layer over them.

Configuration files:
    - default_config.toml: Packaged reference defaults
    - Custom config: ``load_config(config_path=...)`` or ``GOVFLOW_CONFIG``
"""

from .models import (
    DEFAULT_CONFIG_PATH,
    AuditConfig,
    EmbeddingConfig,
    GenerationConfig,
    GenerationProfile,
    GovernanceConfig,
    GovFlowConfig,
    OllamaConfig,
    RetrievalConfig,
    VectorStoreConfig,
    WorkflowConfig,
    load_config,
)

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "AuditConfig",
    "EmbeddingConfig",
    "GenerationConfig",
    "GenerationProfile",
    "GovernanceConfig",
    "GovFlowConfig",
    "OllamaConfig",
    "RetrievalConfig",
    "VectorStoreConfig",
    "WorkflowConfig",
    "load_config",
]
