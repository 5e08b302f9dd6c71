# src/govflow/config/models.py
"""
Configuration models for govflow.

The configuration hierarchy:
    GovFlowConfig (root)
    ├── OllamaConfig        - Inference service connection and retries
    ├── GenerationConfig    - Named sampling profiles
    ├── EmbeddingConfig     - Embedding model settings
    ├── VectorStoreConfig   - ChromaDB client settings
    ├── RetrievalConfig     - Chunking and context assembly limits
    ├── GovernanceConfig    - Rate limits and default tenant
    ├── AuditConfig         - Audit trail persistence
    ├── WorkflowConfig      - Git workflow settings
    └── logging             - Passed to govflow.logging_config

Usage:
    >>> from govflow.config import load_config
    >>> config = load_config(config_dict={"retrieval": {"default_top_k": 8}})
    >>> config.retrieval.chunk_lines
    20
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Tuple, Type

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    InitSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    SettingsError,
)

from ..exceptions import ConfigError
from ..models import ResourceLimits

DEFAULT_CONFIG_PATH = Path(__file__).parent / "default_config.toml"
ENV_PREFIX = "GOVFLOW_"

# =============================================================================
# INFERENCE
# =============================================================================


class OllamaConfig(BaseModel):
    """Connection to the local Ollama inference service."""

    host: Optional[str] = Field(
        default=None,
        description="Ollama base URL; None uses the library default (http://localhost:11434)",
    )
    timeout: float = Field(default=120.0, gt=0, description="Per-call timeout in seconds")
    max_retries: int = Field(
        default=1,
        ge=0,
        le=5,
        description="Extra attempts after a failed generation call",
    )


class GenerationProfile(BaseModel):
    model: str = "deepseek-coder:6.7b"
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    top_p: float = Field(default=0.9, ge=0.0, le=1.0)
    top_k: int = Field(default=40, ge=0)
    repeat_penalty: float = Field(default=1.1, ge=0.0)
    max_tokens: int = Field(default=2048, gt=0)
    context_window: int = Field(default=32768, gt=0)


def _default_profiles() -> Dict[str, GenerationProfile]:
    return {
        "code_generation": GenerationProfile(temperature=0.1, max_tokens=4096),
        "chat": GenerationProfile(temperature=0.7, max_tokens=2048),
        "analysis": GenerationProfile(temperature=0.3, max_tokens=3072),
        "rag": GenerationProfile(temperature=0.2, max_tokens=2048),
    }


class GenerationConfig(BaseModel):
    default_profile: str = "code_generation"
    profiles: Dict[str, GenerationProfile] = Field(default_factory=_default_profiles)

    @field_validator("profiles")
    @classmethod
    def _keep_builtin_profiles(cls, v: Dict[str, GenerationProfile]) -> Dict[str, GenerationProfile]:
        merged = _default_profiles()
        merged.update(v)
        return merged


# =============================================================================
# RETRIEVAL
# =============================================================================


class EmbeddingConfig(BaseModel):
    model: str = "nomic-embed-text"
    host: Optional[str] = None
    timeout: float = Field(default=60.0, gt=0)


class VectorStoreConfig(BaseModel):
    """ChromaDB client settings. ``mode`` picks the client type."""

    mode: Literal["persistent", "memory", "http"] = "persistent"
    path: str = Field(
        default="~/.local/share/govflow/chroma",
        description="Storage directory for mode='persistent'. Tilde expansion is applied.",
    )
    host: str = "localhost"
    port: int = Field(default=8000, gt=0, le=65535)
    collection_prefix: str = "govflow"
    upsert_batch_size: int = Field(default=50, ge=1, le=50)
    timeout: float = Field(default=60.0, gt=0)


class RetrievalConfig(BaseModel):
    chunk_lines: int = Field(default=20, ge=1)
    max_context_chars: int = Field(default=100_000, gt=0)
    default_top_k: int = Field(default=5, ge=1)
    max_file_bytes: int = Field(default=1_000_000, gt=0)
    include_extensions: List[str] = Field(
        default_factory=lambda: [
            ".ts", ".js", ".tsx", ".jsx", ".py", ".feature", ".json",
            ".md", ".txt", ".yml", ".yaml", ".toml", ".html", ".css",
        ]
    )
    excluded_dirs: List[str] = Field(
        default_factory=lambda: [
            "node_modules", ".git", "dist", "build", "coverage", "out",
            "__pycache__", ".venv", "venv", ".next", "test-results",
            "playwright-report", "allure-results",
        ]
    )

    @field_validator("include_extensions")
    @classmethod
    def _normalize_extensions(cls, v: List[str]) -> List[str]:
        return [ext if ext.startswith(".") else f".{ext}" for ext in (e.lower() for e in v)]


# =============================================================================
# GOVERNANCE
# =============================================================================


class GovernanceConfig(BaseModel):
    user_actions_per_hour: int = Field(
        default=100,
        ge=1,
        description="Per-(tenant, user) sliding-hour action ceiling",
    )
    default_tenant_id: str = "default"
    default_tenant_limits: ResourceLimits = Field(default_factory=ResourceLimits)


class AuditConfig(BaseModel):
    enabled: bool = True
    directory: Optional[str] = Field(
        default="~/.local/share/govflow/audit",
        description="Directory for audit-YYYY-MM-DD.jsonl files; None keeps entries in memory only",
    )
    retention_days: int = Field(default=90, ge=1)
    redact_keys: List[str] = Field(
        default_factory=lambda: ["password", "api_key", "apikey", "secret", "token", "authorization"]
    )


class WorkflowConfig(BaseModel):
    repo_path: str = Field(default=".", description="Working tree the workflows commit to")
    automation_dir: str = Field(default="automation", description="Test framework root, relative to repo_path")
    remote: str = "origin"
    push: bool = True
    git_timeout: float = Field(default=60.0, gt=0)
    run_timeout: float = Field(default=600.0, gt=0, description="Seconds allowed for a test run command")


# =============================================================================
# ROOT
# =============================================================================


class GovFlowConfig(BaseSettings):
    """
    Root settings.

    Environment variables use the ``GOVFLOW_`` prefix and ``__`` between
    nesting levels, e.g. ``GOVFLOW_OLLAMA__HOST`` or
    ``GOVFLOW_RETRIEVAL__CHUNK_LINES``.
    """

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, env_nested_delimiter="__", extra="ignore")

    ollama: OllamaConfig = Field(default_factory=OllamaConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    vector_store: VectorStoreConfig = Field(default_factory=VectorStoreConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    governance: GovernanceConfig = Field(default_factory=GovernanceConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)
    workflow: WorkflowConfig = Field(default_factory=WorkflowConfig)
    logging: Dict[str, Any] = Field(default_factory=dict)


def _govflow_table(data: Dict[str, Any]) -> Dict[str, Any]:
    return dict(data.get("govflow", data))


def _read_toml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}")


def _layered_settings(tables: List[Dict[str, Any]]) -> Type[GovFlowConfig]:
    """
    GovFlowConfig whose sources are, highest first: environment, init
    arguments, then ``tables`` from last to first.
    """

    class LayeredConfig(GovFlowConfig):
        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls: Type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,
            file_secret_settings: PydanticBaseSettingsSource,
        ) -> Tuple[PydanticBaseSettingsSource, ...]:
            files = tuple(InitSettingsSource(settings_cls, table) for table in reversed(tables))
            return (env_settings, init_settings) + files

    return LayeredConfig


def load_config(
    config_dict: Optional[Dict[str, Any]] = None,
    config_path: Optional[Path | str] = None,
    defaults: Optional[Dict[str, Any]] = None,
) -> GovFlowConfig:
    """
    Load govflow configuration from a dictionary and/or a TOML file.

    Precedence (lowest to highest): model defaults, ``defaults`` (the
    packaged default_config.toml when loaded by the facade), TOML file (explicit
    ``config_path`` or the ``GOVFLOW_CONFIG`` variable), ``config_dict``,
    ``GOVFLOW_SECTION__KEY`` environment variables. Layers are deep-merged
    by pydantic-settings. A ``[govflow]`` table is unwrapped when present.

    Raises:
        ConfigError: If the file is missing or validation fails.
    """
    tables: List[Dict[str, Any]] = []
    if defaults:
        tables.append(_govflow_table(defaults))

    path_value = config_path or os.environ.get("GOVFLOW_CONFIG")
    if path_value:
        tables.append(_govflow_table(_read_toml(Path(path_value).expanduser())))

    overrides = _govflow_table(config_dict) if config_dict else {}
    try:
        layered = _layered_settings(tables)(**overrides)
        return GovFlowConfig.model_validate(layered.model_dump())
    except (ValidationError, SettingsError) as e:
        raise ConfigError(f"Invalid govflow configuration: {e}")
