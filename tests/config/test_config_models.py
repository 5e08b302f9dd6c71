# tests/config/test_config_models.py
"""
Tests for govflow configuration models and load_config.

Covers model defaults, the packaged default_config.toml, and the
precedence of TOML files, dictionaries and environment variables.
"""

import os
import tomllib

import pytest

from govflow.config import (
    DEFAULT_CONFIG_PATH,
    GenerationConfig,
    GovFlowConfig,
    RetrievalConfig,
    VectorStoreConfig,
    load_config,
)
from govflow.exceptions import ConfigError


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Hide any GOVFLOW_* variables of the developer running the tests."""
    for name in list(os.environ):
        if name.startswith("GOVFLOW_"):
            monkeypatch.delenv(name)


@pytest.fixture
def packaged_defaults():
    with open(DEFAULT_CONFIG_PATH, "rb") as f:
        return tomllib.load(f)


# =============================================================================
# MODEL DEFAULTS
# =============================================================================


class TestModelDefaults:
    """Defaults of the configuration models."""

    def test_root_defaults(self):
        config = GovFlowConfig()
        assert config.ollama.max_retries == 1
        assert config.embedding.model == "nomic-embed-text"
        assert config.governance.user_actions_per_hour == 100
        assert config.audit.retention_days == 90
        assert config.workflow.remote == "origin"

    def test_builtin_profiles(self):
        profiles = GenerationConfig().profiles
        assert set(profiles) >= {"code_generation", "chat", "analysis", "rag"}
        assert profiles["code_generation"].temperature == 0.1

    def test_builtin_profiles_kept_when_overridden(self):
        """Supplying one profile does not remove the others."""
        config = GenerationConfig(profiles={"chat": {"model": "llama3", "temperature": 0.9}})
        assert config.profiles["chat"].model == "llama3"
        assert "code_generation" in config.profiles
        assert "rag" in config.profiles

    def test_extensions_normalized(self):
        config = RetrievalConfig(include_extensions=["TS", ".Feature"])
        assert config.include_extensions == [".ts", ".feature"]

    def test_batch_size_capped(self):
        with pytest.raises(ValueError):
            VectorStoreConfig(upsert_batch_size=51)


# =============================================================================
# LOAD_CONFIG
# =============================================================================


class TestLoadConfig:
    """Layering performed by load_config."""

    def test_no_sources(self):
        config = load_config()
        assert config.retrieval.chunk_lines == 20

    def test_packaged_defaults_parse(self, packaged_defaults):
        config = load_config(defaults=packaged_defaults)
        assert config.vector_store.mode == "persistent"
        assert config.logging["file_mode"] == "per_run"
        assert config.generation.profiles["analysis"].max_tokens == 3072

    def test_dict_overrides_defaults(self, packaged_defaults):
        config = load_config(
            config_dict={"retrieval": {"default_top_k": 8}},
            defaults=packaged_defaults,
        )
        assert config.retrieval.default_top_k == 8
        assert config.retrieval.chunk_lines == 20

    def test_govflow_table_unwrapped(self):
        config = load_config(config_dict={"govflow": {"workflow": {"push": False}}})
        assert config.workflow.push is False

    def test_file_then_dict(self, tmp_path):
        """config_dict wins over the TOML file, which wins over defaults."""
        path = tmp_path / "govflow.toml"
        path.write_text(
            "[govflow.retrieval]\nchunk_lines = 10\ndefault_top_k = 3\n",
            encoding="utf-8",
        )
        config = load_config(config_dict={"retrieval": {"default_top_k": 7}}, config_path=path)
        assert config.retrieval.chunk_lines == 10
        assert config.retrieval.default_top_k == 7

    def test_file_from_environment_variable(self, tmp_path, monkeypatch):
        path = tmp_path / "env.toml"
        path.write_text("[audit]\nretention_days = 30\n", encoding="utf-8")
        monkeypatch.setenv("GOVFLOW_CONFIG", str(path))
        config = load_config()
        assert config.audit.retention_days == 30

    def test_env_overrides_win(self, monkeypatch):
        monkeypatch.setenv("GOVFLOW_OLLAMA__HOST", "http://env:11434")
        monkeypatch.setenv("GOVFLOW_RETRIEVAL__CHUNK_LINES", "15")
        config = load_config(config_dict={"ollama": {"host": "http://dict:11434"}})
        assert config.ollama.host == "http://env:11434"
        assert config.retrieval.chunk_lines == 15

    def test_layers_deep_merge(self, tmp_path, monkeypatch, packaged_defaults):
        """Each layer only replaces the keys it names."""
        path = tmp_path / "govflow.toml"
        path.write_text(
            "[govflow.generation.profiles.chat]\nmodel = \"llama3\"\n\n[govflow.retrieval]\nchunk_lines = 12\n",
            encoding="utf-8",
        )
        monkeypatch.setenv("GOVFLOW_RETRIEVAL__DEFAULT_TOP_K", "9")
        config = load_config(
            config_dict={"generation": {"profiles": {"chat": {"temperature": 0.5}}}},
            config_path=path,
            defaults=packaged_defaults,
        )
        chat = config.generation.profiles["chat"]
        assert chat.model == "llama3"
        assert chat.temperature == 0.5
        assert chat.max_tokens == 2048
        assert config.retrieval.chunk_lines == 12
        assert config.retrieval.default_top_k == 9
        assert config.vector_store.collection_prefix == "govflow"
        assert type(config) is GovFlowConfig

    def test_unrelated_env_ignored(self, monkeypatch):
        monkeypatch.setenv("GOVFLOW_CONFIGURED", "1")
        config = load_config()
        assert config.ollama.host is None

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(config_path=tmp_path / "nope.toml")

    def test_invalid_toml(self, tmp_path):
        path = tmp_path / "bad.toml"
        path.write_text("[retrieval\nchunk_lines = ", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(config_path=path)

    def test_invalid_value(self):
        with pytest.raises(ConfigError):
            load_config(config_dict={"vector_store": {"mode": "cloud"}})
