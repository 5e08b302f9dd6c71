# tests/providers/test_ollama_client.py
"""
Tests for the Ollama GenerationClient.

The ollama AsyncClient is replaced with an AsyncMock; no running Ollama
service is needed.
"""

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest
from ollama import ResponseError

from govflow.config import GenerationConfig, OllamaConfig
from govflow.exceptions import ConfigError, GenerationError
from govflow.models import SamplingOverrides
from govflow.providers import GenerationClient


def _client(mock: AsyncMock, retries: int = 1) -> GenerationClient:
    return GenerationClient(OllamaConfig(max_retries=retries, timeout=5.0), GenerationConfig(), client=mock)


@pytest.fixture
def ollama_mock():
    mock = AsyncMock()
    mock.generate.return_value = {"response": "  test('a', () => {});  ", "eval_count": 17}
    return mock


# =============================================================================
# GENERATE
# =============================================================================


class TestGenerate:
    """Single completion calls."""

    @pytest.mark.asyncio
    async def test_success(self, ollama_mock):
        result = await _client(ollama_mock).generate("write a test", profile="code_generation")
        assert result.text == "test('a', () => {});"
        assert result.tokens_used == 17
        assert result.model == "deepseek-coder:6.7b"
        kwargs = ollama_mock.generate.call_args.kwargs
        assert kwargs["prompt"] == "write a test"
        assert kwargs["stream"] is False
        assert kwargs["options"]["temperature"] == 0.1
        assert kwargs["options"]["num_predict"] == 4096

    @pytest.mark.asyncio
    async def test_overrides_applied(self, ollama_mock):
        overrides = SamplingOverrides(model="llama3", temperature=0.9, max_tokens=64)
        result = await _client(ollama_mock).generate("hi", overrides=overrides, profile="chat")
        kwargs = ollama_mock.generate.call_args.kwargs
        assert kwargs["model"] == "llama3"
        assert kwargs["options"]["temperature"] == 0.9
        assert kwargs["options"]["num_predict"] == 64
        assert kwargs["options"]["top_k"] == 40
        assert result.model == "llama3"

    @pytest.mark.asyncio
    async def test_missing_eval_count(self, ollama_mock):
        ollama_mock.generate.return_value = {"response": "ok"}
        assert (await _client(ollama_mock).generate("hi")).tokens_used == 0

    @pytest.mark.asyncio
    async def test_empty_response_is_failure(self, ollama_mock):
        ollama_mock.generate.return_value = {"response": "   "}
        with pytest.raises(GenerationError, match="empty completion"):
            await _client(ollama_mock, retries=0).generate("hi")

    @pytest.mark.asyncio
    async def test_retry_then_success(self, ollama_mock):
        ollama_mock.generate.side_effect = [
            httpx.ConnectError("refused"),
            {"response": "second try", "eval_count": 3},
        ]
        result = await _client(ollama_mock, retries=1).generate("hi")
        assert result.text == "second try"
        assert ollama_mock.generate.await_count == 2

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, ollama_mock):
        ollama_mock.generate.side_effect = httpx.ConnectError("refused")
        with pytest.raises(GenerationError) as exc_info:
            await _client(ollama_mock, retries=1).generate("hi")
        assert exc_info.value.code == "GENERATION_FAILED"
        assert ollama_mock.generate.await_count == 2

    @pytest.mark.asyncio
    async def test_last_failure_is_raised(self, ollama_mock):
        ollama_mock.generate.side_effect = [httpx.ConnectError("refused"), {"response": ""}]
        with pytest.raises(GenerationError, match="empty completion"):
            await _client(ollama_mock, retries=1).generate("hi")
        assert ollama_mock.generate.await_count == 2

    @pytest.mark.asyncio
    async def test_model_not_found(self, ollama_mock):
        ollama_mock.generate.side_effect = ResponseError("model 'x' not found", 404)
        with pytest.raises(GenerationError, match="ollama pull"):
            await _client(ollama_mock, retries=0).generate("hi")

    @pytest.mark.asyncio
    async def test_timeout_is_failure(self, ollama_mock):
        async def slow(**kwargs):
            await asyncio.sleep(1)

        ollama_mock.generate.side_effect = slow
        with pytest.raises(GenerationError, match="timed out"):
            await _client(ollama_mock, retries=0).generate("hi", timeout=0.01)

    @pytest.mark.asyncio
    async def test_uninitialized(self):
        with pytest.raises(GenerationError):
            await GenerationClient().generate("hi")


class TestProfiles:
    """Profile lookup."""

    def test_unknown_profile(self):
        with pytest.raises(ConfigError):
            GenerationClient().profile("poetry")

    def test_default_profile(self):
        assert GenerationClient().profile().temperature == 0.1

    def test_unknown_default_profile(self):
        with pytest.raises(ConfigError):
            GenerationClient(generation_config=GenerationConfig(default_profile="missing"))


# =============================================================================
# READINESS
# =============================================================================


class TestReadiness:
    """Model listing, pulling and health."""

    @pytest.mark.asyncio
    async def test_list_models(self, ollama_mock):
        ollama_mock.list.return_value = {"models": [{"model": "deepseek-coder:6.7b"}, {"name": "nomic-embed-text"}]}
        client = _client(ollama_mock)
        assert await client.list_models() == ["deepseek-coder:6.7b", "nomic-embed-text"]
        assert await client.is_model_available() is True
        assert await client.is_model_available("llama3") is False

    @pytest.mark.asyncio
    async def test_pull_model(self, ollama_mock):
        await _client(ollama_mock).pull_model("llama3")
        ollama_mock.pull.assert_awaited_once_with("llama3")

    @pytest.mark.asyncio
    async def test_health_check_unreachable(self, ollama_mock):
        ollama_mock.list.side_effect = httpx.ConnectError("refused")
        health = await _client(ollama_mock).health_check()
        assert health["healthy"] is False
        assert "error" in health

    @pytest.mark.asyncio
    async def test_health_check_ok(self, ollama_mock):
        ollama_mock.list.return_value = {"models": [{"model": "other"}]}
        health = await _client(ollama_mock).health_check()
        assert health["healthy"] is True
        assert health["model_available"] is False

    @pytest.mark.asyncio
    async def test_close_releases_client(self, ollama_mock):
        client = _client(ollama_mock)
        await client.close()
        with pytest.raises(GenerationError):
            _ = client.client
