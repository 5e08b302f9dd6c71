# src/govflow/embedding/ollama.py
"""
Ollama embedding model for govflow retrieval.

Embeds one text per call through the official ``ollama`` library; there
is no batching.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx
from ollama import AsyncClient, ResponseError

from ..config import EmbeddingConfig
from ..exceptions import EmbeddingError

logger = logging.getLogger(__name__)


class OllamaEmbedding:
    """
    Generates text embeddings using a local Ollama instance.

    The client is created by :meth:`initialize` unless one is injected.
    """

    def __init__(self, config: Optional[EmbeddingConfig] = None, client: Optional[AsyncClient] = None):
        self._config = config or EmbeddingConfig()
        self._client = client
        logger.info(f"OllamaEmbedding configured with model '{self._config.model}'. "
                    f"Host: {self._config.host or 'default'}.")

    @property
    def model_name(self) -> str:
        return self._config.model

    async def initialize(self) -> None:
        if self._client is not None:
            logger.debug("OllamaEmbedding client already initialized.")
            return
        client_args: Dict[str, Any] = {"timeout": self._config.timeout}
        if self._config.host:
            client_args["host"] = self._config.host
        self._client = AsyncClient(**client_args)
        logger.info("AsyncOllama client for embeddings initialized successfully.")

    async def generate_embedding(self, text: str) -> List[float]:
        """
        Embed a single text.

        Raises:
            EmbeddingError: If the client is missing, the text is empty, the
                call fails or times out, or no vector comes back.
        """
        model = self._config.model
        if self._client is None:
            raise EmbeddingError(model_name=model, message="Ollama client not initialized. Call initialize() first.")
        if not text or not text.strip():
            raise EmbeddingError(model_name=model, message="Input text cannot be empty for Ollama embeddings.")

        try:
            response = await asyncio.wait_for(
                self._client.embeddings(model=model, prompt=text),
                timeout=self._config.timeout,
            )
        except ResponseError as e:
            error_detail = getattr(e, "error", str(e))
            if "not found" in str(error_detail).lower():
                raise EmbeddingError(model_name=model, message=f"Model '{model}' not found locally. Pull it with 'ollama pull {model}'.")
            raise EmbeddingError(model_name=model, message=f"Ollama API Error ({e.status_code}): {error_detail}")
        except asyncio.TimeoutError:
            raise EmbeddingError(model_name=model, message="Request timed out.")
        except (httpx.HTTPError, ConnectionError) as e:
            raise EmbeddingError(model_name=model, message=f"Could not connect to Ollama: {e}")

        embedding = response.get("embedding") if response else None
        if not embedding:
            logger.error(f"Ollama embedding API returned no embedding data for model '{model}'.")
            raise EmbeddingError(model_name=model, message="API returned no embedding data.")
        return [float(x) for x in embedding]

    async def close(self) -> None:
        if self._client is None:
            return
        inner = getattr(self._client, "_client", None)
        if isinstance(inner, httpx.AsyncClient):
            await inner.aclose()
        self._client = None
