# src/govflow/providers/ollama_client.py
"""
Text generation client for a local Ollama instance.

Wraps one inference call per :meth:`GenerationClient.generate`, layering
sampling overrides over a named profile (``code_generation``, ``chat``,
``analysis``, ``rag``).  Service errors, timeouts and empty completions all
surface as :class:`~govflow.exceptions.GenerationError` so callers never
mistake a partial response for success.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

import httpx
from ollama import AsyncClient, ResponseError

from ..config import GenerationConfig, GenerationProfile, OllamaConfig
from ..exceptions import ConfigError, GenerationError
from ..models import GenerationResult, SamplingOverrides

logger = logging.getLogger(__name__)

PROVIDER_NAME = "ollama"


class GenerationClient:
    """
    Request/response client around ``ollama.AsyncClient.generate``.

    ``client`` may be injected (tests pass an ``AsyncMock``); otherwise one
    is created lazily by :meth:`initialize`.
    """

    def __init__(
        self,
        ollama_config: Optional[OllamaConfig] = None,
        generation_config: Optional[GenerationConfig] = None,
        client: Optional[AsyncClient] = None,
    ):
        self._ollama = ollama_config or OllamaConfig()
        self._generation = generation_config or GenerationConfig()
        self._client = client
        if self._generation.default_profile not in self._generation.profiles:
            raise ConfigError(f"Unknown default generation profile '{self._generation.default_profile}'")

    async def initialize(self) -> None:
        if self._client is not None:
            return
        client_args: Dict[str, Any] = {"timeout": self._ollama.timeout}
        if self._ollama.host:
            client_args["host"] = self._ollama.host
        self._client = AsyncClient(**client_args)
        logger.info(f"Ollama generation client initialized. Host: {self._ollama.host or 'default'}.")

    @property
    def client(self) -> AsyncClient:
        if self._client is None:
            raise GenerationError(PROVIDER_NAME, "Ollama client not initialized. Call initialize() first.")
        return self._client

    def profile(self, name: Optional[str] = None) -> GenerationProfile:
        key = name or self._generation.default_profile
        try:
            return self._generation.profiles[key]
        except KeyError:
            raise ConfigError(f"Unknown generation profile '{key}'")

    def build_options(self, profile: GenerationProfile, overrides: Optional[SamplingOverrides] = None) -> Dict[str, Any]:
        """Map profile + overrides onto Ollama's ``options`` keys."""
        merged = profile.model_copy(update=overrides.model_dump(exclude_none=True)) if overrides else profile
        return {
            "temperature": merged.temperature,
            "top_p": merged.top_p,
            "top_k": merged.top_k,
            "repeat_penalty": merged.repeat_penalty,
            "num_predict": merged.max_tokens,
            "num_ctx": merged.context_window,
        }

    async def generate(
        self,
        prompt: str,
        overrides: Optional[SamplingOverrides] = None,
        profile: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> GenerationResult:
        """
        Run one completion.

        Args:
            prompt: Full prompt text.
            overrides: Tenant/request sampling overrides applied over the profile.
            profile: Profile name; defaults to the configured default profile.
            timeout: Seconds before the call counts as failed; defaults to
                the Ollama config timeout.

        Raises:
            GenerationError: On service error, timeout or empty output, after
                the configured number of retries.
        """
        selected = self.profile(profile)
        model = (overrides.model if overrides and overrides.model else None) or selected.model
        options = self.build_options(selected, overrides)
        limit = timeout if timeout is not None else self._ollama.timeout
        attempts = 1 + self._ollama.max_retries

        attempt = 1
        while True:
            try:
                return await self._generate_once(prompt, model, options, limit)
            except GenerationError as e:
                if attempt >= attempts:
                    raise
                logger.warning(f"Generation attempt {attempt}/{attempts} failed ({e}); retrying.")
            attempt += 1

    async def _generate_once(self, prompt: str, model: str, options: Dict[str, Any], timeout: float) -> GenerationResult:
        started = time.perf_counter()
        logger.debug(f"Sending generation request to Ollama: model={model}, prompt_chars={len(prompt)}")
        try:
            response = await asyncio.wait_for(
                self.client.generate(model=model, prompt=prompt, options=options, stream=False),
                timeout=timeout,
            )
        except ResponseError as e:
            error_detail = getattr(e, "error", str(e))
            if "not found" in str(error_detail).lower():
                raise GenerationError(
                    PROVIDER_NAME, f"Model '{model}' not found. Pull it with 'ollama pull {model}'.", model=model
                )
            raise GenerationError(PROVIDER_NAME, f"Ollama API Error ({e.status_code}): {error_detail}", model=model)
        except asyncio.TimeoutError:
            raise GenerationError(PROVIDER_NAME, f"Request timed out after {timeout}s.", model=model)
        except (httpx.HTTPError, ConnectionError) as e:
            raise GenerationError(
                PROVIDER_NAME, f"Could not connect to Ollama at {self._ollama.host or 'default address'}: {e}", model=model
            )

        text = (response["response"] or "").strip() if response else ""
        if not text:
            raise GenerationError(PROVIDER_NAME, "Model returned an empty completion.", model=model)

        latency_ms = (time.perf_counter() - started) * 1000
        tokens = response.get("eval_count") or 0
        logger.debug(f"Generation finished: model={model}, tokens={tokens}, latency={latency_ms:.0f}ms")
        return GenerationResult(text=text, tokens_used=int(tokens), latency_ms=latency_ms, model=model)

    # ------------------------------------------------------------------
    # Readiness helpers
    # ------------------------------------------------------------------

    async def list_models(self) -> List[str]:
        try:
            response = await self.client.list()
        except (ResponseError, httpx.HTTPError, ConnectionError) as e:
            raise GenerationError(PROVIDER_NAME, f"Failed to list models: {e}")
        names = []
        for entry in response.get("models", []) or []:
            name = entry.get("model") or entry.get("name")
            if name:
                names.append(name)
        return names

    async def is_model_available(self, model: Optional[str] = None) -> bool:
        wanted = model or self.profile().model
        return wanted in await self.list_models()

    async def pull_model(self, model: Optional[str] = None) -> None:
        wanted = model or self.profile().model
        logger.info(f"Pulling Ollama model '{wanted}'...")
        try:
            await self.client.pull(wanted)
        except (ResponseError, httpx.HTTPError, ConnectionError) as e:
            raise GenerationError(PROVIDER_NAME, f"Failed to pull model '{wanted}': {e}", model=wanted)

    async def health_check(self) -> Dict[str, Any]:
        """Report service reachability and whether the default model is present."""
        model = self.profile().model
        try:
            models = await self.list_models()
        except GenerationError as e:
            return {"healthy": False, "model": model, "model_available": False, "error": str(e)}
        return {"healthy": True, "model": model, "model_available": model in models, "models": models}

    async def close(self) -> None:
        if self._client is None:
            return
        inner = getattr(self._client, "_client", None)
        if isinstance(inner, httpx.AsyncClient):
            await inner.aclose()
            logger.debug("Ollama generation client closed.")
        self._client = None
