"""Gemini provider using google-genai SDK with native async and Google Search grounding."""

import asyncio
import logging
import os
import time

from google import genai
from google.genai import types as genai_types

from config.config_loader import ModelConfig
from meeting_room.models import ModelResponse
from meeting_room.providers.base import AIProvider, ErrorKind, ProviderError, classify_error
from meeting_room.sources import add_inline_citations, extract_search_queries, process_grounding_metadata

logger = logging.getLogger(__name__)


class GeminiProvider(AIProvider):
    """Google Gemini provider via google-genai SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}", ErrorKind.AUTH)
        self._client = genai.Client(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    def _build_config(
        self,
        temperature: float | None,
        max_tokens: int | None,
        grounded: bool,
    ) -> genai_types.GenerateContentConfig:
        tools = [genai_types.Tool(google_search=genai_types.GoogleSearch())] if grounded else None
        return genai_types.GenerateContentConfig(
            temperature=temperature,
            max_output_tokens=max_tokens or self._config.max_tokens,
            top_p=self._config.top_p,
            top_k=self._config.top_k,
            tools=tools,
        )

    async def generate(
        self,
        prompt: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
        grounded: bool = False,
    ) -> ModelResponse:
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=self._config.model,
                    contents=prompt,
                    config=self._build_config(temperature, max_tokens, grounded),
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(
                self._config.name, f"Request timed out after {self._config.timeout_sec}s", ErrorKind.TIMEOUT,
            ) from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}", classify_error(exc)) from exc

        latency = time.monotonic() - start

        if not response.text:
            raise ProviderError(self._config.name, "Empty response text", ErrorKind.EMPTY_RESPONSE)

        content = response.text
        sources = []
        queries: list[str] = []
        metadata = None
        if response.candidates:
            metadata = response.candidates[0].grounding_metadata
        if metadata is not None:
            sources = process_grounding_metadata(metadata)
            queries = extract_search_queries(metadata)
            content = add_inline_citations(content, metadata)

        token_count: int | None = None
        if response.usage_metadata:
            token_count = response.usage_metadata.total_token_count

        logger.info(
            "Gemini call: %.2fs, %s tokens, %d sources",
            latency,
            token_count,
            len(sources),
        )

        return ModelResponse(
            provider=self._config.name,
            model=self._config.model,
            content=content,
            latency_sec=latency,
            token_count=token_count,
            sources=sources,
            search_queries=queries,
        )
