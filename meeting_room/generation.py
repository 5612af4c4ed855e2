"""Generation client: persona turns, topic search and topic naming over one AIProvider.

Wraps every provider call in a tenacity retry (transient error kinds only)
and caches successful results in a TTLCache.
"""

import asyncio
import logging
import re
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from tenacity import AsyncRetrying, before_sleep_log, retry_if_exception, stop_after_attempt, wait_exponential

from config.config_loader import CacheConfig, GenerationConfig, RetryConfig
from meeting_room.cache import TTLCache, make_key
from meeting_room.models import DebateContext, GenerationResult, Persona, SearchResult, SourceReference
from meeting_room.persona_engine import DEFAULT_TENDENCY_SCORE, build_prompt, generate_search_keywords, parse_response
from meeting_room.providers.base import RETRYABLE_KINDS, AIProvider, ProviderError, classify_error, format_error
from meeting_room.sources import validate_sources
from meeting_room.topics import build_topic_prompt, clean_topic

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_KEYWORDS = 8
_FALLBACK_KEYWORDS = 5
_MODEL_KEYWORDS = 5
_MAX_RETRY_WAIT_SEC = 30.0
_NUMBERED_RE = re.compile(r"^\d+[.)]")

APOLOGY = "Sorry, I ran into a problem while preparing my response."


@dataclass
class BatchRequest:
    persona: Persona
    context: DebateContext
    search_results: list[SourceReference] | None = None


def _is_retryable(exc: BaseException) -> bool:
    return classify_error(exc) in RETRYABLE_KINDS


def _dedupe(items: list[str]) -> list[str]:
    return list(dict.fromkeys(i for i in items if i))


class GenerationClient:
    """All model traffic for one debate goes through here."""

    def __init__(
        self,
        provider: AIProvider,
        *,
        generation: GenerationConfig | None = None,
        retry: RetryConfig | None = None,
        cache_config: CacheConfig | None = None,
        cache: TTLCache | None = None,
        language: str = "en",
    ) -> None:
        self._provider = provider
        self._generation = generation or GenerationConfig()
        self._retry = retry or RetryConfig()
        self._cache_config = cache_config or CacheConfig()
        self._cache = cache if cache is not None else TTLCache(maxsize=self._cache_config.maxsize)
        self._language = language

    @property
    def provider(self) -> AIProvider:
        return self._provider

    async def _with_retry(self, operation: Callable[[], Awaitable[T]], context: str) -> T:
        """Run operation, retrying transient failures with exponential backoff.

        Raises:
            ProviderError: With a user-facing message once attempts are
                exhausted or the failure is not retryable.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._retry.max_attempts),
            wait=wait_exponential(multiplier=self._retry.base_delay_sec, max=_MAX_RETRY_WAIT_SEC),
            retry=retry_if_exception(_is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await operation()
        except Exception as exc:
            attempts = retrying.statistics.get("attempt_number", 1)
            name = exc.provider_name if isinstance(exc, ProviderError) else self._provider.name()
            raise ProviderError(
                name,
                f"{context} failed after {attempts} attempt(s): {format_error(exc)}",
                classify_error(exc),
            ) from exc

    async def generate_persona_response(
        self,
        persona: Persona,
        context: DebateContext,
        search_results: list[SourceReference] | None = None,
        language: str | None = None,
    ) -> GenerationResult:
        """One debate turn for persona: prompt, grounded call, parse.

        Raises:
            ProviderError: When the call fails after retries.
        """
        key = make_key("persona_response", persona.id, context.topic, len(context.previous_statements))
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Cache hit for %s", key)
            return cached

        prompt = build_prompt(persona, context, search_results, language or self._language)

        async def call() -> GenerationResult:
            response = await self._provider.generate(
                prompt,
                temperature=persona.temperature,
                max_tokens=self._generation.persona_max_tokens,
                grounded=True,
            )
            parsed = parse_response(response.content)
            logger.debug(
                "%s scored %d (structure quality %d)",
                persona.name,
                parsed.tendency_score,
                parsed.structure.quality_score,
            )
            return GenerationResult(
                content=parsed.clean_content,
                tendency_score=parsed.tendency_score,
                reasoning=parsed.reasoning,
                sources=validate_sources(response.sources),
                search_queries=list(response.search_queries),
            )

        result = await self._with_retry(call, f"Generating response for {persona.name}")
        self._cache.set(key, result, self._cache_config.persona_response_ttl_sec)
        return result

    async def analyze_topic_keywords(self, topic: str, personas: list[Persona]) -> list[str]:
        """Persona keywords merged with model-suggested ones. Never raises."""
        key = make_key("topic_keywords", topic, ",".join(p.id for p in personas))
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        base = _dedupe([k for p in personas for k in generate_search_keywords(p, topic)])
        prompt = "\n".join([
            "Analyse the debate topic below and suggest 3-5 search keywords most likely to surface",
            "current, relevant information for these participants.",
            "",
            f"Topic: {topic}",
            "",
            f"Participant expertise: {', '.join(p.identity for p in personas)}",
            "",
            f"Existing keywords: {', '.join(base)}",
            "",
            "Reply with one keyword per line, no numbering or colons.",
        ])

        async def call() -> list[str]:
            response = await self._provider.generate(
                prompt,
                temperature=self._generation.keyword_temperature,
                max_tokens=self._generation.keyword_max_tokens,
                grounded=True,
            )
            suggested = []
            for line in response.content.splitlines():
                line = line.strip().lstrip("-*• ").strip()
                if not line or ":" in line or "：" in line or _NUMBERED_RE.match(line):
                    continue
                suggested.append(line)
            return _dedupe(suggested[:_MODEL_KEYWORDS] + base)[:MAX_KEYWORDS]

        try:
            keywords = await self._with_retry(call, "Analysing topic keywords")
        except ProviderError as exc:
            logger.warning("Keyword analysis failed, using persona keywords: %s", exc)
            return base[:_FALLBACK_KEYWORDS]

        self._cache.set(key, keywords, self._cache_config.topic_keywords_ttl_sec)
        return keywords

    async def search_topic_information(self, topic: str, keywords: list[str]) -> list[SourceReference]:
        """Grounded search for topic; returns validated sources, most relevant first.

        Raises:
            ProviderError: When the search fails after retries.
        """
        key = make_key("topic_search", topic, ",".join(keywords))
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        query = " ".join([topic, *keywords]).strip()
        prompt = (
            f'Search for the latest information and data on "{query}". '
            f"Focus on: {', '.join(keywords)}"
        )

        async def call() -> list[SourceReference]:
            response = await self._provider.generate(
                prompt,
                temperature=self._generation.search_temperature,
                max_tokens=self._generation.search_max_tokens,
                grounded=True,
            )
            return validate_sources(response.sources)

        sources = await self._with_retry(call, "Searching topic information")
        self._cache.set(key, sources, self._cache_config.topic_search_ttl_sec)
        return sources

    async def search_topic(self, topic: str, personas: list[Persona]) -> SearchResult:
        keywords = await self.analyze_topic_keywords(topic, personas)
        results = await self.search_topic_information(topic, keywords)
        logger.info("Topic search found %d source(s) for %r", len(results), topic)
        return SearchResult(query=topic, results=results, timestamp=time.time(), persona_focus=keywords)

    async def generate_topic(self, first_statement: str, context: str | None = None) -> str:
        """Short debate title derived from the opening statement.

        Raises:
            ProviderError: When the call fails after retries.
        """
        prompt = build_topic_prompt(first_statement, context)

        async def call() -> str:
            response = await self._provider.generate(
                prompt,
                temperature=self._generation.topic_temperature,
                max_tokens=self._generation.topic_max_tokens,
            )
            return clean_topic(response.content)

        return await self._with_retry(call, "Generating topic")

    async def generate_batch(self, requests: list[BatchRequest]) -> list[GenerationResult]:
        """Run every request concurrently; failures become placeholder results in place."""
        outcomes = await asyncio.gather(
            *(self.generate_persona_response(r.persona, r.context, r.search_results) for r in requests),
            return_exceptions=True,
        )
        results: list[GenerationResult] = []
        for request, outcome in zip(requests, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning("Batch generation failed for %s: %s", request.persona.name, outcome)
                results.append(GenerationResult(
                    content=APOLOGY,
                    tendency_score=DEFAULT_TENDENCY_SCORE,
                    error=format_error(outcome),
                ))
            else:
                results.append(outcome)
        return results
