"""Shared pytest fixtures."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from config.config_loader import (
    AppConfig,
    CacheConfig,
    DefaultsConfig,
    GenerationConfig,
    InboxConfig,
    ModelConfig,
    RetryConfig,
)
from meeting_room.generation import GenerationClient
from meeting_room.models import MeetingRoom, MeetingSettings, ModelResponse, Persona, SourceReference, Statement
from meeting_room.providers.base import AIProvider


def scored(text: str, score: int) -> str:
    """A model reply ending in an English tendency score line."""
    return f"{text}\n\nTendency score: {score}/10"


def make_response(content: str, provider: str = "mock", sources: list[SourceReference] | None = None) -> ModelResponse:
    return ModelResponse(
        provider=provider,
        model="mock-model",
        content=content,
        latency_sec=0.1,
        token_count=10,
        sources=sources or [],
    )


def make_statement(persona_id: str, score: int, round_number: int = 1, name: str | None = None) -> Statement:
    return Statement(
        id=f"stmt-{persona_id}-{round_number}",
        persona_id=persona_id,
        persona_name=name or persona_id.upper(),
        content=f"{persona_id} speaks in round {round_number}",
        timestamp=0.0,
        round=round_number,
        tendency_score=score,
    )


class MockProvider(AIProvider):
    """Test double AIProvider."""

    def __init__(self, provider_name: str = "mock", response_content: str = "Mock response") -> None:
        self._name = provider_name
        self._response_content = response_content
        # Shadow the class method with an AsyncMock at the instance level.
        # ABC check passes because generate is defined in the class body below.
        self.generate = AsyncMock(  # type: ignore[assignment]
            return_value=make_response(response_content, provider_name)
        )

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "mock-model"

    async def generate(self, prompt: str, *, temperature=None, max_tokens=None, grounded=False) -> ModelResponse:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return make_response(self._response_content, self._name)


def make_client(provider: AIProvider, **kwargs) -> GenerationClient:
    """GenerationClient with zero retry backoff."""
    kwargs.setdefault("retry", RetryConfig(max_attempts=3, base_delay_sec=0))
    return GenerationClient(provider, **kwargs)


@pytest.fixture
def ceo() -> Persona:
    return Persona(
        id="ceo-001",
        name="CEO",
        role="Chief Executive Officer",
        identity="Chief executive with 15 years of corporate leadership experience",
        prime_directive="Maximise long-term company value",
        tone_style="Authoritative and decisive",
        default_bias="Favours innovative proposals",
        rag_focus=["corporate strategy", "market trends"],
        temperature=0.7,
        color="#1f2937",
    )


@pytest.fixture
def cfo() -> Persona:
    return Persona(
        id="cfo-001",
        name="CFO",
        role="Chief Financial Officer",
        identity="Chief financial officer with 20 years in finance",
        prime_directive="Protect shareholder value",
        tone_style="Cautious and data-driven",
        default_bias="Sceptical of heavy capital expenditure",
        rag_focus=["cost analysis", "return on investment", "risk assessment"],
        temperature=0.4,
    )


@pytest.fixture
def cto() -> Persona:
    return Persona(
        id="cto-001",
        name="CTO",
        role="Chief Technology Officer",
        identity="Chief technology officer specialising in architecture",
        prime_directive="Drive feasible technical innovation",
        tone_style="Rational and engineering-minded",
        default_bias="Supports scalable solutions",
        rag_focus=["technology trends"],
        temperature=0.6,
    )


@pytest.fixture
def two_personas(ceo: Persona, cfo: Persona) -> list[Persona]:
    return [ceo, cfo]


@pytest.fixture
def sample_room(two_personas: list[Persona]) -> MeetingRoom:
    return MeetingRoom(
        id="room-1",
        name="Energy",
        topic="Should we move the data centre to renewable energy?",
        participants=two_personas,
        settings=MeetingSettings(max_rounds=3, consensus_threshold=0.7, timeout_per_round=None),
    )


@pytest.fixture
def sample_model_config() -> ModelConfig:
    return ModelConfig(
        name="test_model",
        sdk="test",
        model="test-model-1",
        api_key_env="TEST_API_KEY",
        timeout_sec=30,
        max_tokens=800,
        base_url=None,
    )


@pytest.fixture
def sample_app_config(tmp_path: Path, ceo: Persona, cfo: Persona, sample_model_config: ModelConfig) -> AppConfig:
    return AppConfig(
        defaults=DefaultsConfig(
            provider="gemini",
            language="en",
            output_dir=tmp_path / "output",
            state_file=tmp_path / "state.json",
            turn_delay_sec=0,
            default_panel=["ceo-001", "cfo-001"],
        ),
        models={"gemini": sample_model_config},
        meeting=MeetingSettings(),
        generation=GenerationConfig(),
        retry=RetryConfig(base_delay_sec=0),
        cache=CacheConfig(),
        inbox=InboxConfig(dir=tmp_path / "inbox", archive_dir=tmp_path / "inbox" / "archive"),
        personas=[ceo, cfo],
        available_providers={"gemini"},
    )


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider()
