"""Pure dataclasses for the meeting room debate pipeline. No logic.

Classes that end up in the state file carry a pydantic config so storage can
validate and dump them with camelCase keys.
"""

from dataclasses import dataclass, field
from typing import Any

from pydantic import ConfigDict, with_config
from pydantic.alias_generators import to_camel

PERSISTED = ConfigDict(alias_generator=to_camel, populate_by_name=True)


@with_config(PERSISTED)
@dataclass
class Persona:
    id: str
    name: str
    role: str
    identity: str = ""
    prime_directive: str = ""
    tone_style: str = ""
    default_bias: str = ""
    rag_focus: list[str] = field(default_factory=list)
    temperature: float = 0.7     # generation randomness, 0.1-1.0
    system_prompt: str = ""
    color: str | None = None
    is_active: bool = False


@with_config(PERSISTED)
@dataclass
class SourceReference:
    url: str
    title: str
    snippet: str = ""
    relevance_score: float | None = None


@with_config(PERSISTED)
@dataclass
class SearchResult:
    """One grounding batch attached to a room."""

    query: str
    results: list[SourceReference] = field(default_factory=list)
    timestamp: float = 0.0
    persona_focus: list[str] = field(default_factory=list)


@with_config(PERSISTED)
@dataclass
class Reasoning:
    analyze: str = ""
    critique: str = ""
    strategy: str = ""


@with_config(PERSISTED)
@dataclass
class Statement:
    id: str
    persona_id: str
    persona_name: str
    content: str
    timestamp: float
    round: int                   # 1-indexed
    tendency_score: int          # 1-10
    sources: list[SourceReference] = field(default_factory=list)
    reasoning: Reasoning | None = None
    tags: list[str] = field(default_factory=list)


@with_config(PERSISTED)
@dataclass
class MeetingSettings:
    max_rounds: int = 5
    consensus_threshold: float = 0.7
    timeout_per_round: int | None = 300_000   # milliseconds, None/0 disables
    auto_save_interval: int = 30              # min seconds between round-end auto-saves
    allow_user_intervention: bool = True


@with_config(PERSISTED)
@dataclass
class ConsensusData:
    support_rate: float
    oppose_rate: float
    consensus_reached: bool
    threshold: float
    final_scores: dict[str, int] = field(default_factory=dict)
    confidence: float | None = None
    recommendation: str | None = None
    next_steps: list[str] | None = None


@with_config(PERSISTED)
@dataclass
class MeetingRoom:
    id: str
    name: str
    topic: str
    participants: list[Persona] = field(default_factory=list)
    settings: MeetingSettings = field(default_factory=MeetingSettings)
    moderator: Persona | None = None
    statements: list[Statement] = field(default_factory=list)
    search_results: list[SearchResult] = field(default_factory=list)
    consensus: ConsensusData | None = None
    created_at: float = 0.0
    updated_at: float = 0.0
    is_topic_generated: bool = False


@dataclass
class DebateContext:
    topic: str
    current_round: int
    max_rounds: int
    previous_statements: list[Statement]
    search_results: list[SearchResult]
    active_personas: list[Persona]
    current_speaker: str | None = None


@dataclass
class ModelResponse:
    provider: str                # "gemini", "openai", "claude"
    model: str                   # actual model string used
    content: str
    latency_sec: float
    token_count: int | None
    sources: list[SourceReference] = field(default_factory=list)
    search_queries: list[str] = field(default_factory=list)


@dataclass
class GenerationResult:
    content: str
    tendency_score: int
    reasoning: Reasoning | None = None
    sources: list[SourceReference] = field(default_factory=list)
    search_queries: list[str] = field(default_factory=list)
    error: str | None = None


@dataclass
class DebateEvent:
    type: str
    timestamp: float
    data: dict[str, Any] | None = None


@with_config(PERSISTED)
@dataclass
class UserPreferences:
    theme: str = "auto"          # "light", "dark", "auto"
    language: str = "en"         # "en", "zh-TW"
    auto_save: bool = True
    notifications_enabled: bool = True
    default_meeting_settings: MeetingSettings = field(default_factory=MeetingSettings)


@dataclass
class ParticipantSummary:
    persona_id: str
    name: str
    statements: int
    average_tendency: float


@dataclass
class DebateResult:
    room_id: str
    topic: str
    reason: str                  # "consensus", "max_rounds", "manual_stop"
    consensus: ConsensusData
    overall_consensus: str       # "strong", "moderate", "weak", "none"
    total_rounds: int
    duration_ms: float
    participants: list[ParticipantSummary] = field(default_factory=list)
    event_history: list[DebateEvent] = field(default_factory=list)
