"""Tests for meeting_room/models.py dataclasses."""

from meeting_room.models import (
    ConsensusData,
    MeetingRoom,
    MeetingSettings,
    ModelResponse,
    Persona,
    Statement,
    UserPreferences,
)


def test_persona_defaults():
    p = Persona(id="p1", name="Analyst", role="Analyst")
    assert p.temperature == 0.7
    assert p.rag_focus == []
    assert p.is_active is False
    assert p.color is None


def test_meeting_settings_defaults():
    s = MeetingSettings()
    assert s.max_rounds == 5
    assert s.consensus_threshold == 0.7
    assert s.timeout_per_round == 300_000
    assert s.allow_user_intervention is True


def test_model_response_optional_fields():
    r = ModelResponse(
        provider="gemini",
        model="gemini-2.5-flash",
        content="Some answer.",
        latency_sec=0.9,
        token_count=None,
    )
    assert r.token_count is None
    assert r.sources == []
    assert r.search_queries == []


def test_statement_optional_fields():
    s = Statement(
        id="abc123def", persona_id="ceo-001", persona_name="CEO",
        content="Go.", timestamp=0.0, round=1, tendency_score=8,
    )
    assert s.reasoning is None
    assert s.sources == []
    assert s.tags == []


def test_meeting_room_defaults(two_personas):
    room = MeetingRoom(id="r1", name="Room", topic="Topic", participants=two_personas)
    assert room.statements == []
    assert room.search_results == []
    assert room.consensus is None
    assert room.is_topic_generated is False
    assert room.settings == MeetingSettings()


def test_default_lists_not_shared():
    a = MeetingRoom(id="a", name="A", topic="")
    b = MeetingRoom(id="b", name="B", topic="")
    a.statements.append("x")
    assert b.statements == []


def test_consensus_data_optional_fields():
    c = ConsensusData(support_rate=0.8, oppose_rate=0.2, consensus_reached=True, threshold=0.7)
    assert c.final_scores == {}
    assert c.confidence is None
    assert c.next_steps is None


def test_user_preferences_defaults():
    prefs = UserPreferences()
    assert prefs.language == "en"
    assert prefs.theme == "auto"
    assert prefs.default_meeting_settings.max_rounds == 5
