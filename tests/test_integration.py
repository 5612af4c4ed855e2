"""Integration tests: real API calls, no mocks. Requires GEMINI_API_KEY in .env."""

import os
import time
from pathlib import Path

import pytest
from dotenv import load_dotenv

load_dotenv()

pytestmark = pytest.mark.integration

if not os.environ.get("GEMINI_API_KEY", "").strip():
    pytestmark = pytest.mark.skip(reason="GEMINI_API_KEY not set")


async def test_one_round_debate(tmp_path: Path):
    """Run a real 1-round debate between two personas, verify statements and transcript."""
    from config.config_loader import load_config
    from meeting_room.cli import _select_personas
    from meeting_room.generation import GenerationClient
    from meeting_room.models import MeetingRoom, MeetingSettings
    from meeting_room.orchestrator import DebateOrchestrator
    from meeting_room.output import save_to_file
    from meeting_room.providers.gemini import GeminiProvider

    config = load_config()
    client = GenerationClient(
        GeminiProvider(config.models["gemini"]),
        generation=config.generation,
        retry=config.retry,
        cache_config=config.cache,
    )
    now = time.time()
    room = MeetingRoom(
        id="integration-room",
        name="Monorepo",
        topic="Should a small team use a monorepo for its Python services?",
        participants=_select_personas(config.personas, ["cto-001", "cfo-001"]),
        settings=MeetingSettings(max_rounds=1, timeout_per_round=None),
        created_at=now,
        updated_at=now,
    )

    orchestrator = DebateOrchestrator(client, turn_delay_sec=0)
    await orchestrator.initialize(room)
    result = await orchestrator.start()

    assert result is not None
    assert result.total_rounds == 1
    assert len(room.statements) == 2
    for statement in room.statements:
        assert statement.content, f"Empty statement from {statement.persona_name}"
        assert 1 <= statement.tendency_score <= 10

    saved = save_to_file(room, result, tmp_path / "output")
    content = saved.read_text(encoding="utf-8")
    assert "Meeting Room Debate" in content
    assert "## Round 1" in content
