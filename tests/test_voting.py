"""Tests for meeting_room/voting.py."""

import pytest

from meeting_room.voting import (
    ConsensusManager,
    SessionStatus,
    VotingMethod,
    VotingOption,
    persona_weight,
)
from tests.conftest import make_statement


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def manager() -> ConsensusManager:
    return ConsensusManager()


@pytest.fixture
def active_session(manager, ceo, cfo, cto):
    session = manager.create_session("Adopt a four-day week?", VotingMethod.SIMPLE, [ceo, cfo, cto])
    manager.start_session(session.id)
    return session


def test_default_options(manager, ceo, cfo):
    session = manager.create_session("topic", VotingMethod.SIMPLE, [ceo, cfo])
    assert [(o.id, o.value) for o in session.options] == [("support", 8), ("oppose", 3), ("neutral", 5)]
    assert session.status is SessionStatus.PENDING
    assert [r.option_id for r in session.results] == ["support", "oppose", "neutral"]


def test_custom_options_get_positional_ids(manager, ceo, cfo):
    options = [VotingOption("x", "Plan A", 9), VotingOption("y", "Plan B", 2)]
    session = manager.create_session("topic", VotingMethod.SIMPLE, [ceo, cfo], options)
    assert [o.id for o in session.options] == ["option_0", "option_1"]
    assert [o.label for o in session.options] == ["Plan A", "Plan B"]


def test_start_only_from_pending(manager, active_session):
    assert active_session.status is SessionStatus.ACTIVE
    assert manager.start_session(active_session.id) is False
    assert manager.start_session("missing") is False


def test_vote_requires_active_session(manager, ceo, cfo):
    session = manager.create_session("topic", VotingMethod.SIMPLE, [ceo, cfo])
    assert manager.submit_vote(session.id, ceo.id, "support", 8) is False


@pytest.mark.parametrize("score", [0, 11, -3])
def test_vote_score_out_of_range(manager, active_session, ceo, score):
    with pytest.raises(ValueError):
        manager.submit_vote(active_session.id, ceo.id, "support", score)


def test_vote_unknown_option_or_persona(manager, active_session, ceo):
    assert manager.submit_vote(active_session.id, ceo.id, "maybe", 5) is False
    assert manager.submit_vote(active_session.id, "nobody", "support", 5) is False


def test_revote_replaces_previous_vote(manager, active_session, ceo):
    manager.submit_vote(active_session.id, ceo.id, "support", 7)
    manager.submit_vote(active_session.id, ceo.id, "support", 9)

    result = next(r for r in active_session.results if r.option_id == "support")
    assert len(result.votes) == 1
    assert result.votes[0].score == 9
    assert result.average_score == 9
    assert result.support_rate == pytest.approx(0.9)


def test_auto_complete_when_every_participant_voted(manager, active_session, ceo, cfo, cto):
    manager.submit_vote(active_session.id, ceo.id, "support", 9)
    manager.submit_vote(active_session.id, cfo.id, "oppose", 2)
    assert active_session.status is SessionStatus.ACTIVE

    manager.submit_vote(active_session.id, cto.id, "support", 8)
    assert active_session.status is SessionStatus.COMPLETED
    assert active_session.end_time is not None
    data = active_session.consensus_data
    assert data is not None
    assert data.final_scores == {ceo.id: 9, cto.id: 8, cfo.id: 2}
    assert data.recommendation
    assert data.confidence is not None


def test_same_persona_on_two_options_counts_once(manager, active_session, ceo, cfo):
    manager.submit_vote(active_session.id, ceo.id, "support", 9)
    manager.submit_vote(active_session.id, ceo.id, "neutral", 5)
    manager.submit_vote(active_session.id, cfo.id, "oppose", 2)
    assert active_session.status is SessionStatus.ACTIVE


def test_votes_from_statements(manager, active_session, ceo, cfo, cto):
    statements = [make_statement(ceo.id, 8), make_statement(cfo.id, 3), make_statement(cto.id, 5)]
    assert manager.submit_votes_from_statements(active_session.id, statements) is True

    by_option = {r.option_id: [v.persona_id for v in r.votes] for r in active_session.results}
    assert by_option == {"support": [ceo.id], "oppose": [cfo.id], "neutral": [cto.id]}
    assert active_session.status is SessionStatus.COMPLETED


def test_weighted_method_weights(ceo, cfo):
    # cfo: 1 + 3*0.2 + 0.6*0.3 = 1.78
    assert persona_weight(cfo, VotingMethod.WEIGHTED) == pytest.approx(1.78)
    assert persona_weight(cfo, VotingMethod.SIMPLE) == 1.0
    ceo.rag_focus = ["a"] * 10
    ceo.temperature = 0.1
    assert persona_weight(ceo, VotingMethod.WEIGHTED) == 2.0


def test_statistics(manager, active_session, ceo, cfo):
    manager.submit_vote(active_session.id, ceo.id, "support", 9)
    manager.submit_vote(active_session.id, cfo.id, "oppose", 3)

    stats = manager.statistics(active_session.id)
    assert stats.total_participants == 3
    assert stats.voted_participants == 2
    assert stats.participation_rate == pytest.approx(2 / 3)
    assert stats.average_score == pytest.approx(6.0)
    assert stats.score_distribution[9] == 1
    assert stats.score_distribution[3] == 1
    assert sum(stats.score_distribution.values()) == 2
    assert stats.top_option[0] == "support"
    assert manager.statistics("missing") is None


def test_cancel_and_cleanup(ceo, cfo):
    clock = FakeClock()
    manager = ConsensusManager(clock=clock)
    old = manager.create_session("old", VotingMethod.SIMPLE, [ceo, cfo])
    fresh = manager.create_session("fresh", VotingMethod.SIMPLE, [ceo, cfo])
    manager.cancel_session(old.id)

    clock.now += 2 * 24 * 60 * 60
    manager.cancel_session(fresh.id)

    assert manager.cleanup() == 1
    assert manager.get_session(old.id) is None
    assert manager.get_session(fresh.id) is not None


def test_session_updates_are_reported(ceo, cfo):
    seen = []
    manager = ConsensusManager(on_session_update=lambda s: seen.append(s.status))
    session = manager.create_session("topic", VotingMethod.SIMPLE, [ceo, cfo])
    manager.start_session(session.id)
    assert seen == [SessionStatus.PENDING, SessionStatus.ACTIVE]
    assert manager.all_sessions() == [session]
