"""Consensus snapshots and the final DebateResult, computed from a room's statement history."""

import logging

from meeting_room.consensus import ConsensusReport, generate_consensus_report
from meeting_room.models import ConsensusData, DebateEvent, DebateResult, MeetingRoom, ParticipantSummary, Statement
from meeting_room.persona_engine import DEFAULT_TENDENCY_SCORE

logger = logging.getLogger(__name__)


def scores_by_round(statements: list[Statement]) -> list[list[int]]:
    """Tendency scores grouped by round number, in round order."""
    if not statements:
        return []
    last_round = max(s.round for s in statements)
    return [[s.tendency_score for s in statements if s.round == r] for r in range(1, last_round + 1)]


def latest_scores(room: MeetingRoom) -> dict[str, int]:
    """Each participant's most recent tendency score; silent participants are omitted."""
    scores: dict[str, int] = {}
    participant_ids = {p.id for p in room.participants}
    for statement in room.statements:
        if statement.persona_id in participant_ids:
            scores[statement.persona_id] = statement.tendency_score
    return scores


def compute_consensus(room: MeetingRoom) -> tuple[ConsensusData, ConsensusReport]:
    """Recompute consensus over every statement in the room, using the room's threshold."""
    scores = [s.tendency_score for s in room.statements]
    report = generate_consensus_report(
        scores,
        historical_scores=scores_by_round(room.statements),
        threshold=room.settings.consensus_threshold,
    )
    consensus = ConsensusData(
        support_rate=report.basic.support_rate,
        oppose_rate=report.basic.oppose_rate,
        consensus_reached=report.basic.consensus_reached,
        threshold=report.basic.threshold,
        final_scores=latest_scores(room),
        confidence=report.weighted.confidence_level,
        recommendation=report.recommendation,
        next_steps=list(report.next_steps),
    )
    return consensus, report


def average_tendency(statements: list[Statement], persona_id: str) -> float:
    """Mean score rounded to one decimal; 5 when the persona never spoke."""
    scores = [s.tendency_score for s in statements if s.persona_id == persona_id]
    if not scores:
        return float(DEFAULT_TENDENCY_SCORE)
    return round(sum(scores) / len(scores), 1)


def build_debate_result(
    room: MeetingRoom,
    reason: str,
    total_rounds: int,
    duration_ms: float,
    event_history: list[DebateEvent],
) -> DebateResult:
    consensus, report = compute_consensus(room)
    participants = [
        ParticipantSummary(
            persona_id=p.id,
            name=p.name,
            statements=sum(1 for s in room.statements if s.persona_id == p.id),
            average_tendency=average_tendency(room.statements, p.id),
        )
        for p in room.participants
    ]
    logger.info(
        "Debate %s finished (%s) after %d round(s): %s consensus",
        room.id,
        reason,
        total_rounds,
        report.overall_consensus,
    )
    return DebateResult(
        room_id=room.id,
        topic=room.topic,
        reason=reason,
        consensus=consensus,
        overall_consensus=report.overall_consensus,
        total_rounds=total_rounds,
        duration_ms=duration_ms,
        participants=participants,
        event_history=event_history,
    )
