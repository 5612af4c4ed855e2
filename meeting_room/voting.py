"""Ad-hoc multi-option voting sessions between personas."""

import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from meeting_room.consensus import generate_consensus_report
from meeting_room.models import ConsensusData, Persona, Statement

logger = logging.getLogger(__name__)

_SUPPORT_MIN_SCORE = 7
_OPPOSE_MAX_SCORE = 4
_DEFAULT_MAX_AGE_SEC = 24 * 60 * 60


class VotingMethod(str, Enum):
    SIMPLE = "simple"
    WEIGHTED = "weighted"
    RANKED = "ranked"
    CONSENSUS = "consensus"


class SessionStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass
class VotingOption:
    id: str
    label: str
    value: float                 # 1-10 support level this option stands for
    description: str = ""


@dataclass
class Vote:
    persona_id: str
    persona_name: str
    score: int
    weight: float = 1.0
    reasoning: str | None = None


@dataclass
class VotingResult:
    option_id: str
    votes: list[Vote] = field(default_factory=list)
    total_score: float = 0.0
    average_score: float = 0.0
    weighted_score: float = 0.0
    support_rate: float = 0.0


@dataclass
class VotingSession:
    id: str
    topic: str
    method: VotingMethod
    options: list[VotingOption]
    participants: list[Persona]
    results: list[VotingResult]
    status: SessionStatus = SessionStatus.PENDING
    start_time: float = 0.0
    end_time: float | None = None
    consensus_data: ConsensusData | None = None


@dataclass
class VotingStatistics:
    total_participants: int
    voted_participants: int
    participation_rate: float
    average_score: float
    score_distribution: dict[int, int]
    top_option: tuple[str, str, float] | None   # (option_id, label, average score)


def default_options() -> list[VotingOption]:
    return [
        VotingOption("support", "Support", 8, "Support the motion"),
        VotingOption("oppose", "Oppose", 3, "Oppose the motion"),
        VotingOption("neutral", "Neutral", 5, "Stay neutral"),
    ]


def persona_weight(persona: Persona, method: VotingMethod) -> float:
    """More focus areas and a lower temperature earn a heavier weighted vote."""
    if method is not VotingMethod.WEIGHTED:
        return 1.0
    expertise = len(persona.rag_focus) * 0.2
    deliberation = (1 - persona.temperature) * 0.3
    return max(0.5, min(2.0, 1 + expertise + deliberation))


class ConsensusManager:
    """Owns voting sessions and turns their votes into ConsensusData."""

    def __init__(
        self,
        on_session_update: Callable[[VotingSession], None] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._sessions: dict[str, VotingSession] = {}
        self._on_session_update = on_session_update
        self._clock = clock

    def create_session(
        self,
        topic: str,
        method: VotingMethod,
        participants: list[Persona],
        options: list[VotingOption] | None = None,
    ) -> VotingSession:
        if options:
            voting_options = [
                VotingOption(f"option_{i}", opt.label, opt.value, opt.description)
                for i, opt in enumerate(options)
            ]
        else:
            voting_options = default_options()

        session = VotingSession(
            id=f"voting_{uuid.uuid4().hex[:12]}",
            topic=topic,
            method=method,
            options=voting_options,
            participants=list(participants),
            results=[VotingResult(option_id=opt.id) for opt in voting_options],
            start_time=self._clock(),
        )
        self._sessions[session.id] = session
        logger.debug("Created %s voting session %s on %r", method.value, session.id, topic)
        self._notify(session)
        return session

    def start_session(self, session_id: str) -> bool:
        session = self._sessions.get(session_id)
        if session is None or session.status is not SessionStatus.PENDING:
            return False
        session.status = SessionStatus.ACTIVE
        self._notify(session)
        return True

    def submit_vote(
        self,
        session_id: str,
        persona_id: str,
        option_id: str,
        score: int,
        reasoning: str | None = None,
    ) -> bool:
        """Record a vote, replacing the persona's earlier vote on the same option.

        Returns False when the session, option or persona is unknown or the
        session is not active.

        Raises:
            ValueError: If score is outside 1-10.
        """
        session = self._sessions.get(session_id)
        if session is None or session.status is not SessionStatus.ACTIVE:
            return False

        if not 1 <= score <= 10:
            raise ValueError(f"Vote score must be between 1 and 10, got {score}")

        result = next((r for r in session.results if r.option_id == option_id), None)
        if result is None:
            return False

        persona = next((p for p in session.participants if p.id == persona_id), None)
        if persona is None:
            return False

        result.votes = [v for v in result.votes if v.persona_id != persona_id]
        result.votes.append(Vote(
            persona_id=persona_id,
            persona_name=persona.name,
            score=score,
            weight=persona_weight(persona, session.method),
            reasoning=reasoning,
        ))

        self._recalculate(session)
        self._notify(session)

        if self._is_complete(session):
            self.complete_session(session_id)
        return True

    def submit_votes_from_statements(self, session_id: str, statements: list[Statement]) -> bool:
        """Map each statement's tendency score onto the default support/oppose/neutral options."""
        session = self._sessions.get(session_id)
        if session is None or session.status is not SessionStatus.ACTIVE:
            return False

        for statement in statements:
            score = statement.tendency_score
            if score >= _SUPPORT_MIN_SCORE:
                option_id = "support"
            elif score <= _OPPOSE_MAX_SCORE:
                option_id = "oppose"
            else:
                option_id = "neutral"
            self.submit_vote(
                session_id,
                statement.persona_id,
                option_id,
                score,
                statement.content[:100] + "...",
            )
        return True

    def complete_session(self, session_id: str) -> bool:
        session = self._sessions.get(session_id)
        if session is None or session.status is not SessionStatus.ACTIVE:
            return False

        session.status = SessionStatus.COMPLETED
        session.end_time = self._clock()
        session.consensus_data = self._final_consensus(session)
        logger.info(
            "Voting session %s completed: support %.2f, oppose %.2f",
            session.id,
            session.consensus_data.support_rate,
            session.consensus_data.oppose_rate,
        )
        self._notify(session)
        return True

    def cancel_session(self, session_id: str) -> bool:
        session = self._sessions.get(session_id)
        if session is None:
            return False
        session.status = SessionStatus.CANCELLED
        session.end_time = self._clock()
        self._notify(session)
        return True

    def get_session(self, session_id: str) -> VotingSession | None:
        return self._sessions.get(session_id)

    def all_sessions(self) -> list[VotingSession]:
        return list(self._sessions.values())

    def statistics(self, session_id: str) -> VotingStatistics | None:
        session = self._sessions.get(session_id)
        if session is None:
            return None

        total = len(session.participants)
        voted = len(self._voters(session))
        all_scores = [v.score for r in session.results for v in r.votes]
        average = sum(all_scores) / len(all_scores) if all_scores else 0.0
        distribution = {i: all_scores.count(i) for i in range(1, 11)}

        top_option = None
        if session.results:
            top = max(session.results, key=lambda r: r.average_score)
            label = next((o.label for o in session.options if o.id == top.option_id), "")
            top_option = (top.option_id, label, top.average_score)

        return VotingStatistics(
            total_participants=total,
            voted_participants=voted,
            participation_rate=voted / total if total else 0.0,
            average_score=average,
            score_distribution=distribution,
            top_option=top_option,
        )

    def cleanup(self, max_age_sec: float = _DEFAULT_MAX_AGE_SEC) -> int:
        """Drop completed or cancelled sessions older than max_age_sec. Returns the count removed."""
        now = self._clock()
        stale = [
            sid for sid, s in self._sessions.items()
            if s.status in (SessionStatus.COMPLETED, SessionStatus.CANCELLED)
            and now - (s.end_time or s.start_time) > max_age_sec
        ]
        for sid in stale:
            del self._sessions[sid]
        return len(stale)

    @staticmethod
    def _voters(session: VotingSession) -> set[str]:
        return {v.persona_id for r in session.results for v in r.votes}

    def _is_complete(self, session: VotingSession) -> bool:
        return len(self._voters(session)) >= len(session.participants)

    @staticmethod
    def _recalculate(session: VotingSession) -> None:
        for result in session.results:
            if not result.votes:
                result.total_score = 0.0
                result.average_score = 0.0
                result.weighted_score = 0.0
                result.support_rate = 0.0
                continue
            result.total_score = sum(v.score for v in result.votes)
            result.average_score = result.total_score / len(result.votes)
            total_weight = sum(v.weight for v in result.votes)
            result.weighted_score = sum(v.score * v.weight for v in result.votes) / total_weight
            result.support_rate = result.average_score / 10

    @staticmethod
    def _final_consensus(session: VotingSession) -> ConsensusData:
        scores = [v.score for r in session.results for v in r.votes]
        weights = [v.weight for r in session.results for v in r.votes]
        report = generate_consensus_report(scores, weights)
        return ConsensusData(
            support_rate=report.basic.support_rate,
            oppose_rate=report.basic.oppose_rate,
            consensus_reached=report.basic.consensus_reached,
            threshold=report.basic.threshold,
            final_scores={
                v.persona_id: v.score for r in session.results for v in r.votes
            },
            confidence=report.weighted.confidence_level,
            recommendation=report.recommendation,
            next_steps=report.next_steps,
        )

    def _notify(self, session: VotingSession) -> None:
        if self._on_session_update:
            self._on_session_update(session)
