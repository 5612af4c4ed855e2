"""Debate orchestration: state machine, round-robin turns, consensus checks.

One orchestrator drives one room at a time. Turns run strictly in sequence;
the only suspension points are generation calls and the settle delay, so
pause and stop take effect at turn boundaries.
"""

import asyncio
import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from meeting_room.errors import InvalidStateError, SettingsValidationError, SpeakerTimeoutError
from meeting_room.events import EventHistory, EventKind, EventStream, OrchestratorEvent
from meeting_room.generation import GenerationClient
from meeting_room.models import (
    DebateContext,
    DebateEvent,
    DebateResult,
    GenerationResult,
    MeetingRoom,
    Persona,
    SearchResult,
    SourceReference,
    Statement,
)
from meeting_room.persona_engine import validate_persona
from meeting_room.results import build_debate_result, compute_consensus
from meeting_room.topics import local_topic

logger = logging.getLogger(__name__)

MIN_PARTICIPANTS = 2
MIN_ROUNDS, MAX_ROUNDS = 1, 20
MIN_THRESHOLD, MAX_THRESHOLD = 0.5, 1.0
MIN_TIMEOUT_MS = 30_000


class DebateState(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    SEARCHING = "searching"
    READY = "ready"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class DebateProgress:
    current: int
    total: int
    percentage: int


@dataclass
class DebateSnapshot:
    state: DebateState
    current_round: int
    current_speaker: Persona | None
    room: MeetingRoom | None
    search_results: list[SourceReference]
    progress: DebateProgress | None
    duration_ms: float
    event_history: list[DebateEvent] = field(default_factory=list)


@dataclass
class DebateStatistics:
    total_events: int
    total_duration_ms: float
    average_round_duration_ms: float
    pause_count: int
    error_count: int


def _consume_result(task: asyncio.Task) -> None:
    # Orphaned by a speaker timeout; nobody awaits it any more.
    if not task.cancelled() and task.exception() is not None:
        logger.debug("Late generation failure after timeout: %s", task.exception())


def validate_room(room: MeetingRoom) -> None:
    """Raises SettingsValidationError for a room that cannot be debated."""
    settings = room.settings
    if len(room.participants) < MIN_PARTICIPANTS:
        raise SettingsValidationError(f"At least {MIN_PARTICIPANTS} personas are required to debate")
    if not MIN_ROUNDS <= settings.max_rounds <= MAX_ROUNDS:
        raise SettingsValidationError(f"Max rounds must be between {MIN_ROUNDS} and {MAX_ROUNDS}")
    if not MIN_THRESHOLD <= settings.consensus_threshold <= MAX_THRESHOLD:
        raise SettingsValidationError(f"Consensus threshold must be between {MIN_THRESHOLD} and {MAX_THRESHOLD}")
    if settings.timeout_per_round and settings.timeout_per_round < MIN_TIMEOUT_MS:
        raise SettingsValidationError(f"Timeout per round must be at least {MIN_TIMEOUT_MS}ms")


class DebateOrchestrator:
    """Runs a MeetingRoom debate from initialization to completion.

    Observers call subscribe() for a queue of OrchestratorEvents. The
    audit trail of DebateEvents is available via get_event_history().
    """

    def __init__(
        self,
        client: GenerationClient,
        *,
        turn_delay_sec: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        language: str = "en",
    ) -> None:
        self._client = client
        self._turn_delay_sec = turn_delay_sec
        self._clock = clock
        self._language = language
        self._stream = EventStream()
        self._history = EventHistory()

        self._state = DebateState.IDLE
        self._room: MeetingRoom | None = None
        self._round = 0
        self._speaker_index = 0
        self._search_results: list[SourceReference] = []
        self._paused_at: float | None = None
        self._total_paused = 0.0
        self._start_time: float | None = None
        self._end_time: float | None = None
        self._loop_token: object | None = None   # set while a _run_loop owns the debate
        self._result: DebateResult | None = None

    # -- observation ---------------------------------------------------------

    @property
    def state(self) -> DebateState:
        return self._state

    @property
    def total_paused_time(self) -> float:
        """Seconds spent paused, excluding a pause still in progress."""
        return self._total_paused

    def subscribe(self) -> asyncio.Queue[OrchestratorEvent]:
        return self._stream.subscribe()

    def unsubscribe(self, queue: asyncio.Queue[OrchestratorEvent]) -> None:
        self._stream.unsubscribe(queue)

    def get_event_history(self) -> list[DebateEvent]:
        return self._history.snapshot()

    def get_state(self) -> DebateSnapshot:
        return DebateSnapshot(
            state=self._state,
            current_round=self._round,
            current_speaker=self._current_speaker(),
            room=self._room,
            search_results=list(self._search_results),
            progress=self._progress(),
            duration_ms=self._duration_ms(),
            event_history=self._history.snapshot(),
        )

    def get_statistics(self) -> DebateStatistics:
        duration = self._duration_ms()
        rounds = self._history.count("round_complete")
        return DebateStatistics(
            total_events=len(self._history),
            total_duration_ms=duration,
            average_round_duration_ms=duration / rounds if rounds else 0.0,
            pause_count=self._history.count("debate_pause"),
            error_count=self._history.count("error"),
        )

    # -- lifecycle -----------------------------------------------------------

    async def initialize(self, room: MeetingRoom) -> None:
        """Validate room and run the topic search.

        Raises:
            InvalidStateError: If not idle.
            SettingsValidationError: On bad participants or settings.
            ProviderError: If the topic search fails.
        """
        if self._state is not DebateState.IDLE:
            raise InvalidStateError("initialize", self._state.value)

        self._clear()
        self._room = room
        self._set_state(DebateState.INITIALIZING)
        self._history.add("debate_initialize_start", {"room_id": room.id, "topic": room.topic})

        try:
            validate_room(room)
        except SettingsValidationError as exc:
            self._fail("Failed to initialize debate", exc)
            raise

        for persona in room.participants:
            for problem in validate_persona(persona):
                logger.warning("Persona %s: %s", persona.name or persona.id, problem)

        if room.topic.strip():
            self._set_state(DebateState.SEARCHING)
            self._history.add("search_start", {"topic": room.topic})
            try:
                batch = await self._client.search_topic(room.topic, room.participants)
            except Exception as exc:
                self._fail("Topic search failed", exc)
                raise
            self._search_results = list(batch.results)
            room.search_results.append(batch)
            self._history.add("search_complete", {
                "results_count": len(batch.results),
                "sources": [s.url for s in batch.results],
            })
        else:
            logger.info("Room %s has no topic yet, skipping topic search", room.id)

        self._set_state(DebateState.READY)
        self._history.add("debate_initialize_complete")

    async def start(self) -> DebateResult | None:
        """Run the debate. Returns the result, or None if it was paused.

        Raises:
            InvalidStateError: If not ready.
        """
        if self._state is not DebateState.READY:
            raise InvalidStateError("start", self._state.value)

        room = self._room
        self._round = 1
        self._speaker_index = 0
        self._start_time = self._clock()
        self._set_state(DebateState.RUNNING)
        self._history.add("debate_start", {
            "participants": [p.name for p in room.participants],
            "max_rounds": room.settings.max_rounds,
        })
        return await self._run_loop()

    def pause(self) -> None:
        if self._state is not DebateState.RUNNING:
            raise InvalidStateError("pause", self._state.value)
        self._paused_at = self._clock()
        self._set_state(DebateState.PAUSED)
        speaker = self._current_speaker()
        self._history.add("debate_pause", {"round": self._round, "speaker": speaker.name if speaker else None})

    async def resume(self) -> DebateResult | None:
        """Continue from the current speaker. Returns as start() does.

        When the original loop is still awaiting an in-flight turn it simply
        carries on and this returns None.
        """
        if self._state is not DebateState.PAUSED:
            raise InvalidStateError("resume", self._state.value)
        self._end_pause()
        self._set_state(DebateState.RUNNING)
        self._history.add("debate_resume", {"round": self._round, "total_paused_time": self._total_paused})
        if self._loop_token is not None:
            return None
        return await self._run_loop()

    def stop(self) -> DebateResult:
        """Force completion. An in-flight generation is left to finish and its result dropped."""
        if self._state not in (DebateState.RUNNING, DebateState.PAUSED):
            raise InvalidStateError("stop", self._state.value)
        self._end_pause()
        self._history.add("debate_stop", {"reason": "manual_stop", "round": self._round})
        return self._complete("manual_stop")

    def reset(self) -> None:
        self._clear()
        self._set_state(DebateState.IDLE)
        self._history.add("orchestrator_reset")

    # -- round loop ----------------------------------------------------------

    async def _run_loop(self) -> DebateResult | None:
        room = self._room
        max_rounds = room.settings.max_rounds
        token = object()
        self._loop_token = token
        try:
            while self._running(room) and self._round <= max_rounds:
                self._publish_progress(max_rounds)
                await self._run_round(room)
                if not self._running(room):
                    break

                consensus, _ = compute_consensus(room)
                room.consensus = consensus
                room.updated_at = time.time()
                self._stream.publish(EventKind.CONSENSUS_UPDATE, consensus)

                if consensus.consensus_reached:
                    self._history.add("consensus_reached", {
                        "round": self._round,
                        "support_rate": consensus.support_rate,
                        "oppose_rate": consensus.oppose_rate,
                    })
                    return self._complete("consensus")

                round_statements = [s for s in room.statements if s.round == self._round]
                self._history.add("round_complete", {
                    "round": self._round,
                    "statements": len(round_statements),
                    "support_rate": consensus.support_rate,
                    "oppose_rate": consensus.oppose_rate,
                })
                self._stream.publish(EventKind.ROUND_COMPLETE, {
                    "round": self._round,
                    "statements": round_statements,
                    "consensus": consensus,
                })
                self._round += 1
                self._speaker_index = 0

            if self._running(room) and self._round > max_rounds:
                self._history.add("max_rounds_reached", {"max_rounds": max_rounds})
                return self._complete("max_rounds")
            if self._state is DebateState.COMPLETED and self._room is room:
                return self._result
            return None
        finally:
            if self._loop_token is token:
                self._loop_token = None

    async def _run_round(self, room: MeetingRoom) -> None:
        participants = room.participants
        if self._speaker_index == 0:
            self._history.add("round_start", {"round": self._round, "participants": [p.name for p in participants]})

        while self._speaker_index < len(participants) and self._running(room):
            statement = await self._run_turn(room, participants[self._speaker_index])
            if statement is None:
                return
            self._speaker_index += 1
            if self._turn_delay_sec:
                await asyncio.sleep(self._turn_delay_sec)

    async def _run_turn(self, room: MeetingRoom, persona: Persona) -> Statement | None:
        self._history.add("generating_statement", {"persona": persona.name})
        context = DebateContext(
            topic=room.topic,
            current_round=self._round,
            max_rounds=room.settings.max_rounds,
            previous_statements=list(room.statements),
            search_results=[SearchResult(
                query=room.topic,
                results=self._search_results,
                timestamp=time.time(),
                persona_focus=list(persona.rag_focus),
            )],
            active_personas=room.participants,
            current_speaker=persona.id,
        )

        try:
            response = await self._generate(persona, context, room.settings.timeout_per_round)
        except Exception as exc:
            if self._discarded(room):
                logger.info("Ignoring failure from %s; debate is no longer active", persona.name)
                return None
            self._fail(f"Failed to generate statement for {persona.name}", exc)
            raise

        if self._discarded(room):
            logger.info("Discarding statement from %s; debate is %s", persona.name, self._state.value)
            return None

        statement = Statement(
            id=uuid.uuid4().hex[:9],
            persona_id=persona.id,
            persona_name=persona.name,
            content=response.content,
            timestamp=time.time(),
            round=self._round,
            tendency_score=response.tendency_score,
            sources=list(response.sources),
            reasoning=response.reasoning,
        )
        room.statements.append(statement)
        room.updated_at = statement.timestamp
        self._history.add("statement_added", {
            "statement_id": statement.id,
            "persona": persona.name,
            "round": statement.round,
            "tendency_score": statement.tendency_score,
        })
        self._stream.publish(EventKind.STATEMENT_ADDED, statement)

        if not room.topic.strip() and len(room.statements) == 1:
            await self._derive_topic(room, statement)
        return statement

    async def _generate(self, persona: Persona, context: DebateContext, timeout_ms: int | None) -> GenerationResult:
        call = self._client.generate_persona_response(
            persona, context, self._search_results, language=self._language,
        )
        if not timeout_ms:
            return await call

        task = asyncio.ensure_future(call)
        done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000)
        if task in done:
            return task.result()
        task.add_done_callback(_consume_result)
        raise SpeakerTimeoutError(persona.name, timeout_ms)

    async def _derive_topic(self, room: MeetingRoom, statement: Statement) -> None:
        try:
            topic = await self._client.generate_topic(statement.content)
        except Exception as exc:
            logger.warning("Topic generation failed, falling back to keywords: %s", exc)
            topic = local_topic(statement.content)
        room.topic = topic
        room.is_topic_generated = True
        self._history.add("topic_generated", {"topic": topic})
        logger.info("Derived topic for room %s: %s", room.id, topic)

    # -- internals -----------------------------------------------------------

    def _running(self, room: MeetingRoom) -> bool:
        return self._state is DebateState.RUNNING and self._room is room

    def _discarded(self, room: MeetingRoom) -> bool:
        return self._room is not room or self._state not in (DebateState.RUNNING, DebateState.PAUSED)

    def _complete(self, reason: str) -> DebateResult:
        room = self._room
        self._end_time = self._clock()
        self._set_state(DebateState.COMPLETED)
        self._history.add("debate_complete", {"reason": reason})
        total_rounds = min(self._round, room.settings.max_rounds)
        consensus, _ = compute_consensus(room)
        room.consensus = consensus
        self._stream.publish(EventKind.CONSENSUS_UPDATE, consensus)
        self._result = build_debate_result(room, reason, total_rounds, self._duration_ms(), self._history.snapshot())
        self._stream.publish(EventKind.DEBATE_COMPLETE, self._result)
        return self._result

    def _fail(self, message: str, exc: BaseException) -> None:
        logger.error("%s: %s", message, exc)
        self._set_state(DebateState.ERROR)
        speaker = self._current_speaker()
        details: dict[str, Any] = {
            "message": message,
            "error": str(exc),
            "round": self._round,
            "speaker": speaker.name if speaker else None,
        }
        self._history.add("error", details)
        self._stream.publish(EventKind.ERROR, details)

    def _set_state(self, new_state: DebateState) -> None:
        old_state = self._state
        self._state = new_state
        logger.debug("Debate state %s -> %s", old_state.value, new_state.value)
        self._stream.publish(EventKind.STATE_CHANGE, {
            "old_state": old_state,
            "new_state": new_state,
            "room_id": self._room.id if self._room else None,
        })

    def _end_pause(self) -> None:
        if self._paused_at is not None:
            self._total_paused += self._clock() - self._paused_at
            self._paused_at = None

    def _clear(self) -> None:
        self._room = None
        self._round = 0
        self._speaker_index = 0
        self._search_results = []
        self._history.clear()
        self._paused_at = None
        self._total_paused = 0.0
        self._start_time = None
        self._end_time = None
        self._result = None
        self._loop_token = None

    def _current_speaker(self) -> Persona | None:
        if self._room is None or not 0 <= self._speaker_index < len(self._room.participants):
            return None
        return self._room.participants[self._speaker_index]

    def _progress(self) -> DebateProgress | None:
        if self._room is None:
            return None
        total = self._room.settings.max_rounds
        return DebateProgress(self._round, total, round(self._round / total * 100) if total else 0)

    def _publish_progress(self, total: int) -> None:
        progress = DebateProgress(self._round, total, round(self._round / total * 100))
        self._stream.publish(EventKind.PROGRESS, progress)

    def _duration_ms(self) -> float:
        if self._start_time is None:
            return 0.0
        end = self._end_time if self._end_time is not None else self._clock()
        paused = self._total_paused
        if self._paused_at is not None:
            paused += end - self._paused_at
        return max(0.0, (end - self._start_time - paused) * 1000)
