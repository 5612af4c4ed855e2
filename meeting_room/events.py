"""Outbound orchestrator event stream and the bounded debate audit trail."""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from meeting_room.models import DebateEvent

logger = logging.getLogger(__name__)

MAX_HISTORY = 1000
TRIMMED_HISTORY = 500


class EventKind(str, Enum):
    STATE_CHANGE = "state_change"
    STATEMENT_ADDED = "statement_added"
    CONSENSUS_UPDATE = "consensus_update"
    ROUND_COMPLETE = "round_complete"
    PROGRESS = "progress"
    ERROR = "error"
    DEBATE_COMPLETE = "debate_complete"


@dataclass
class OrchestratorEvent:
    kind: EventKind
    payload: Any = None
    timestamp: float = field(default_factory=time.time)


class EventStream:
    """Fan-out of orchestrator events to any number of subscriber queues.

    Each subscriber gets its own unbounded asyncio.Queue and sees events in
    emission order.
    """

    def __init__(self) -> None:
        self._subscribers: list[asyncio.Queue[OrchestratorEvent]] = []

    def subscribe(self) -> asyncio.Queue[OrchestratorEvent]:
        queue: asyncio.Queue[OrchestratorEvent] = asyncio.Queue()
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[OrchestratorEvent]) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def publish(self, kind: EventKind, payload: Any = None) -> OrchestratorEvent:
        event = OrchestratorEvent(kind=kind, payload=payload)
        for queue in self._subscribers:
            queue.put_nowait(event)
        return event


class EventHistory:
    """Audit trail of DebateEvents; once over MAX_HISTORY only the newest TRIMMED_HISTORY survive."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._events: list[DebateEvent] = []
        self._clock = clock

    def add(self, event_type: str, data: dict[str, Any] | None = None) -> DebateEvent:
        event = DebateEvent(type=event_type, timestamp=self._clock(), data=data)
        self._events.append(event)
        if len(self._events) > MAX_HISTORY:
            self._events = self._events[-TRIMMED_HISTORY:]
            logger.debug("Event history trimmed to %d entries", TRIMMED_HISTORY)
        return event

    def clear(self) -> None:
        self._events = []

    def count(self, event_type: str) -> int:
        return sum(1 for e in self._events if e.type == event_type)

    def snapshot(self) -> list[DebateEvent]:
        return list(self._events)

    def __len__(self) -> int:
        return len(self._events)
