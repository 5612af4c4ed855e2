"""Tests for meeting_room/events.py."""

from meeting_room.events import MAX_HISTORY, TRIMMED_HISTORY, EventHistory, EventKind, EventStream


async def test_every_subscriber_sees_events_in_order():
    stream = EventStream()
    first = stream.subscribe()
    second = stream.subscribe()

    stream.publish(EventKind.STATE_CHANGE, "running")
    stream.publish(EventKind.PROGRESS, {"round": 1})

    for queue in (first, second):
        assert queue.get_nowait().kind is EventKind.STATE_CHANGE
        event = queue.get_nowait()
        assert event.kind is EventKind.PROGRESS
        assert event.payload == {"round": 1}


async def test_unsubscribed_queue_gets_nothing():
    stream = EventStream()
    queue = stream.subscribe()
    stream.unsubscribe(queue)
    stream.unsubscribe(queue)

    stream.publish(EventKind.ERROR, "boom")
    assert queue.empty()


def test_history_records_type_and_data():
    history = EventHistory(clock=lambda: 42.0)
    event = history.add("debate_start", {"room": "r1"})
    assert event.timestamp == 42.0
    assert history.snapshot()[0].data == {"room": "r1"}
    assert history.count("debate_start") == 1
    assert history.count("debate_stop") == 0


def test_history_trims_to_newest():
    history = EventHistory()
    for i in range(MAX_HISTORY):
        history.add("tick", {"i": i})
    assert len(history) == MAX_HISTORY

    history.add("tick", {"i": MAX_HISTORY})
    events = history.snapshot()
    assert len(events) == TRIMMED_HISTORY
    assert events[-1].data == {"i": MAX_HISTORY}
    assert events[0].data == {"i": MAX_HISTORY + 1 - TRIMMED_HISTORY}


def test_history_snapshot_is_a_copy():
    history = EventHistory()
    history.add("a")
    snapshot = history.snapshot()
    snapshot.clear()
    assert len(history) == 1
    history.clear()
    assert len(history) == 0
