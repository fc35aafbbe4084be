"""Progress streamer tests: ordering, backpressure and subscriber lifecycle."""

from uuid import uuid4

import pytest

from moodseed.services.execution.events import EventType, ProgressEvent
from moodseed.services.execution.streamer import ProgressStreamer


def event(execution_id, event_type: EventType, **data) -> ProgressEvent:
    return ProgressEvent(type=event_type, execution_id=execution_id, data=data)


async def collect(subscription) -> list[ProgressEvent]:
    return [received async for received in subscription]


@pytest.mark.asyncio
async def test_events_arrive_in_publish_order():
    streamer = ProgressStreamer()
    execution_id = uuid4()
    subscription = streamer.subscribe(execution_id)

    streamer.begin(execution_id)
    streamer.publish(event(execution_id, EventType.START, total=2))
    streamer.publish(event(execution_id, EventType.PROGRESS, current=1))
    streamer.publish(event(execution_id, EventType.UNIT_COMPLETED, unit_id="a"))
    streamer.publish(event(execution_id, EventType.PROGRESS, current=2))
    streamer.publish(event(execution_id, EventType.COMPLETE))

    received = await collect(subscription)

    assert [e.type for e in received] == [
        EventType.START,
        EventType.PROGRESS,
        EventType.UNIT_COMPLETED,
        EventType.PROGRESS,
        EventType.COMPLETE,
    ]
    assert subscription.closed


@pytest.mark.asyncio
async def test_full_buffer_drops_oldest_but_keeps_terminal():
    streamer = ProgressStreamer(max_queue_size=3)
    execution_id = uuid4()
    subscription = streamer.subscribe(execution_id)

    streamer.begin(execution_id)
    streamer.publish(event(execution_id, EventType.START))
    for current in range(1, 6):
        streamer.publish(event(execution_id, EventType.PROGRESS, current=current))
    streamer.publish(event(execution_id, EventType.COMPLETE))

    received = await collect(subscription)

    assert [e.type for e in received] == [
        EventType.PROGRESS,
        EventType.PROGRESS,
        EventType.COMPLETE,
    ]
    assert [e.data["current"] for e in received[:2]] == [4, 5]
    assert subscription.dropped == 4


@pytest.mark.asyncio
async def test_nothing_is_accepted_after_terminal_event():
    streamer = ProgressStreamer()
    execution_id = uuid4()
    subscription = streamer.subscribe(execution_id)

    streamer.begin(execution_id)
    assert streamer.publish(event(execution_id, EventType.ERROR, error="boom")) is True
    assert streamer.publish(event(execution_id, EventType.PROGRESS)) is False
    assert not streamer.is_active(execution_id)

    received = await collect(subscription)
    assert [e.type for e in received] == [EventType.ERROR]


def test_publish_without_open_phase_is_rejected():
    streamer = ProgressStreamer()

    assert streamer.publish(event(uuid4(), EventType.PROGRESS)) is False


@pytest.mark.asyncio
async def test_new_subscription_replaces_previous_one():
    streamer = ProgressStreamer()
    execution_id = uuid4()
    first = streamer.subscribe(execution_id)
    second = streamer.subscribe(execution_id)

    assert first.closed
    assert await collect(first) == []

    streamer.begin(execution_id)
    streamer.publish(event(execution_id, EventType.START))
    streamer.publish(event(execution_id, EventType.COMPLETE))

    assert [e.type for e in await collect(second)] == [EventType.START, EventType.COMPLETE]


@pytest.mark.asyncio
async def test_late_subscriber_gets_only_the_terminal_event():
    streamer = ProgressStreamer()
    execution_id = uuid4()

    streamer.begin(execution_id)
    streamer.publish(event(execution_id, EventType.START))
    streamer.publish(event(execution_id, EventType.COMPLETE, summary={"status": "completed"}))

    received = await collect(streamer.subscribe(execution_id))

    assert [e.type for e in received] == [EventType.COMPLETE]
    assert received[0].data["summary"]["status"] == "completed"


@pytest.mark.asyncio
async def test_subscriber_attached_before_resume_sees_whole_phase():
    streamer = ProgressStreamer()
    execution_id = uuid4()
    streamer.begin(execution_id)
    streamer.publish(event(execution_id, EventType.COMPLETE))

    streamer.begin(execution_id)
    subscription = streamer.subscribe(execution_id)
    streamer.publish(event(execution_id, EventType.START, attempt=2))
    streamer.publish(event(execution_id, EventType.COMPLETE))

    assert [e.type for e in await collect(subscription)] == [EventType.START, EventType.COMPLETE]


def test_unsubscribe_never_affects_the_publisher():
    streamer = ProgressStreamer()
    execution_id = uuid4()
    subscription = streamer.subscribe(execution_id)
    streamer.begin(execution_id)

    streamer.unsubscribe(subscription)

    assert subscription.closed
    assert streamer.publish(event(execution_id, EventType.PROGRESS)) is True
    assert streamer.publish(event(execution_id, EventType.COMPLETE)) is True


def test_sse_framing():
    execution_id = uuid4()
    framed = event(execution_id, EventType.UNIT_COMPLETED, unit_id="a").to_sse()

    lines = framed.split("\n")
    assert lines[0] == "event: unit-completed"
    assert lines[1].startswith("data: {")
    assert f'"execution_id": "{execution_id}"' in lines[1]
    assert '"unit_id": "a"' in lines[1]
    assert framed.endswith("\n\n")
