"""Progress streamer: delivers controller events to one subscriber per execution.

The controller publishes without ever waiting on a subscriber. Each
subscription owns a bounded buffer; when it is full the oldest undelivered
non-terminal event is dropped, and terminal events are always delivered. There
is no replay: a subscription sees events published after it attached, except
that attaching to an execution whose current phase already ended yields that
phase's terminal event so the stream can close.
"""

import asyncio
from collections import OrderedDict, deque
from uuid import UUID

import structlog

from moodseed.services.execution.events import ProgressEvent

logger = structlog.get_logger()

# Terminal events kept for late subscribers of finished phases
FINISHED_PHASES_KEPT = 1024


class Subscription:
    """Async iterator over the events of one execution for one subscriber."""

    def __init__(self, execution_id: UUID, max_size: int):
        self.execution_id = execution_id
        self.max_size = max_size
        self.dropped = 0
        self._events: deque[ProgressEvent] = deque()
        self._wakeup = asyncio.Event()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, event: ProgressEvent) -> None:
        if self._closed:
            return

        if len(self._events) >= self.max_size:
            for index, queued in enumerate(self._events):
                if not queued.is_terminal:
                    del self._events[index]
                    self.dropped += 1
                    logger.warning(
                        "stream.event_dropped",
                        execution_id=str(self.execution_id),
                        event_type=queued.type.value,
                        dropped_total=self.dropped,
                    )
                    break

        if len(self._events) < self.max_size or event.is_terminal:
            self._events.append(event)
        else:
            self.dropped += 1

        self._wakeup.set()

    def close(self) -> None:
        """End the stream; undelivered events are discarded."""
        self._closed = True
        self._events.clear()
        self._wakeup.set()

    def __aiter__(self):
        return self

    async def __anext__(self) -> ProgressEvent:
        while True:
            if self._events:
                event = self._events.popleft()
                if event.is_terminal:
                    self._closed = True
                return event

            if self._closed:
                raise StopAsyncIteration

            self._wakeup.clear()
            await self._wakeup.wait()


class ProgressStreamer:
    """Routes published events to the current subscription of each execution.

    A newer subscription replaces the older one, which ends. Disconnecting
    never affects the publisher.
    """

    def __init__(self, max_queue_size: int = 256):
        self.max_queue_size = max_queue_size
        self._subscriptions: dict[UUID, Subscription] = {}
        self._active: set[UUID] = set()
        self._finished: OrderedDict[UUID, ProgressEvent] = OrderedDict()

    def begin(self, execution_id: UUID) -> None:
        """Open a new phase: events are accepted until its terminal event."""
        self._active.add(execution_id)
        self._finished.pop(execution_id, None)

    def is_active(self, execution_id: UUID) -> bool:
        return execution_id in self._active

    def publish(self, event: ProgressEvent) -> bool:
        """Deliver an event to the current subscriber, if any.

        Returns:
            False if the event was rejected because the phase is not open
        """
        execution_id = event.execution_id
        if execution_id not in self._active:
            logger.warning(
                "stream.event_after_terminal",
                execution_id=str(execution_id),
                event_type=event.type.value,
            )
            return False

        if event.is_terminal:
            self._active.discard(execution_id)
            self._finished[execution_id] = event
            while len(self._finished) > FINISHED_PHASES_KEPT:
                self._finished.popitem(last=False)

        subscription = self._subscriptions.get(execution_id)
        if subscription is not None:
            subscription.push(event)
            if event.is_terminal:
                self._subscriptions.pop(execution_id, None)
        return True

    def subscribe(self, execution_id: UUID) -> Subscription:
        """Attach a subscriber, replacing any existing one for the execution."""
        previous = self._subscriptions.pop(execution_id, None)
        if previous is not None:
            previous.close()
            logger.info("stream.subscriber_replaced", execution_id=str(execution_id))

        subscription = Subscription(execution_id, self.max_queue_size)

        finished = self._finished.get(execution_id)
        if finished is not None and execution_id not in self._active:
            subscription.push(finished)
            return subscription

        self._subscriptions[execution_id] = subscription
        logger.debug("stream.subscribed", execution_id=str(execution_id))
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Detach a subscriber (client disconnected)."""
        current = self._subscriptions.get(subscription.execution_id)
        if current is subscription:
            self._subscriptions.pop(subscription.execution_id, None)
        subscription.close()
