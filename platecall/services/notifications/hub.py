"""In-process change notification channel for call session rows."""
import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Set

from platecall.services.call_session.models import CallEvent

logger = logging.getLogger(__name__)


class CallEventHub:
    """Fans out call session events to subscribers filtered by owner id.

    Delivery is best effort: a subscriber whose queue is full misses the
    event, and owner clients recover it through polling.
    """

    def __init__(self, max_queue_size: int = 100):
        self.max_queue_size = max_queue_size
        self._subscribers: Dict[str, Set[asyncio.Queue]] = defaultdict(set)

    def publish(self, event: CallEvent) -> int:
        """Deliver an event to the owner's subscribers. Returns the delivery count."""
        owner_id = event.call.owner_id
        delivered = 0
        for queue in list(self._subscribers.get(owner_id, ())):
            try:
                queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                logger.debug(
                    f"[EVENTS] Dropped {event.type} for call {event.call.id}: "
                    f"subscriber queue full (owner {owner_id})"
                )
        return delivered

    @asynccontextmanager
    async def subscribe(self, owner_id: str) -> AsyncIterator[asyncio.Queue]:
        """Register a queue receiving the owner's events for the block's duration."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_queue_size)
        self._subscribers[owner_id].add(queue)
        logger.debug(f"[EVENTS] Subscriber added for owner {owner_id}")
        try:
            yield queue
        finally:
            subscribers = self._subscribers.get(owner_id)
            if subscribers is not None:
                subscribers.discard(queue)
                if not subscribers:
                    del self._subscribers[owner_id]
            logger.debug(f"[EVENTS] Subscriber removed for owner {owner_id}")

    def subscriber_count(self, owner_id: str) -> int:
        return len(self._subscribers.get(owner_id, ()))

    def stream_count(self) -> int:
        """Open subscriptions across all owners."""
        return sum(len(queues) for queues in self._subscribers.values())


def format_sse(event: CallEvent) -> str:
    """Encode an event as a server-sent events frame."""
    return f"event: {event.type}\ndata: {event.call.model_dump_json()}\n\n"


call_event_hub = CallEventHub()
