"""
In-process event bus for call notifications.
Each open SSE stream subscribes a queue under its user's ID; webhooks
publish to every queue of that user. Nothing crosses user boundaries.
"""

import asyncio
import logging
from typing import Optional

from .logger import mask_user_id

logger = logging.getLogger(__name__)

# Events a slow consumer may buffer before new ones are dropped for it
MAX_QUEUE_SIZE = 100

NEW_CALL = "new-call"
CALL_UPDATED = "call-updated"


class CallEventBus:

    def __init__(self, max_queue_size: int = MAX_QUEUE_SIZE):
        self.max_queue_size = max_queue_size
        self._subscribers: dict[str, set[asyncio.Queue]] = {}

    def subscribe(self, user_id: str) -> asyncio.Queue:
        queue = asyncio.Queue(maxsize=self.max_queue_size)
        self._subscribers.setdefault(user_id, set()).add(queue)
        logger.debug(f"Subscribed to call updates: {mask_user_id(user_id)}")
        return queue

    def unsubscribe(self, user_id: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(user_id)
        if not queues:
            return
        queues.discard(queue)
        if not queues:
            del self._subscribers[user_id]

    def publish(self, user_id: str, event: str, data: Optional[dict] = None) -> int:
        """
        Deliver an event to every stream of this user.
        Returns how many subscribers received it.
        """
        message = {"type": event, "data": data or {}}
        delivered = 0

        for queue in list(self._subscribers.get(user_id, ())):
            try:
                queue.put_nowait(message)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning(f"Dropping {event} for a slow subscriber of {mask_user_id(user_id)}")

        return delivered

    def listener_count(self, user_id: Optional[str] = None) -> int:
        if user_id is not None:
            return len(self._subscribers.get(user_id, ()))
        return sum(len(queues) for queues in self._subscribers.values())


call_events = CallEventBus()
