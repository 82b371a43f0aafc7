"""In-memory publish/subscribe for pushing new messages to live connections.

One MessageBus belongs to one server instance. Publishing is synchronous
and never suspends, so handlers must not block; QueueHandler hands events
to an asyncio task that owns the slow websocket write.
"""

import asyncio
import itertools
import logging
from typing import Callable, Dict, Optional
from uuid import UUID

from .models import UserMessage

logger = logging.getLogger(__name__)

Handler = Callable[[UserMessage], None]

DEFAULT_QUEUE_SIZE = 100


class Subscription:
    """Handle returned by MessageBus.subscribe."""

    __slots__ = ('id', 'user_id', 'handler')

    def __init__(self, id: int, user_id: UUID, handler: Handler):
        self.id = id
        self.user_id = user_id
        self.handler = handler

    def __repr__(self):
        return f"Subscription(id={self.id}, user_id={self.user_id})"


class MessageBus:
    """Fans each published message out to the handlers of its recipient."""

    def __init__(self):
        self._subscriptions: Dict[int, Subscription] = {}
        self._ids = itertools.count(1)

    def subscribe(self, user_id: UUID, handler: Handler) -> Subscription:
        """Register handler for messages addressed to user_id."""
        subscription = Subscription(next(self._ids), user_id, handler)
        self._subscriptions[subscription.id] = subscription
        logger.debug(f"Subscribed {subscription}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscription. Removing one twice is a no-op."""
        if self._subscriptions.pop(subscription.id, None) is not None:
            logger.debug(f"Unsubscribed {subscription}")

    def publish(self, message: UserMessage) -> int:
        """Deliver message to every handler bound to its recipient.

        Handlers added or removed while publishing do not affect this
        delivery. A failing handler is logged and the rest still run.

        Returns:
            Number of handlers that accepted the message
        """
        delivered = 0
        for subscription in list(self._subscriptions.values()):
            if subscription.user_id != message.recipient_id:
                continue
            try:
                subscription.handler(message)
                delivered += 1
            except Exception as e:
                logger.error(f"Handler of {subscription} failed: {e}")
        return delivered

    def subscriber_count(self, user_id: Optional[UUID] = None) -> int:
        if user_id is None:
            return len(self._subscriptions)
        return sum(1 for s in self._subscriptions.values() if s.user_id == user_id)


class QueueHandler:
    """Bus handler that buffers messages for one websocket.

    Messages beyond maxsize are dropped, since delivery is best effort and
    the full thread can always be fetched again.
    """

    def __init__(self, maxsize: int = DEFAULT_QUEUE_SIZE):
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)

    def __call__(self, message: UserMessage) -> None:
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning(f"Live queue full, dropping message {message.id}")

    async def get(self) -> UserMessage:
        return await self.queue.get()


__all__ = ['MessageBus', 'Subscription', 'QueueHandler']
