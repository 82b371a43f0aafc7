"""Direct messages between users.

This module provides:
1. Storing messages and pushing them to live connections through a MessageBus
2. Grouping a user's messages into one conversation per counterparty
3. Loading the thread between two users
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Union
from uuid import UUID

from auth import PUBLIC_USER_FIELDS
from database import get_pool
from .bus import MessageBus, Subscription, QueueHandler
from .models import UserMessage, UserMessageCreate, Conversation, BusEvent

logger = logging.getLogger(__name__)

MESSAGE_COLUMNS = 'id, sender_id, recipient_id, content, created_at'


class MessageError(Exception):
    """Base exception for message operations."""
    pass


class EmptyMessageError(MessageError):
    """Raised when message content is blank."""
    pass


class UserNotFoundError(MessageError):
    """Raised when the recipient does not exist."""
    pass


def counterparty_of(user_id: UUID, message: UserMessage) -> UUID:
    """The other party of a message, or user_id itself for a note to self."""
    if message.sender_id == user_id:
        return message.recipient_id
    return message.sender_id


def group_conversations(user_id: UUID, messages: Iterable[UserMessage]) -> List[Conversation]:
    """Partition a user's messages by counterparty.

    Messages keep their input order within each conversation; conversations
    are ordered by their first message. Messages not involving user_id are
    ignored.
    """
    conversations: Dict[UUID, Conversation] = {}
    for message in messages:
        if user_id not in (message.sender_id, message.recipient_id):
            continue
        key = counterparty_of(user_id, message)
        if key not in conversations:
            conversations[key] = Conversation(counterparty_id=key)
        conversations[key].messages.append(message)
    return list(conversations.values())


class MessageManager:
    """Manager class for direct messages."""

    def __init__(self, pool=None, bus: Optional[MessageBus] = None):
        """Initialize the message manager.

        Args:
            pool: Optional database pool. If not provided, will get from database module.
            bus: Bus new messages are published to. Without one nothing is pushed.
        """
        self.pool = pool
        self.bus = bus

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def _public_users(self, conn, user_ids: List[UUID]) -> Dict[UUID, Dict[str, Any]]:
        if not user_ids:
            return {}
        rows = await conn.fetch(
            f"SELECT {', '.join(PUBLIC_USER_FIELDS)} FROM users WHERE id = ANY($1::uuid[])",
            user_ids
        )
        return {row['id']: dict(row) for row in rows}

    async def threads_for(self, user_id: Union[str, UUID]) -> List[Conversation]:
        """All conversations of a user, each oldest message first."""
        await self.ensure_pool()
        user_id = UUID(str(user_id))

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f'''
                SELECT {MESSAGE_COLUMNS}
                FROM user_messages
                WHERE sender_id = $1 OR recipient_id = $1
                ORDER BY created_at ASC, id ASC
                ''',
                user_id
            )
            conversations = group_conversations(user_id, [UserMessage(**dict(row)) for row in rows])
            users = await self._public_users(conn, [c.counterparty_id for c in conversations])

        for conversation in conversations:
            conversation.counterparty = users.get(conversation.counterparty_id)
        return conversations

    async def thread(
        self,
        user_id: Union[str, UUID],
        counterparty_id: Union[str, UUID]
    ) -> List[UserMessage]:
        """Messages between two users, oldest first."""
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f'''
                SELECT {MESSAGE_COLUMNS}
                FROM user_messages
                WHERE (sender_id = $1 AND recipient_id = $2)
                OR (sender_id = $2 AND recipient_id = $1)
                ORDER BY created_at ASC, id ASC
                ''',
                UUID(str(user_id)),
                UUID(str(counterparty_id))
            )
        return [UserMessage(**dict(row)) for row in rows]

    async def send_message(
        self,
        sender_id: Union[str, UUID],
        recipient_id: Union[str, UUID],
        content: str
    ) -> UserMessage:
        """Store a message and push it to the recipient's live connections.

        Raises:
            EmptyMessageError: If content is blank
            UserNotFoundError: If the recipient does not exist
        """
        content = (content or '').strip()
        if not content:
            raise EmptyMessageError("Message cannot be empty")

        await self.ensure_pool()
        recipient_id = UUID(str(recipient_id))

        async with self.pool.acquire() as conn:
            exists = await conn.fetchval('SELECT 1 FROM users WHERE id = $1', recipient_id)
            if not exists:
                raise UserNotFoundError(f"User {recipient_id} not found")

            row = await conn.fetchrow(
                f'''
                INSERT INTO user_messages (sender_id, recipient_id, content)
                VALUES ($1, $2, $3)
                RETURNING {MESSAGE_COLUMNS}
                ''',
                UUID(str(sender_id)),
                recipient_id,
                content
            )

        message = UserMessage(**dict(row))

        if self.bus is not None:
            try:
                delivered = self.bus.publish(message)
                logger.debug(f"Message {message.id} pushed to {delivered} connection(s)")
            except Exception as e:
                logger.error(f"Error publishing message {message.id}: {e}")

        return message


__all__ = [
    'MessageManager',
    'MessageBus',
    'Subscription',
    'QueueHandler',
    'UserMessage',
    'UserMessageCreate',
    'Conversation',
    'BusEvent',
    'MessageError',
    'EmptyMessageError',
    'UserNotFoundError',
    'group_conversations',
    'counterparty_of'
]
