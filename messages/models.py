from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID
from pydantic import BaseModel, Field


class UserMessage(BaseModel):
    id: UUID
    sender_id: UUID
    recipient_id: UUID
    content: str
    created_at: datetime


class UserMessageCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)


class Conversation(BaseModel):
    counterparty_id: UUID
    counterparty: Optional[Dict[str, Any]] = None
    messages: List[UserMessage] = Field(default_factory=list)


class BusEvent(BaseModel):
    type: str = "user_message"
    data: UserMessage
