"""
Conversation Schemas

Conversations are derived from the messages table and never stored.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel

from fitsocial.schemas.follow import FollowState
from fitsocial.schemas.message import MessageRead
from fitsocial.schemas.profile import ProfileRead

ConversationTab = Literal["all", "unread", "online"]


class LastMessage(BaseModel):
    content: str
    created_at: datetime


class ConversationRead(BaseModel):
    counterpart: ProfileRead
    last_message: LastMessage
    unread_count: int = 0


class ThreadRead(BaseModel):
    state: str
    counterpart: Optional[ProfileRead] = None
    messages: list[MessageRead] = []
    can_message: bool = False
    follow_status: FollowState = "none"


class UnreadTotal(BaseModel):
    unread: int
