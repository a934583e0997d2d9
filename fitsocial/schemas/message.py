"""
Message Schemas
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class MessageRead(BaseModel):
    id: str
    sender_id: str
    recipient_id: str
    content: str
    media_url: Optional[str] = None
    workout_id: Optional[str] = None
    achievement_id: Optional[str] = None
    client_key: Optional[str] = None
    created_at: datetime
    is_read: bool = False
    read_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MessageCreate(BaseModel):
    content: str = Field(max_length=5000)
    workout_id: Optional[str] = None
    achievement_id: Optional[str] = None
    client_key: Optional[str] = Field(default=None, max_length=64)


class MarkReadResult(BaseModel):
    counterpart_id: str
    marked: int
