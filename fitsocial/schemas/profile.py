"""
Profile Schemas
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ProfileRead(BaseModel):
    id: str
    username: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    is_profile_private: bool = False
    is_online: bool = False
    last_seen: Optional[datetime] = None

    class Config:
        from_attributes = True

    @property
    def display_name(self) -> str:
        """Full name when set, otherwise the username"""
        return self.full_name or self.username or "User"


class ProfileUpsert(BaseModel):
    username: Optional[str] = Field(default=None, max_length=50)
    full_name: Optional[str] = Field(default=None, max_length=100)
    avatar_url: Optional[str] = Field(default=None, max_length=500)
    is_profile_private: Optional[bool] = None
