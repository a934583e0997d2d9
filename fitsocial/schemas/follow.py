"""
Relationship Schemas
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel

from fitsocial.schemas.profile import ProfileRead

FollowState = Literal["none", "pending", "accepted"]


class FollowRead(BaseModel):
    id: str
    follower_id: str
    following_id: str
    status: Literal["pending", "accepted", "rejected"]
    created_at: datetime

    class Config:
        from_attributes = True


class FollowRequest(BaseModel):
    """Incoming follow request with the requester's profile"""

    id: str
    follower: ProfileRead
    created_at: datetime


class RelationshipSummary(BaseModel):
    target_id: str
    follow_status: FollowState
    incoming_status: FollowState
    can_message: bool
    can_view_private_content: bool
    is_blocked: bool
    follower_count: int
    following_count: int


class FollowActionResult(BaseModel):
    target_id: str
    follow_status: FollowState
    follow_id: Optional[str] = None


class BlockRead(BaseModel):
    id: str
    blocker_id: str
    blocked_id: str
    created_at: datetime

    class Config:
        from_attributes = True


class BlockedUserRead(BaseModel):
    profile: ProfileRead
    blocked_at: datetime
