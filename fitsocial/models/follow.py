"""
Relationship Models

Follow relationships and user blocks.
"""

from datetime import datetime

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fitsocial.core.time import utc_now
from fitsocial.models.base import Base, new_uuid

FOLLOW_STATUSES = ("pending", "accepted", "rejected")


class Follow(Base):
    __tablename__ = "follows"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    follower_id: Mapped[str] = mapped_column(String(36), ForeignKey("profiles.id"), nullable=False)
    following_id: Mapped[str] = mapped_column(String(36), ForeignKey("profiles.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utc_now)

    __table_args__ = (
        UniqueConstraint("follower_id", "following_id", name="uq_follows_pair"),
        CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected')", name="status_valid"
        ),
        Index("idx_follows_following_status", "following_id", "status"),
    )


class BlockedUser(Base):
    __tablename__ = "blocked_users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    blocker_id: Mapped[str] = mapped_column(String(36), ForeignKey("profiles.id"), nullable=False)
    blocked_id: Mapped[str] = mapped_column(String(36), ForeignKey("profiles.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utc_now)

    __table_args__ = (
        UniqueConstraint("blocker_id", "blocked_id", name="uq_blocked_users_pair"),
    )
