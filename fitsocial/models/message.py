"""
Direct Message Model - One-to-one messages between profiles
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, validates

from fitsocial.core.time import utc_now
from fitsocial.models.base import Base, new_uuid


class Message(Base):
    """Direct message between two profiles"""

    __tablename__ = "messages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    sender_id: Mapped[str] = mapped_column(String(36), ForeignKey("profiles.id"), nullable=False)
    recipient_id: Mapped[str] = mapped_column(String(36), ForeignKey("profiles.id"), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    media_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    # Rich-content markers
    workout_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    achievement_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    # Correlation key supplied by the sending client for optimistic reconciliation
    client_key: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utc_now)
    is_read: Mapped[bool] = mapped_column(default=False, nullable=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)

    # Indexes for efficient queries
    __table_args__ = (
        Index("idx_messages_sender_recipient", "sender_id", "recipient_id"),
        Index("idx_messages_recipient_is_read", "recipient_id", "is_read"),
        Index("idx_messages_created_at", "created_at"),
        Index("idx_messages_client_key", "client_key"),
    )

    @validates("is_read")
    def _validate_is_read(self, key: str, value: bool) -> bool:
        # is_read is monotonic; read_at is stamped together with the transition
        if self.is_read and not value:
            raise ValueError("is_read cannot revert to false")
        if value and self.read_at is None:
            self.read_at = utc_now()
        return value
