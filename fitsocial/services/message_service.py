"""
Message Service

Backend calls for direct messages. Shared by the thread controller and the REST API.
"""

import mimetypes
import uuid
from typing import Optional

from fitsocial.core.config import settings
from fitsocial.core.errors import ValidationError
from fitsocial.core.time import utc_now
from fitsocial.schemas.message import MessageRead
from fitsocial.services.data_service import DataService, Row

MEDIA_PLACEHOLDER = "Sent an image"


def between(a: str, b: str) -> list[dict[str, str]]:
    """Filter groups matching messages in either direction between a and b"""
    return [
        {"sender_id": a, "recipient_id": b},
        {"sender_id": b, "recipient_id": a},
    ]


def validate_content(content: Optional[str]) -> str:
    text = (content or "").strip()
    if not text:
        raise ValidationError("Message cannot be empty")
    return text


def validate_media(content_type: Optional[str], size: int) -> None:
    """Reject anything that is not an image or is over the size limit"""
    if not content_type or not content_type.startswith("image/"):
        raise ValidationError("Please select an image file")
    if size > settings.media_max_bytes:
        limit_mb = settings.media_max_bytes // (1024 * 1024)
        raise ValidationError(f"File size must be less than {limit_mb}MB")


class MessageService:
    def __init__(self, data: DataService):
        self.data = data

    async def fetch_history(self, viewer_id: str, counterpart_id: str) -> list[MessageRead]:
        """Both directions, oldest first"""
        rows = await self.data.query(
            "messages",
            any_of=between(viewer_id, counterpart_id),
            order_by="created_at",
        )
        return [MessageRead.model_validate(row) for row in rows]

    async def fetch_involving(self, viewer_id: str) -> list[MessageRead]:
        """Every message the viewer sent or received, newest first"""
        rows = await self.data.query(
            "messages",
            any_of=[{"sender_id": viewer_id}, {"recipient_id": viewer_id}],
            order_by="created_at",
            descending=True,
        )
        return [MessageRead.model_validate(row) for row in rows]

    async def mark_conversation_read(self, viewer_id: str, counterpart_id: str) -> list[MessageRead]:
        """Mark every unread message from counterpart to viewer as read in one update"""
        rows = await self.data.update(
            "messages",
            {"recipient_id": viewer_id, "sender_id": counterpart_id, "is_read": False},
            {"is_read": True, "read_at": utc_now()},
        )
        return [MessageRead.model_validate(row) for row in rows]

    async def mark_message_read(self, viewer_id: str, message_id: str) -> list[MessageRead]:
        rows = await self.data.update(
            "messages",
            {"id": message_id, "recipient_id": viewer_id, "is_read": False},
            {"is_read": True, "read_at": utc_now()},
        )
        return [MessageRead.model_validate(row) for row in rows]

    async def send(
        self,
        sender_id: str,
        recipient_id: str,
        content: str,
        *,
        media_url: Optional[str] = None,
        workout_id: Optional[str] = None,
        achievement_id: Optional[str] = None,
        client_key: Optional[str] = None,
    ) -> MessageRead:
        record: Row = {
            "sender_id": sender_id,
            "recipient_id": recipient_id,
            "content": validate_content(content),
            "media_url": media_url,
            "workout_id": workout_id,
            "achievement_id": achievement_id,
            "client_key": client_key,
            "is_read": False,
        }
        row = await self.data.insert("messages", record)
        return MessageRead.model_validate(row)

    async def upload_media(
        self,
        sender_id: str,
        filename: Optional[str],
        content_type: Optional[str],
        data: bytes,
    ) -> str:
        """Validate first, then upload; returns the public URL"""
        validate_media(content_type, len(data))
        if filename and "." in filename:
            suffix = "".join(c for c in filename.rsplit(".", 1)[-1].lower() if c.isalnum())
            extension = f".{suffix[:10]}" if suffix else ""
        else:
            extension = mimetypes.guess_extension(content_type or "") or ""
        path = f"{sender_id}/{uuid.uuid4().hex}{extension}"
        return await self.data.upload_blob(settings.media_bucket, path, data, content_type)
