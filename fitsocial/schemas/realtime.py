"""
Realtime Schemas

Row-level change events delivered by the change feed.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel

EventType = Literal["insert", "update", "delete"]


class ChangeEvent(BaseModel):
    event_type: EventType
    table: str
    row: dict[str, Any]
    # Pre-image for updates and deletes
    old: Optional[dict[str, Any]] = None
