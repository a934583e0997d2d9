"""
Conversation aggregator

Derives the viewer's conversation list (one entry per counterpart) from the flat
messages table and keeps it patched as change events arrive.

Invariants:
- unread_count equals the number of unread messages from that counterpart
  to the viewer;
- entries are ordered by last_message.created_at descending, ties broken by
  counterpart id ascending.
"""

import asyncio
from typing import Iterable, Optional

from fitsocial.core.logging import get_logger
from fitsocial.messaging.identity import ProfileResolver
from fitsocial.schemas.conversation import ConversationRead, ConversationTab, LastMessage
from fitsocial.schemas.message import MessageRead
from fitsocial.schemas.profile import ProfileRead
from fitsocial.schemas.realtime import ChangeEvent
from fitsocial.services.data_service import DataService
from fitsocial.services.message_service import MessageService

logger = get_logger(__name__)


def counterpart_of(message: MessageRead, viewer_id: str) -> Optional[str]:
    """The other participant, or None when the viewer is not part of the message"""
    if message.sender_id == viewer_id:
        return message.recipient_id
    if message.recipient_id == viewer_id:
        return message.sender_id
    return None


def is_unread_for(message: MessageRead, viewer_id: str) -> bool:
    return message.recipient_id == viewer_id and not message.is_read


def sort_conversations(entries: Iterable[ConversationRead]) -> list[ConversationRead]:
    return sorted(
        entries,
        key=lambda c: (-c.last_message.created_at.timestamp(), c.counterpart.id),
    )


def aggregate_conversations(
    viewer_id: str,
    messages: Iterable[MessageRead],
    profiles: dict[str, ProfileRead],
) -> list[ConversationRead]:
    """
    Walk newest-first messages once. The first message seen for a counterpart
    is its last message; unread counts accumulate across all of its messages.
    Counterparts without a profile are dropped.
    """
    entries: dict[str, ConversationRead] = {}
    for message in messages:
        counterpart_id = counterpart_of(message, viewer_id)
        if counterpart_id is None or counterpart_id == viewer_id:
            continue
        profile = profiles.get(counterpart_id)
        if profile is None:
            continue

        entry = entries.get(counterpart_id)
        if entry is None:
            entry = ConversationRead(
                counterpart=profile,
                last_message=LastMessage(content=message.content, created_at=message.created_at),
            )
            entries[counterpart_id] = entry
        elif message.created_at > entry.last_message.created_at:
            entry.last_message = LastMessage(content=message.content, created_at=message.created_at)

        if is_unread_for(message, viewer_id):
            entry.unread_count += 1

    return sort_conversations(entries.values())


class ConversationAggregator:
    def __init__(
        self,
        data: DataService,
        viewer_id: str,
        resolver: Optional[ProfileResolver] = None,
    ):
        self.viewer_id = viewer_id
        self.resolver = resolver or ProfileResolver(data)
        self.messages = MessageService(data)
        self._entries: dict[str, ConversationRead] = {}
        # Unread message ids per counterpart; unread_count is always the size of its set
        self._unread: dict[str, set[str]] = {}
        # Builds and patches await between reading and writing _entries
        self._lock = asyncio.Lock()

    @property
    def conversations(self) -> list[ConversationRead]:
        return sort_conversations(self._entries.values())

    @property
    def total_unread(self) -> int:
        return sum(entry.unread_count for entry in self._entries.values())

    def get(self, counterpart_id: str) -> Optional[ConversationRead]:
        return self._entries.get(counterpart_id)

    async def build(self) -> list[ConversationRead]:
        """Rebuild from scratch: one message query, one batched profile query."""
        async with self._lock:
            return await self._build()

    refresh = build

    async def _build(self) -> list[ConversationRead]:
        messages = await self.messages.fetch_involving(self.viewer_id)
        counterpart_ids = {
            counterpart_of(message, self.viewer_id) for message in messages
        } - {None, self.viewer_id}
        profiles = await self.resolver.get_profiles(counterpart_ids)

        conversations = aggregate_conversations(self.viewer_id, messages, profiles)
        self._entries = {entry.counterpart.id: entry for entry in conversations}
        self._unread = {}
        for message in messages:
            if is_unread_for(message, self.viewer_id) and message.sender_id in self._entries:
                self._unread.setdefault(message.sender_id, set()).add(message.id)
        return conversations

    def _recount(self, counterpart_id: str) -> None:
        entry = self._entries.get(counterpart_id)
        if entry is not None:
            entry.unread_count = len(self._unread.get(counterpart_id, ()))

    def mark_read(self, counterpart_id: str) -> None:
        self._unread.pop(counterpart_id, None)
        self._recount(counterpart_id)

    def apply_profile_update(self, row: dict) -> bool:
        entry = self._entries.get(row.get("id"))
        if entry is None:
            return False
        entry.counterpart = ProfileRead.model_validate(row)
        return True

    async def apply_message_event(
        self,
        event: ChangeEvent,
        open_counterpart: Optional[str] = None,
    ) -> bool:
        """
        Patch the list for one messages event. Messages for the open counterpart
        still move it to the top but never count as unread, since the open thread
        marks them read. Returns True when the list changed.
        """
        message = MessageRead.model_validate(event.row)
        counterpart_id = counterpart_of(message, self.viewer_id)
        if counterpart_id is None or counterpart_id == self.viewer_id:
            return False

        async with self._lock:
            if event.event_type == "delete":
                await self._build()
                return True

            entry = self._entries.get(counterpart_id)

            if event.event_type == "insert":
                if entry is None:
                    profile = await self.resolver.get_profile(counterpart_id)
                    if profile is None:
                        logger.info(f"Dropping conversation with {counterpart_id}: no profile")
                        return False
                    entry = ConversationRead(
                        counterpart=profile,
                        last_message=LastMessage(content=message.content, created_at=message.created_at),
                    )
                    self._entries[counterpart_id] = entry
                elif message.created_at >= entry.last_message.created_at:
                    entry.last_message = LastMessage(content=message.content, created_at=message.created_at)

                if is_unread_for(message, self.viewer_id) and counterpart_id != open_counterpart:
                    self._unread.setdefault(counterpart_id, set()).add(message.id)
                self._recount(counterpart_id)
                return True

            # update: only a read transition on a counted message changes the list
            unread = self._unread.get(counterpart_id)
            if entry is None or not unread or message.id not in unread:
                return False
            if is_unread_for(message, self.viewer_id):
                return False
            unread.discard(message.id)
            self._recount(counterpart_id)
            return True

    def filter(self, search: Optional[str] = None, tab: ConversationTab = "all") -> list[ConversationRead]:
        term = (search or "").strip().lower()
        result = []
        for entry in self.conversations:
            profile = entry.counterpart
            if term and not (
                term in (profile.full_name or "").lower()
                or term in (profile.username or "").lower()
            ):
                continue
            if tab == "unread" and entry.unread_count == 0:
                continue
            if tab == "online" and not profile.is_online:
                continue
            result.append(entry)
        return result
