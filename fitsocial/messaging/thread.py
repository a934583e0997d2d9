"""
Message thread controller

Owns the open conversation between the viewer and one counterpart.

States: CLOSED -> LOADING -> READY <-> SENDING, and back to CLOSED on close().

Guarantees:
- a response for a conversation that is no longer open is discarded;
- a failed open leaves the thread that was shown untouched and live;
- while a thread is open, no incoming message in it is left unread;
- at most one visible copy of any message, keyed by server id once known.
  Optimistic sends carry a client_key that the stored row (and its echo on the
  change feed) repeats; a business-key match is the fallback.
"""

import asyncio
import enum
import uuid
from typing import Optional

from fitsocial.core.config import settings
from fitsocial.core.errors import AppError, ValidationError
from fitsocial.core.logging import get_logger
from fitsocial.core.time import utc_now
from fitsocial.messaging.conversations import ConversationAggregator, counterpart_of, is_unread_for
from fitsocial.messaging.identity import ProfileResolver
from fitsocial.messaging.notifications import Notifier
from fitsocial.messaging.relationships import RelationshipGate, follow_state, grants_access
from fitsocial.schemas.conversation import ThreadRead
from fitsocial.schemas.follow import FollowRead
from fitsocial.schemas.message import MessageRead
from fitsocial.schemas.profile import ProfileRead
from fitsocial.schemas.realtime import ChangeEvent
from fitsocial.services.data_service import DataService
from fitsocial.services.message_service import (
    MEDIA_PLACEHOLDER,
    MessageService,
    validate_content,
    validate_media,
)

logger = get_logger(__name__)

PENDING_PREFIX = "pending:"


class ThreadState(str, enum.Enum):
    CLOSED = "closed"
    LOADING = "loading"
    READY = "ready"
    SENDING = "sending"


class MessageThreadController:
    def __init__(
        self,
        data: DataService,
        viewer_id: str,
        *,
        resolver: Optional[ProfileResolver] = None,
        gate: Optional[RelationshipGate] = None,
        aggregator: Optional[ConversationAggregator] = None,
        notifier: Optional[Notifier] = None,
        echo_window_seconds: float = settings.echo_match_window_seconds,
    ):
        self.viewer_id = viewer_id
        self.resolver = resolver or ProfileResolver(data)
        self.gate = gate or RelationshipGate(data, self.resolver)
        self.aggregator = aggregator
        self.notifier = notifier or Notifier()
        self.message_service = MessageService(data)
        self.echo_window_seconds = echo_window_seconds

        self.state = ThreadState.CLOSED
        self.counterpart_id: Optional[str] = None
        self.counterpart: Optional[ProfileRead] = None
        self.relationship: Optional[FollowRead] = None
        self.messages: list[MessageRead] = []

        # Bumped whenever the shown thread changes; results for an older generation are stale
        self._generation = 0
        # Bumped on every open/close; only the latest load may take over the thread
        self._load_token = 0
        self._loading_target: Optional[str] = None
        self._pending: dict[str, MessageRead] = {}
        self._buffered: list[ChangeEvent] = []
        self._in_flight = 0

    # Views ---------------------------------------------------------------
    @property
    def can_message(self) -> bool:
        if self.counterpart is None:
            return False
        return grants_access(self.counterpart, self.relationship)

    @property
    def is_open(self) -> bool:
        return self.state in (ThreadState.READY, ThreadState.SENDING)

    def snapshot(self) -> ThreadRead:
        return ThreadRead(
            state=self.state.value,
            counterpart=self.counterpart,
            messages=list(self.messages),
            can_message=self.can_message,
            follow_status=follow_state(self.relationship),
        )

    # Lifecycle -----------------------------------------------------------
    async def open(self, target_id: str) -> bool:
        """
        Load the thread with target_id. Profile, history and follow status are
        fetched concurrently; READY is entered only once all of them resolved
        and the loaded unread messages were marked read.

        The thread already shown stays live until the new one has loaded, so a
        failed open leaves it exactly as it was.
        """
        if target_id == self.viewer_id:
            self.notifier.error("You cannot message yourself")
            return False

        self._load_token += 1
        token = self._load_token
        self._loading_target = target_id
        self._buffered = []
        self.state = ThreadState.LOADING

        try:
            profile, history, relationship = await asyncio.gather(
                self.resolver.get_profile(target_id),
                self.message_service.fetch_history(self.viewer_id, target_id),
                self.gate.relationship(self.viewer_id, target_id),
            )
        except AppError as e:
            if token != self._load_token:
                return False
            logger.error(f"Loading thread {self.viewer_id}->{target_id} failed: {e.message}")
            await self._abort_load()
            self.notifier.error("Failed to load conversation")
            return False

        if token != self._load_token:
            logger.debug(f"Discarding stale thread load for {target_id}")
            return False
        if profile is None:
            await self._abort_load()
            self.notifier.error("User not found")
            return False

        self._generation += 1
        generation = self._generation
        self._in_flight = 0
        self._pending = {}
        self.counterpart_id = target_id
        self.counterpart = profile
        self.relationship = relationship
        self.messages = history

        await self._mark_loaded_read(generation)
        if generation != self._generation:
            return False

        self.state = ThreadState.READY
        self._loading_target = None
        buffered, self._buffered = self._buffered, []
        for event in buffered:
            await self._apply(event)
        return True

    def close(self) -> None:
        self._generation += 1
        self._load_token += 1
        self._loading_target = None
        self._in_flight = 0
        self.state = ThreadState.CLOSED
        self.counterpart_id = None
        self.counterpart = None
        self.relationship = None
        self.messages = []
        self._pending = {}
        self._buffered = []

    async def _abort_load(self) -> None:
        # events buffered for a reopen of the shown thread still belong to it
        buffered = self._buffered if self._loading_target == self.counterpart_id else []
        self._loading_target = None
        self._buffered = []
        if self.counterpart is None:
            self.state = ThreadState.CLOSED
        elif self._in_flight:
            self.state = ThreadState.SENDING
        else:
            self.state = ThreadState.READY
        for event in buffered:
            await self._apply(event)

    async def _mark_loaded_read(self, generation: int) -> None:
        target_id = self.counterpart_id
        if any(is_unread_for(m, self.viewer_id) for m in self.messages):
            try:
                updated = await self.message_service.mark_conversation_read(self.viewer_id, target_id)
            except AppError as e:
                logger.error(f"Marking thread with {target_id} read failed: {e.message}")
                self.notifier.error("Failed to mark messages as read")
                return
            if generation != self._generation:
                return
            for message in updated:
                self._replace(message)

        if self.aggregator is not None:
            self.aggregator.mark_read(target_id)
            try:
                await self.aggregator.refresh()
            except AppError as e:
                logger.error(f"Refreshing conversations failed: {e.message}")
                self.notifier.error("Failed to refresh conversations")

    async def reload_relationship(self) -> None:
        if self.counterpart_id is None:
            return
        generation = self._generation
        try:
            relationship = await self.gate.relationship(self.viewer_id, self.counterpart_id)
        except AppError as e:
            self.notifier.error("Failed to check follow status")
            logger.error(f"Follow status lookup failed: {e.message}")
            return
        if generation == self._generation:
            self.relationship = relationship

    # Live updates --------------------------------------------------------
    def apply_profile_update(self, row: dict) -> bool:
        if self.counterpart is None or row.get("id") != self.counterpart_id:
            return False
        self.counterpart = ProfileRead.model_validate(row)
        return True

    async def handle_message_event(self, event: ChangeEvent) -> bool:
        """Apply an event that belongs to the open thread. Returns False for any other event."""
        message = MessageRead.model_validate(event.row)
        counterpart_id = counterpart_of(message, self.viewer_id)
        if counterpart_id is None:
            return False
        if counterpart_id == self._loading_target:
            self._buffered.append(event)
            return True
        if self.counterpart is None or counterpart_id != self.counterpart_id:
            return False
        await self._apply(event)
        return True

    async def _apply(self, event: ChangeEvent) -> None:
        message = MessageRead.model_validate(event.row)
        if event.event_type == "insert":
            await self._merge_insert(message)
        elif event.event_type == "update":
            self._replace(message)
        else:
            self.messages = [m for m in self.messages if m.id != message.id]

    async def _merge_insert(self, message: MessageRead) -> None:
        index = self._index_of(message.id)
        if index is not None:
            # already shown; the shown copy is at least as new as the insert image
            message = self.messages[index]
        else:
            key = self._match_pending(message)
            if key is not None:
                self._confirm(key, message)
            else:
                self.messages.append(message)

        if is_unread_for(message, self.viewer_id):
            await self._mark_read_now(message)

    async def _mark_read_now(self, message: MessageRead) -> None:
        generation = self._generation
        try:
            updated = await self.message_service.mark_message_read(self.viewer_id, message.id)
        except AppError as e:
            logger.error(f"Marking message {message.id} read failed: {e.message}")
            return
        if generation == self._generation:
            for row in updated:
                self._replace(row)

    # Reconciliation ------------------------------------------------------
    def _index_of(self, message_id: str) -> Optional[int]:
        for index, existing in enumerate(self.messages):
            if existing.id == message_id:
                return index
        return None

    def _replace(self, message: MessageRead) -> bool:
        index = self._index_of(message.id)
        if index is None:
            return False
        self.messages[index] = message
        return True

    def _match_pending(self, message: MessageRead) -> Optional[str]:
        if message.sender_id != self.viewer_id or not self._pending:
            return None
        if message.client_key and message.client_key in self._pending:
            return message.client_key
        for key, pending in self._pending.items():
            if (
                pending.recipient_id == message.recipient_id
                and pending.content == message.content
                and pending.media_url == message.media_url
                and abs((message.created_at - pending.created_at).total_seconds()) <= self.echo_window_seconds
            ):
                return key
        return None

    def _confirm(self, key: str, stored: MessageRead) -> None:
        """Swap the optimistic entry for the stored row, or drop it if the row is already shown"""
        pending = self._pending.pop(key, None)
        placeholder = self._index_of(pending.id) if pending else None
        if self._index_of(stored.id) is not None:
            if placeholder is not None:
                del self.messages[placeholder]
        elif placeholder is not None:
            self.messages[placeholder] = stored

    def _revert(self, key: str) -> None:
        pending = self._pending.pop(key, None)
        if pending is not None:
            self.messages = [m for m in self.messages if m.id != pending.id]

    # Sending -------------------------------------------------------------
    def _begin_send(self) -> int:
        self._in_flight += 1
        self.state = ThreadState.SENDING
        return self._generation

    def _end_send(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._in_flight -= 1
        if self._in_flight == 0 and self.state == ThreadState.SENDING:
            self.state = ThreadState.READY

    async def send(
        self,
        content: str,
        *,
        workout_id: Optional[str] = None,
        achievement_id: Optional[str] = None,
    ) -> Optional[MessageRead]:
        """
        Optimistically append, insert, then reconcile with the stored row.
        Returns the stored message, or None when nothing was sent.
        """
        if not self.is_open or not self.can_message:
            return None
        try:
            text = validate_content(content)
        except ValidationError as e:
            self.notifier.error(e.message)
            return None

        target_id = self.counterpart_id
        key = uuid.uuid4().hex
        optimistic = MessageRead(
            id=f"{PENDING_PREFIX}{key}",
            sender_id=self.viewer_id,
            recipient_id=target_id,
            content=text,
            workout_id=workout_id,
            achievement_id=achievement_id,
            client_key=key,
            created_at=utc_now(),
            is_read=False,
        )
        self.messages.append(optimistic)
        self._pending[key] = optimistic

        generation = self._begin_send()
        try:
            stored = await self.message_service.send(
                self.viewer_id,
                target_id,
                text,
                workout_id=workout_id,
                achievement_id=achievement_id,
                client_key=key,
            )
        except AppError as e:
            logger.error(f"Sending to {target_id} failed: {e.message}")
            if generation == self._generation:
                self._revert(key)
            self.notifier.error("Failed to send message")
            return None
        finally:
            self._end_send(generation)

        # the echo may already have reconciled it
        if generation == self._generation and key in self._pending:
            self._confirm(key, stored)
        return stored

    async def send_media(
        self,
        filename: Optional[str],
        content_type: Optional[str],
        data: bytes,
    ) -> Optional[MessageRead]:
        """
        Validate locally, upload fully, then insert the message that references
        the uploaded file. Nothing is uploaded or inserted when validation fails.
        """
        if not self.is_open or not self.can_message:
            return None
        try:
            validate_media(content_type, len(data))
        except ValidationError as e:
            self.notifier.error(e.message)
            return None

        target_id = self.counterpart_id
        generation = self._begin_send()
        try:
            media_url = await self.message_service.upload_media(self.viewer_id, filename, content_type, data)
            stored = await self.message_service.send(
                self.viewer_id,
                target_id,
                MEDIA_PLACEHOLDER,
                media_url=media_url,
                client_key=uuid.uuid4().hex,
            )
        except AppError as e:
            logger.error(f"Sending image to {target_id} failed: {e.message}")
            self.notifier.error("Failed to send image")
            return None
        finally:
            self._end_send(generation)

        if generation == self._generation and self._index_of(stored.id) is None:
            self.messages.append(stored)
        self.notifier.success("Image sent successfully")
        return stored
