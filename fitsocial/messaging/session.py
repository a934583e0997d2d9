"""
Messaging session

The mounted messages view for one viewer: conversation list, open thread,
presence heartbeat and exactly one subscription each for message and profile
changes. mount() and unmount() own the whole lifecycle.
"""

import inspect
from typing import Any, Awaitable, Callable, Optional, Union

from fitsocial.core.config import settings
from fitsocial.core.errors import AppError, ConflictError, PartialOperationError
from fitsocial.core.logging import get_logger
from fitsocial.messaging.conversations import ConversationAggregator
from fitsocial.messaging.identity import ProfileResolver
from fitsocial.messaging.notifications import Notifier
from fitsocial.messaging.presence import PresenceHeartbeat, describe_presence
from fitsocial.messaging.relationships import RelationshipGate
from fitsocial.messaging.thread import MessageThreadController
from fitsocial.realtime.feed import Subscription
from fitsocial.schemas.message import MessageRead
from fitsocial.schemas.realtime import ChangeEvent
from fitsocial.services.data_service import DataService

logger = get_logger(__name__)

ChangeListener = Callable[[], Union[None, Awaitable[None]]]


class MessagingSession:
    def __init__(
        self,
        data: DataService,
        viewer_id: str,
        *,
        notifier: Optional[Notifier] = None,
        heartbeat_interval: float = settings.presence_interval_seconds,
    ):
        self.data = data
        self.viewer_id = viewer_id
        self.notifier = notifier or Notifier()
        self.resolver = ProfileResolver(data)
        self.gate = RelationshipGate(data, self.resolver)
        self.aggregator = ConversationAggregator(data, viewer_id, self.resolver)
        self.thread = MessageThreadController(
            data,
            viewer_id,
            resolver=self.resolver,
            gate=self.gate,
            aggregator=self.aggregator,
            notifier=self.notifier,
        )
        self.heartbeat = PresenceHeartbeat(data, viewer_id, heartbeat_interval)
        self._message_sub: Optional[Subscription] = None
        self._profile_sub: Optional[Subscription] = None
        self._listeners: list[ChangeListener] = []

    @property
    def mounted(self) -> bool:
        return self._message_sub is not None

    def add_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    async def _changed(self) -> None:
        for listener in list(self._listeners):
            result = listener()
            if inspect.isawaitable(result):
                await result

    # Lifecycle -----------------------------------------------------------
    async def mount(self) -> None:
        if self.mounted:
            return
        self._message_sub = self.data.subscribe("messages", self._on_message_event)
        self._profile_sub = self.data.subscribe("profiles", self._on_profile_event)
        try:
            await self.aggregator.build()
        except AppError as e:
            logger.error(f"Loading conversations for {self.viewer_id} failed: {e.message}")
            self.notifier.error("Failed to load conversations")
        await self.heartbeat.start()
        logger.info(f"Messaging session mounted for {self.viewer_id}")

    async def unmount(self) -> None:
        for subscription in (self._message_sub, self._profile_sub):
            if subscription is not None:
                subscription.unsubscribe()
        self._message_sub = None
        self._profile_sub = None
        self.thread.close()
        await self.heartbeat.stop()
        logger.info(f"Messaging session unmounted for {self.viewer_id}")

    # Change routing ------------------------------------------------------
    async def _on_message_event(self, event: ChangeEvent) -> None:
        row = event.row
        if self.viewer_id not in (row.get("sender_id"), row.get("recipient_id")):
            return
        # list first: the thread's read update for this row must find it counted
        changed = await self.aggregator.apply_message_event(
            event, open_counterpart=self.thread.counterpart_id
        )
        consumed = await self.thread.handle_message_event(event)
        if consumed or changed:
            await self._changed()

    async def _on_profile_event(self, event: ChangeEvent) -> None:
        if event.event_type != "update":
            return
        in_list = self.aggregator.apply_profile_update(event.row)
        in_thread = self.thread.apply_profile_update(event.row)
        if in_list or in_thread:
            await self._changed()

    # Actions -------------------------------------------------------------
    async def refresh(self) -> None:
        try:
            await self.aggregator.refresh()
        except AppError as e:
            logger.error(f"Refreshing conversations failed: {e.message}")
            self.notifier.error("Failed to load conversations")
        await self._changed()

    async def open_conversation(self, target_id: str) -> bool:
        opened = await self.thread.open(target_id)
        await self._changed()
        return opened

    async def close_conversation(self) -> None:
        self.thread.close()
        await self._changed()

    async def send(self, content: str, **markers: Any) -> Optional[MessageRead]:
        message = await self.thread.send(content, **markers)
        await self._changed()
        return message

    async def send_media(self, filename: Optional[str], content_type: Optional[str], data: bytes) -> Optional[MessageRead]:
        message = await self.thread.send_media(filename, content_type, data)
        await self._changed()
        return message

    async def toggle_follow(self) -> None:
        target_id = self.thread.counterpart_id
        if target_id is None:
            return
        previous = self.thread.relationship
        try:
            result = await self.gate.toggle_follow(self.viewer_id, target_id)
        except AppError as e:
            logger.error(f"Follow toggle {self.viewer_id}->{target_id} failed: {e.message}")
            self.thread.relationship = previous
            self.notifier.error("Failed to update follow status")
            return

        if result.follow_status == "pending":
            self.notifier.success("Follow request sent")
        elif result.follow_status == "accepted":
            self.notifier.success("Following successfully")
        elif previous is not None and previous.status == "pending":
            self.notifier.success("Follow request cancelled")
        else:
            self.notifier.success("Unfollowed successfully")

        await self.thread.reload_relationship()
        await self._changed()

    async def block_counterpart(self) -> bool:
        target_id = self.thread.counterpart_id
        if target_id is None:
            return False
        try:
            await self.gate.block_user(self.viewer_id, target_id)
        except ConflictError:
            self.notifier.error("User is already blocked")
            return False
        except PartialOperationError as e:
            self.notifier.error(f"User blocked, but cleanup failed: {', '.join(e.failed)}")
        except AppError as e:
            logger.error(f"Block {self.viewer_id}->{target_id} failed: {e.message}")
            self.notifier.error("Failed to block user")
            return False
        else:
            self.notifier.success("User blocked successfully")

        self.thread.close()
        await self.refresh()
        return True

    # Rendering -----------------------------------------------------------
    def snapshot(self) -> dict[str, Any]:
        thread = self.thread.snapshot()
        return {
            "conversations": [
                {
                    **entry.model_dump(mode="json"),
                    "presence": describe_presence(entry.counterpart),
                }
                for entry in self.aggregator.conversations
            ],
            "unread_total": self.aggregator.total_unread,
            "thread": {
                **thread.model_dump(mode="json"),
                "presence": describe_presence(thread.counterpart) if thread.counterpart else None,
            },
        }
