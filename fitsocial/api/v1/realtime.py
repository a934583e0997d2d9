"""
Realtime WebSocket endpoints

- /changes streams row changes relevant to the authenticated user. One
  messages and one profiles subscription per user, opened with the first
  connection and dropped with the last.
- /messages hosts a MessagingSession: the client sends commands, the server
  pushes snapshot and notice frames.
"""

import asyncio
import json
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect

from fitsocial.core import security
from fitsocial.core.deps import get_data_service
from fitsocial.core.errors import AppError
from fitsocial.core.logging import get_logger
from fitsocial.messaging.notifications import Notice, Notifier
from fitsocial.messaging.session import MessagingSession
from fitsocial.realtime.connections import manager
from fitsocial.realtime.feed import Subscription
from fitsocial.schemas.realtime import ChangeEvent
from fitsocial.services.data_service import DataService

logger = get_logger(__name__)

router = APIRouter()

# user_id -> feed subscriptions backing that user's /changes sockets
_user_feeds: dict[str, list[Subscription]] = {}


def is_relevant(event: ChangeEvent, user_id: str) -> bool:
    if event.table == "messages":
        return user_id in (event.row.get("sender_id"), event.row.get("recipient_id"))
    if event.table == "profiles":
        return event.event_type == "update"
    return False


async def _authenticate(websocket: WebSocket, token: Optional[str]) -> Optional[str]:
    user_id = security.verify_token(token) if token else None
    if not user_id:
        logger.warning("Invalid token in WebSocket connection")
        await websocket.close(code=1008, reason="Invalid token")
        return None
    return user_id


def _open_user_feed(data: DataService, user_id: str) -> None:
    async def forward(event: ChangeEvent) -> None:
        if is_relevant(event, user_id):
            await manager.send_to_user(
                user_id, {"event": "change", "data": event.model_dump(mode="json")}
            )

    _user_feeds[user_id] = [
        data.subscribe("messages", forward),
        data.subscribe("profiles", forward),
    ]


def _close_user_feed(user_id: str) -> None:
    for subscription in _user_feeds.pop(user_id, []):
        subscription.unsubscribe()


@router.websocket("/changes")
async def changes_endpoint(
    websocket: WebSocket,
    token: Optional[str] = Query(default=None),
    data: DataService = Depends(get_data_service),
):
    user_id = await _authenticate(websocket, token)
    if user_id is None:
        return

    await websocket.accept()
    if await manager.connect(user_id, websocket):
        _open_user_feed(data, user_id)

    try:
        await websocket.send_json({"status": "connected", "user_id": user_id})
        while True:
            text = await websocket.receive_text()
            if text == "ping":
                await websocket.send_json({"event": "pong"})
    except WebSocketDisconnect:
        pass
    finally:
        if await manager.disconnect(user_id, websocket):
            _close_user_feed(user_id)


class SessionChannel:
    """Pushes a MessagingSession's state and notices over one WebSocket"""

    def __init__(self, websocket: WebSocket, session: MessagingSession):
        self.websocket = websocket
        self.session = session
        self._notices: list[Notice] = []
        self._send_lock = asyncio.Lock()
        session.notifier.add_listener(self._on_notice)
        session.add_listener(self.push)

    def _on_notice(self, notice: Notice) -> None:
        self._notices.append(notice)

    async def send(self, frame: dict[str, Any]) -> None:
        async with self._send_lock:
            await self.websocket.send_json(frame)

    async def push(self) -> None:
        async with self._send_lock:
            notices = list(self._notices)
            self._notices.clear()
            for notice in notices:
                await self.websocket.send_json(
                    {"event": "notice", "level": notice.level, "message": notice.message}
                )
            await self.websocket.send_json({"event": "snapshot", "data": self.session.snapshot()})

    async def handle(self, command: dict[str, Any]) -> None:
        action = command.get("type")
        if action == "open":
            target_id = command.get("target_id")
            if not target_id:
                self.session.notifier.error("target_id required")
                await self.push()
                return
            await self.session.open_conversation(target_id)
        elif action == "close":
            await self.session.close_conversation()
        elif action == "send":
            await self.session.send(
                command.get("content", ""),
                workout_id=command.get("workout_id"),
                achievement_id=command.get("achievement_id"),
            )
        elif action == "follow":
            await self.session.toggle_follow()
        elif action == "block":
            await self.session.block_counterpart()
        elif action == "refresh":
            await self.session.refresh()
        elif action == "ping":
            await self.send({"event": "pong"})
        else:
            self.session.notifier.error(f"Unknown command: {action}")
            await self.push()


@router.websocket("/messages")
async def messages_endpoint(
    websocket: WebSocket,
    token: Optional[str] = Query(default=None),
    data: DataService = Depends(get_data_service),
):
    user_id = await _authenticate(websocket, token)
    if user_id is None:
        return

    await websocket.accept()
    session = MessagingSession(data, user_id, notifier=Notifier())
    channel = SessionChannel(websocket, session)
    await session.mount()

    try:
        await channel.push()
        while True:
            text = await websocket.receive_text()
            try:
                command = json.loads(text)
            except json.JSONDecodeError:
                await channel.send({"event": "error", "message": "Invalid JSON"})
                continue
            if not isinstance(command, dict):
                session.notifier.error("Commands must be JSON objects")
                await channel.push()
                continue
            try:
                await channel.handle(command)
            except AppError as e:
                session.notifier.error(e.message)
                await channel.push()
    except WebSocketDisconnect:
        logger.info(f"Messages socket closed for {user_id}")
    finally:
        await session.unmount()
