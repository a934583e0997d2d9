"""
Direct message endpoints

REST view of the messaging core: each request builds the components it needs
for the authenticated viewer and drives them through the data service.
"""

from typing import Optional

from fastapi import APIRouter, File, Query, UploadFile, status

from fitsocial.core.deps import CurrentUserDep, DataServiceDep
from fitsocial.core.errors import BackendUnavailableError, PermissionDeniedError, ValidationError
from fitsocial.core.logging import get_logger
from fitsocial.messaging.conversations import ConversationAggregator
from fitsocial.messaging.identity import ProfileResolver
from fitsocial.messaging.notifications import Notifier
from fitsocial.messaging.relationships import RelationshipGate
from fitsocial.messaging.thread import MessageThreadController
from fitsocial.schemas.conversation import ConversationRead, ConversationTab, ThreadRead, UnreadTotal
from fitsocial.schemas.message import MarkReadResult, MessageCreate, MessageRead
from fitsocial.services.data_service import DataService
from fitsocial.services.message_service import MEDIA_PLACEHOLDER, MessageService, validate_media

logger = get_logger(__name__)

router = APIRouter()


async def _require_messaging(data: DataService, user_id: str, target_id: str) -> None:
    if user_id == target_id:
        raise ValidationError("You cannot message yourself")
    if not await RelationshipGate(data).can_message(user_id, target_id):
        raise PermissionDeniedError("This account is private. Follow them to send messages.")


@router.get("/conversations", response_model=list[ConversationRead])
async def list_conversations(
    user_id: CurrentUserDep,
    data: DataServiceDep,
    search: Optional[str] = Query(default=None, max_length=100),
    tab: ConversationTab = "all",
):
    aggregator = ConversationAggregator(data, user_id)
    await aggregator.build()
    return aggregator.filter(search, tab)


@router.get("/unread-count", response_model=UnreadTotal)
async def unread_count(user_id: CurrentUserDep, data: DataServiceDep):
    aggregator = ConversationAggregator(data, user_id)
    await aggregator.build()
    return UnreadTotal(unread=aggregator.total_unread)


@router.get("/{target_id}", response_model=ThreadRead)
async def open_thread(target_id: str, user_id: CurrentUserDep, data: DataServiceDep):
    """Load the thread and mark the counterpart's unread messages read."""
    if target_id == user_id:
        raise ValidationError("You cannot message yourself")
    resolver = ProfileResolver(data)
    await resolver.require_profile(target_id)

    notifier = Notifier()
    thread = MessageThreadController(data, user_id, resolver=resolver, notifier=notifier)
    if not await thread.open(target_id):
        reason = notifier.history[-1].message if notifier.history else "Failed to load conversation"
        raise BackendUnavailableError(reason)
    return thread.snapshot()


@router.post("/{target_id}", response_model=MessageRead, status_code=status.HTTP_201_CREATED)
async def send_message(target_id: str, body: MessageCreate, user_id: CurrentUserDep, data: DataServiceDep):
    await _require_messaging(data, user_id, target_id)
    return await MessageService(data).send(
        user_id,
        target_id,
        body.content,
        workout_id=body.workout_id,
        achievement_id=body.achievement_id,
        client_key=body.client_key,
    )


@router.post("/{target_id}/media", response_model=MessageRead, status_code=status.HTTP_201_CREATED)
async def send_media(
    target_id: str,
    user_id: CurrentUserDep,
    data: DataServiceDep,
    file: UploadFile = File(...),
):
    """Upload an image, then send a message that references it."""
    await _require_messaging(data, user_id, target_id)
    payload = await file.read()
    validate_media(file.content_type, len(payload))

    messages = MessageService(data)
    media_url = await messages.upload_media(user_id, file.filename, file.content_type, payload)
    logger.info(f"{user_id} uploaded image for {target_id}: {media_url}")
    return await messages.send(user_id, target_id, MEDIA_PLACEHOLDER, media_url=media_url)


@router.post("/{target_id}/read", response_model=MarkReadResult)
async def mark_read(target_id: str, user_id: CurrentUserDep, data: DataServiceDep):
    updated = await MessageService(data).mark_conversation_read(user_id, target_id)
    return MarkReadResult(counterpart_id=target_id, marked=len(updated))
