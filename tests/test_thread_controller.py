"""
Message thread controller tests
"""

import asyncio

import pytest

from fitsocial.core.config import settings
from fitsocial.core.errors import BackendUnavailableError
from fitsocial.messaging.conversations import ConversationAggregator
from fitsocial.messaging.notifications import Notifier
from fitsocial.messaging.relationships import RelationshipGate
from fitsocial.messaging.thread import MessageThreadController, ThreadState
from fitsocial.schemas.realtime import ChangeEvent
from fitsocial.services.message_service import MEDIA_PLACEHOLDER, MessageService


@pytest.fixture
def notifier():
    return Notifier()


@pytest.fixture
async def viewer(make_profile):
    return await make_profile("viewer")


@pytest.fixture
def thread(data_service, viewer, notifier):
    controller = MessageThreadController(
        data_service,
        viewer.id,
        aggregator=ConversationAggregator(data_service, viewer.id),
        notifier=notifier,
    )
    data_service.subscribe("messages", controller.handle_message_event)
    return controller


def _messages_text(notifier):
    return [n.message for n in notifier.history]


@pytest.mark.asyncio
async def test_open_loads_history_and_marks_incoming_read(thread, data_service, viewer, make_profile):
    bob = await make_profile("bob")
    messages = MessageService(data_service)
    await messages.send(bob.id, viewer.id, "one")
    await messages.send(viewer.id, bob.id, "two")
    await messages.send(bob.id, viewer.id, "three")

    assert await thread.open(bob.id) is True

    assert thread.state == ThreadState.READY
    assert [m.content for m in thread.messages] == ["one", "two", "three"]
    incoming = [m for m in thread.messages if m.recipient_id == viewer.id]
    assert all(m.is_read for m in incoming)
    assert thread.aggregator.get(bob.id).unread_count == 0
    assert thread.aggregator.total_unread == 0
    stored = await data_service.query("messages", {"recipient_id": viewer.id, "is_read": False})
    assert stored == []


@pytest.mark.asyncio
async def test_incoming_message_while_open_is_marked_read(thread, data_service, viewer, make_profile):
    bob = await make_profile("bob")
    await thread.open(bob.id)

    row = await MessageService(data_service).send(bob.id, viewer.id, "live")

    assert [m.id for m in thread.messages] == [row.id]
    assert thread.messages[0].is_read is True
    stored = await data_service.get("messages", {"id": row.id})
    assert stored["is_read"] is True


@pytest.mark.asyncio
async def test_messages_for_other_threads_are_ignored(thread, data_service, viewer, make_profile):
    bob = await make_profile("bob")
    cara = await make_profile("cara")
    await thread.open(bob.id)

    await MessageService(data_service).send(cara.id, viewer.id, "elsewhere")

    assert thread.messages == []
    stored = await data_service.query("messages", {"sender_id": cara.id})
    assert stored[0]["is_read"] is False


@pytest.mark.asyncio
async def test_send_never_shows_duplicates(thread, data_service, viewer, make_profile):
    bob = await make_profile("bob")
    await thread.open(bob.id)

    stored = await thread.send("  hello there  ")

    assert stored is not None
    assert stored.content == "hello there"
    assert [m.id for m in thread.messages] == [stored.id]
    assert thread.state == ThreadState.READY


@pytest.mark.asyncio
async def test_echo_without_client_key_matches_by_content(thread, data_service, viewer, make_profile, monkeypatch):
    bob = await make_profile("bob")
    await thread.open(bob.id)
    real_send = thread.message_service.send

    async def send_without_key(sender, recipient, content, **kwargs):
        kwargs["client_key"] = None
        return await real_send(sender, recipient, content, **kwargs)

    monkeypatch.setattr(thread.message_service, "send", send_without_key)

    stored = await thread.send("same text")
    assert [m.id for m in thread.messages] == [stored.id]


@pytest.mark.asyncio
async def test_empty_message_is_rejected_locally(thread, data_service, notifier, make_profile):
    bob = await make_profile("bob")
    await thread.open(bob.id)

    assert await thread.send("   ") is None
    assert "Message cannot be empty" in _messages_text(notifier)
    assert await data_service.query("messages") == []


@pytest.mark.asyncio
async def test_failed_send_reverts_optimistic_entry(thread, notifier, make_profile, monkeypatch):
    bob = await make_profile("bob")
    await thread.open(bob.id)

    async def failing_send(*args, **kwargs):
        raise BackendUnavailableError("Failed to write messages")

    monkeypatch.setattr(thread.message_service, "send", failing_send)

    assert await thread.send("lost") is None
    assert thread.messages == []
    assert thread.state == ThreadState.READY
    assert "Failed to send message" in _messages_text(notifier)


@pytest.mark.asyncio
async def test_private_target_cannot_be_messaged(thread, data_service, viewer, make_profile):
    locked = await make_profile("locked", private=True)
    await thread.open(locked.id)

    assert thread.can_message is False
    assert thread.snapshot().follow_status == "none"
    assert await thread.send("hello?") is None
    assert await data_service.query("messages") == []

    follow = await RelationshipGate(data_service).toggle_follow(viewer.id, locked.id)
    await RelationshipGate(data_service).accept_request(locked.id, follow.follow_id)
    await thread.reload_relationship()
    assert thread.can_message is True


@pytest.mark.asyncio
async def test_stale_open_is_discarded(thread, make_profile):
    bob = await make_profile("bob")
    cara = await make_profile("cara")

    results = await asyncio.gather(thread.open(bob.id), thread.open(cara.id))

    assert results == [False, True]
    assert thread.counterpart_id == cara.id
    assert thread.counterpart.id == cara.id


@pytest.mark.asyncio
async def test_events_during_loading_are_replayed(thread, data_service, viewer, make_profile, monkeypatch):
    bob = await make_profile("bob")
    real_relationship = thread.gate.relationship

    async def slow_relationship(follower_id, following_id):
        await MessageService(data_service).send(bob.id, viewer.id, "during load")
        return await real_relationship(follower_id, following_id)

    monkeypatch.setattr(thread.gate, "relationship", slow_relationship)

    assert await thread.open(bob.id) is True
    assert [m.content for m in thread.messages] == ["during load"]
    assert thread.messages[0].is_read is True


@pytest.mark.asyncio
async def test_open_self_and_missing_user(thread, viewer, notifier):
    assert await thread.open(viewer.id) is False
    assert await thread.open("does-not-exist") is False
    assert thread.state == ThreadState.CLOSED
    assert _messages_text(notifier) == ["You cannot message yourself", "User not found"]


@pytest.mark.asyncio
async def test_close_resets_state(thread, make_profile):
    bob = await make_profile("bob")
    await thread.open(bob.id)
    thread.close()
    assert thread.state == ThreadState.CLOSED
    assert thread.counterpart is None
    assert thread.snapshot().messages == []


@pytest.mark.asyncio
async def test_send_media_uploads_then_inserts(thread, storage, make_profile, notifier):
    bob = await make_profile("bob")
    await thread.open(bob.id)

    stored = await thread.send_media("photo.PNG", "image/png", b"\x89PNG data")

    assert stored.content == MEDIA_PLACEHOLDER
    assert stored.media_url.startswith(f"/media/{settings.media_bucket}/")
    assert stored.media_url.endswith(".png")
    assert [m.id for m in thread.messages] == [stored.id]
    assert "Image sent successfully" in _messages_text(notifier)
    files = list((storage.root / settings.media_bucket).rglob("*.png"))
    assert len(files) == 1


@pytest.mark.asyncio
async def test_media_validation_runs_before_upload(thread, data_service, storage, make_profile, notifier, monkeypatch):
    bob = await make_profile("bob")
    await thread.open(bob.id)

    assert await thread.send_media("notes.txt", "text/plain", b"hello") is None
    assert "Please select an image file" in _messages_text(notifier)

    monkeypatch.setattr(settings, "media_max_bytes", 4)
    assert await thread.send_media("big.png", "image/png", b"12345") is None
    assert any(text.startswith("File size must be less than") for text in _messages_text(notifier))

    assert await data_service.query("messages") == []
    assert not storage.root.exists() or not any(storage.root.rglob("*.*"))


@pytest.mark.asyncio
async def test_failed_open_keeps_shown_thread_live(thread, data_service, viewer, make_profile, notifier, monkeypatch):
    bob = await make_profile("bob")
    await thread.open(bob.id)
    real_relationship = thread.gate.relationship

    async def relationship_with_traffic(follower_id, following_id):
        await MessageService(data_service).send(bob.id, viewer.id, "during load")
        return await real_relationship(follower_id, following_id)

    monkeypatch.setattr(thread.gate, "relationship", relationship_with_traffic)

    assert await thread.open("ghost") is False

    assert thread.state == ThreadState.READY
    assert thread.counterpart_id == bob.id
    assert [m.content for m in thread.messages] == ["during load"]
    assert thread.messages[0].is_read is True
    assert await data_service.query("messages", {"recipient_id": viewer.id, "is_read": False}) == []
    assert "User not found" in _messages_text(notifier)


@pytest.mark.asyncio
async def test_load_error_keeps_shown_thread(thread, make_profile, notifier, monkeypatch):
    bob = await make_profile("bob")
    cara = await make_profile("cara")
    await thread.open(bob.id)

    async def failing_history(*args, **kwargs):
        raise BackendUnavailableError("Failed to read messages")

    monkeypatch.setattr(thread.message_service, "fetch_history", failing_history)

    assert await thread.open(cara.id) is False
    assert "Failed to load conversation" in _messages_text(notifier)
    assert thread.state == ThreadState.READY
    assert thread.counterpart_id == bob.id

    stored = await thread.send("still here")
    assert [m.id for m in thread.messages] == [stored.id]


@pytest.mark.asyncio
async def test_send_in_flight_across_failed_open_is_reconciled(thread, make_profile, monkeypatch):
    bob = await make_profile("bob")
    await thread.open(bob.id)
    real_send = thread.message_service.send

    async def send_after_failed_open(*args, **kwargs):
        assert await thread.open("ghost") is False
        return await real_send(*args, **kwargs)

    monkeypatch.setattr(thread.message_service, "send", send_after_failed_open)

    stored = await thread.send("mid flight")

    assert stored is not None
    assert [m.id for m in thread.messages] == [stored.id]
    assert thread.state == ThreadState.READY


@pytest.fixture
def quiet_thread(data_service, viewer):
    # not subscribed: echoes are delivered by hand
    return MessageThreadController(data_service, viewer.id)


def _echo(message):
    return ChangeEvent(event_type="insert", table="messages", row=message.model_dump())


@pytest.mark.asyncio
async def test_late_echo_after_send_returns_is_not_duplicated(quiet_thread, make_profile):
    bob = await make_profile("bob")
    await quiet_thread.open(bob.id)

    stored = await quiet_thread.send("echo later")
    assert [m.id for m in quiet_thread.messages] == [stored.id]

    assert await quiet_thread.handle_message_event(_echo(stored)) is True
    assert [m.id for m in quiet_thread.messages] == [stored.id]


@pytest.mark.asyncio
async def test_late_echo_of_media_message_is_not_duplicated(quiet_thread, make_profile):
    bob = await make_profile("bob")
    await quiet_thread.open(bob.id)

    stored = await quiet_thread.send_media("photo.png", "image/png", b"\x89PNG data")
    await quiet_thread.handle_message_event(_echo(stored))

    assert [m.id for m in quiet_thread.messages] == [stored.id]
