"""
Messaging session tests: lifecycle, event routing, follow/block notices
"""

import pytest

from fitsocial.messaging.session import MessagingSession
from fitsocial.messaging.thread import ThreadState
from fitsocial.services.message_service import MessageService


@pytest.fixture
async def viewer(make_profile):
    return await make_profile("viewer")


@pytest.fixture
async def session(data_service, viewer):
    messaging = MessagingSession(data_service, viewer.id, heartbeat_interval=3600)
    yield messaging
    await messaging.unmount()


def _notices(session):
    return [n.message for n in session.notifier.history]


@pytest.mark.asyncio
async def test_mount_is_idempotent_and_unmount_tears_down(session, data_service, feed, viewer):
    await session.mount()
    await session.mount()

    assert feed.subscriber_count("messages") == 1
    assert feed.subscriber_count("profiles") == 1
    assert (await data_service.get("profiles", {"id": viewer.id}))["is_online"] is True

    await session.unmount()
    assert feed.subscriber_count() == 0
    assert (await data_service.get("profiles", {"id": viewer.id}))["is_online"] is False
    assert session.thread.state == ThreadState.CLOSED


@pytest.mark.asyncio
async def test_events_route_to_thread_and_list(session, data_service, viewer, make_profile):
    bob = await make_profile("bob")
    cara = await make_profile("cara")
    changes = []
    session.add_listener(lambda: changes.append(1))
    await session.mount()
    await session.open_conversation(bob.id)

    messages = MessageService(data_service)
    await messages.send(bob.id, viewer.id, "to open thread")
    await messages.send(cara.id, viewer.id, "to the list")

    assert [m.content for m in session.thread.messages] == ["to open thread"]
    assert session.thread.messages[0].is_read is True
    assert session.aggregator.get(bob.id).unread_count == 0
    assert session.aggregator.get(cara.id).unread_count == 1
    assert session.aggregator.total_unread == 1
    assert changes


@pytest.mark.asyncio
async def test_profile_updates_reach_open_thread(session, data_service, make_profile):
    bob = await make_profile("bob")
    await session.mount()
    await session.open_conversation(bob.id)

    await data_service.update("profiles", {"id": bob.id}, {"is_online": True})
    assert session.thread.counterpart.is_online is True


@pytest.mark.asyncio
async def test_toggle_follow_notices(session, make_profile):
    public = await make_profile("public")
    private = await make_profile("private", private=True)
    await session.mount()

    await session.open_conversation(public.id)
    await session.toggle_follow()
    await session.toggle_follow()

    await session.open_conversation(private.id)
    await session.toggle_follow()
    assert session.thread.snapshot().follow_status == "pending"
    await session.toggle_follow()

    assert _notices(session) == [
        "Following successfully",
        "Unfollowed successfully",
        "Follow request sent",
        "Follow request cancelled",
    ]


@pytest.mark.asyncio
async def test_block_counterpart_closes_thread_and_refreshes(session, data_service, viewer, make_profile):
    bob = await make_profile("bob")
    await MessageService(data_service).send(bob.id, viewer.id, "hello")
    await session.mount()
    await session.open_conversation(bob.id)

    assert await session.block_counterpart() is True

    assert "User blocked successfully" in _notices(session)
    assert session.thread.state == ThreadState.CLOSED
    assert session.aggregator.conversations == []


@pytest.mark.asyncio
async def test_snapshot_shape(session, data_service, viewer, make_profile):
    bob = await make_profile("bob", is_online=True)
    await MessageService(data_service).send(bob.id, viewer.id, "hello")
    await session.mount()

    snapshot = session.snapshot()
    assert snapshot["unread_total"] == 1
    assert snapshot["conversations"][0]["presence"] == "Online"
    assert snapshot["thread"]["state"] == "closed"
    assert snapshot["thread"]["presence"] is None
