"""
Change feed subscription registry tests
"""

import pytest
from unittest.mock import AsyncMock

from fitsocial.realtime.feed import ChangeFeed, freeze_filter, row_matches
from fitsocial.schemas.realtime import ChangeEvent


def _event(table="messages", event_type="insert", **row):
    return ChangeEvent(event_type=event_type, table=table, row=row)


def test_row_matches_equality_and_membership():
    key = freeze_filter({"recipient_id": "b", "sender_id": ["a", "c"]})
    assert row_matches({"recipient_id": "b", "sender_id": "a"}, key)
    assert row_matches({"recipient_id": "b", "sender_id": "c"}, key)
    assert not row_matches({"recipient_id": "b", "sender_id": "d"}, key)
    assert not row_matches({"recipient_id": "x", "sender_id": "a"}, key)
    assert row_matches({"anything": 1}, freeze_filter(None))


@pytest.mark.asyncio
async def test_publish_reaches_matching_subscribers_only():
    feed = ChangeFeed()
    received = []
    feed.subscribe("messages", received.append, {"recipient_id": "b"})
    other = AsyncMock()
    feed.subscribe("profiles", other)

    await feed.publish(_event(recipient_id="b", id="1"))
    await feed.publish(_event(recipient_id="c", id="2"))

    assert [e.row["id"] for e in received] == ["1"]
    other.assert_not_called()


@pytest.mark.asyncio
async def test_unsubscribe_is_deterministic():
    feed = ChangeFeed()
    received = []
    sub = feed.subscribe("messages", received.append)
    assert sub.active
    assert feed.subscriber_count("messages") == 1

    sub.unsubscribe()
    sub.unsubscribe()
    assert not sub.active
    assert feed.subscriber_count() == 0

    await feed.publish(_event(id="1"))
    assert received == []


@pytest.mark.asyncio
async def test_failing_callback_does_not_block_others():
    feed = ChangeFeed()
    received = []

    async def broken(event):
        raise RuntimeError("boom")

    feed.subscribe("messages", broken)
    feed.subscribe("messages", received.append)

    await feed.publish(_event(id="1"))
    assert len(received) == 1


@pytest.mark.asyncio
async def test_publish_forwards_to_relay_but_deliver_does_not():
    feed = ChangeFeed()
    relay = AsyncMock()
    feed.attach_relay(relay)

    event = _event(id="1")
    await feed.publish(event)
    relay.forward.assert_awaited_once_with(event)

    await feed.deliver(_event(id="2"))
    assert relay.forward.await_count == 1


@pytest.mark.asyncio
async def test_relay_failure_is_logged_not_raised():
    feed = ChangeFeed()
    relay = AsyncMock()
    relay.forward.side_effect = ConnectionError("redis down")
    feed.attach_relay(relay)
    received = []
    feed.subscribe("messages", received.append)

    await feed.publish(_event(id="1"))
    assert len(received) == 1
