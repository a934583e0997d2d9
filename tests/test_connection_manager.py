import asyncio
import pytest
from unittest.mock import AsyncMock

from fitsocial.realtime.connections import ConnectionManager


@pytest.mark.asyncio
async def test_connection_manager_concurrent_access():
    manager = ConnectionManager()
    user_id = "user-1"

    # Mock websockets
    ws1 = AsyncMock()
    ws2 = AsyncMock()

    firsts = await asyncio.gather(
        manager.connect(user_id, ws1),
        manager.connect(user_id, ws2)
    )

    # Exactly one of them opened the user's first connection
    assert sorted(firsts) == [False, True]
    assert len(manager.active_connections[user_id]) == 2

    message = {"test": "data"}
    result = await manager.send_to_user(user_id, message)
    assert result is True

    ws1.send_json.assert_called_with(message)
    ws2.send_json.assert_called_with(message)


@pytest.mark.asyncio
async def test_race_condition_connect_disconnect():
    """
    Rapid connect and disconnect leaves no stale entries
    """
    manager = ConnectionManager()
    user_id = "user-99"

    async def spam_connect_disconnect():
        ws = AsyncMock()
        await manager.connect(user_id, ws)
        await asyncio.sleep(0.001)
        await manager.disconnect(user_id, ws)

    await asyncio.gather(*(spam_connect_disconnect() for _ in range(100)))

    assert user_id not in manager.active_connections
    assert not manager.is_connected(user_id)


@pytest.mark.asyncio
async def test_last_disconnect_is_reported():
    manager = ConnectionManager()
    ws1, ws2 = AsyncMock(), AsyncMock()
    await manager.connect("u", ws1)
    await manager.connect("u", ws2)

    assert await manager.disconnect("u", ws1) is False
    assert await manager.disconnect("u", ws2) is True
    assert await manager.disconnect("u", ws2) is False


@pytest.mark.asyncio
async def test_send_while_disconnecting():
    manager = ConnectionManager()
    user_id = "user-2"

    ws1 = AsyncMock()
    ws2 = AsyncMock()
    await manager.connect(user_id, ws1)
    await manager.connect(user_id, ws2)

    async def disconnect_one():
        await asyncio.sleep(0.001)
        await manager.disconnect(user_id, ws1)

    async def send_msg():
        await manager.send_to_user(user_id, {"msg": "hello"})

    await asyncio.gather(disconnect_one(), send_msg())

    assert manager.active_connections[user_id] == [ws2]


@pytest.mark.asyncio
async def test_failed_send_is_reported():
    manager = ConnectionManager()
    broken = AsyncMock()
    broken.send_json.side_effect = RuntimeError("socket closed")
    await manager.connect("u", broken)

    assert await manager.send_to_user("u", {"x": 1}) is False
    assert await manager.send_to_user("nobody", {"x": 1}) is False
