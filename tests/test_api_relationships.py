"""
Relationships and presence API tests
"""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_follow_request_flow(client: AsyncClient, auth_for, make_profile):
    alice = await make_profile("alice")
    locked = await make_profile("locked", private=True)

    response = await client.post(f"/api/v1/relationships/{locked.id}/follow", headers=auth_for(alice.id))
    assert response.json()["follow_status"] == "pending"

    response = await client.get("/api/v1/relationships/requests", headers=auth_for(locked.id))
    requests = response.json()
    assert [r["follower"]["id"] for r in requests] == [alice.id]

    # only the requested user may answer
    response = await client.post(f"/api/v1/relationships/requests/{requests[0]['id']}/accept", headers=auth_for(alice.id))
    assert response.status_code == 403

    response = await client.post(f"/api/v1/relationships/requests/{requests[0]['id']}/accept", headers=auth_for(locked.id))
    assert response.status_code == 200
    assert response.json()["status"] == "accepted"

    response = await client.get(f"/api/v1/relationships/{locked.id}", headers=auth_for(alice.id))
    summary = response.json()
    assert summary["follow_status"] == "accepted"
    assert summary["can_message"] is True
    assert summary["follower_count"] == 1

    response = await client.get(f"/api/v1/relationships/{locked.id}/followers", headers=auth_for(alice.id))
    assert [p["id"] for p in response.json()] == [alice.id]


@pytest.mark.asyncio
async def test_reject_deletes_request(client: AsyncClient, auth_for, make_profile):
    alice = await make_profile("alice")
    locked = await make_profile("locked", private=True)
    result = (await client.post(f"/api/v1/relationships/{locked.id}/follow", headers=auth_for(alice.id))).json()

    response = await client.post(f"/api/v1/relationships/requests/{result['follow_id']}/reject", headers=auth_for(locked.id))
    assert response.status_code == 204

    response = await client.get(f"/api/v1/relationships/{locked.id}", headers=auth_for(alice.id))
    assert response.json()["follow_status"] == "none"


@pytest.mark.asyncio
async def test_block_unblock_flow(client: AsyncClient, auth_for, make_profile):
    alice = await make_profile("alice")
    bob = await make_profile("bob")
    await client.post(f"/api/v1/messages/{bob.id}", json={"content": "hi"}, headers=auth_for(alice.id))

    response = await client.post(f"/api/v1/relationships/{bob.id}/block", headers=auth_for(alice.id))
    assert response.status_code == 201

    response = await client.post(f"/api/v1/relationships/{bob.id}/block", headers=auth_for(alice.id))
    assert response.status_code == 409

    response = await client.get("/api/v1/relationships/blocked", headers=auth_for(alice.id))
    assert [b["profile"]["id"] for b in response.json()] == [bob.id]

    response = await client.get("/api/v1/messages/conversations", headers=auth_for(alice.id))
    assert response.json() == []

    response = await client.delete(f"/api/v1/relationships/{bob.id}/block", headers=auth_for(alice.id))
    assert response.status_code == 204
    response = await client.get(f"/api/v1/relationships/{bob.id}", headers=auth_for(alice.id))
    assert response.json()["is_blocked"] is False


@pytest.mark.asyncio
async def test_presence_endpoints(client: AsyncClient, auth_for, make_profile, data_service):
    alice = await make_profile("alice")

    response = await client.post("/api/v1/presence/heartbeat", headers=auth_for(alice.id))
    assert response.json() == {"online": True, "updated": True}
    assert (await data_service.get("profiles", {"id": alice.id}))["is_online"] is True

    response = await client.post("/api/v1/presence/offline", headers=auth_for(alice.id))
    assert response.json() == {"online": False, "updated": True}
    assert (await data_service.get("profiles", {"id": alice.id}))["is_online"] is False
