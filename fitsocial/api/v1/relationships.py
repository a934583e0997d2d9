"""
Follow, follow-request and block endpoints
"""

from fastapi import APIRouter, status

from fitsocial.core.deps import CurrentUserDep, DataServiceDep
from fitsocial.messaging.relationships import RelationshipGate
from fitsocial.schemas.follow import (
    BlockedUserRead,
    BlockRead,
    FollowActionResult,
    FollowRead,
    FollowRequest,
    RelationshipSummary,
)
from fitsocial.schemas.profile import ProfileRead

router = APIRouter()


# Static paths first so they are not captured by /{target_id}
@router.get("/requests", response_model=list[FollowRequest])
async def list_follow_requests(user_id: CurrentUserDep, data: DataServiceDep):
    return await RelationshipGate(data).pending_requests(user_id)


@router.post("/requests/{follow_id}/accept", response_model=FollowRead)
async def accept_follow_request(follow_id: str, user_id: CurrentUserDep, data: DataServiceDep):
    return await RelationshipGate(data).accept_request(user_id, follow_id)


@router.post("/requests/{follow_id}/reject", status_code=status.HTTP_204_NO_CONTENT)
async def reject_follow_request(follow_id: str, user_id: CurrentUserDep, data: DataServiceDep):
    await RelationshipGate(data).reject_request(user_id, follow_id)


@router.get("/blocked", response_model=list[BlockedUserRead])
async def list_blocked_users(user_id: CurrentUserDep, data: DataServiceDep):
    return await RelationshipGate(data).blocked_users(user_id)


@router.get("/{target_id}", response_model=RelationshipSummary)
async def get_relationship(target_id: str, user_id: CurrentUserDep, data: DataServiceDep):
    return await RelationshipGate(data).summary(user_id, target_id)


@router.post("/{target_id}/follow", response_model=FollowActionResult)
async def toggle_follow(target_id: str, user_id: CurrentUserDep, data: DataServiceDep):
    return await RelationshipGate(data).toggle_follow(user_id, target_id)


@router.get("/{target_id}/followers", response_model=list[ProfileRead])
async def list_followers(target_id: str, user_id: CurrentUserDep, data: DataServiceDep):
    gate = RelationshipGate(data)
    await gate.resolver.require_profile(target_id)
    return await gate.followers(target_id)


@router.get("/{target_id}/following", response_model=list[ProfileRead])
async def list_following(target_id: str, user_id: CurrentUserDep, data: DataServiceDep):
    gate = RelationshipGate(data)
    await gate.resolver.require_profile(target_id)
    return await gate.following(target_id)


@router.post("/{target_id}/block", response_model=BlockRead, status_code=status.HTTP_201_CREATED)
async def block_user(target_id: str, user_id: CurrentUserDep, data: DataServiceDep):
    """Block, then remove the pair's messages and follows."""
    return await RelationshipGate(data).block_user(user_id, target_id)


@router.delete("/{target_id}/block", status_code=status.HTTP_204_NO_CONTENT)
async def unblock_user(target_id: str, user_id: CurrentUserDep, data: DataServiceDep):
    await RelationshipGate(data).unblock(user_id, target_id)
