"""
Relationship gate

Follow/block/privacy permissions between a viewer and a target user. The same
access predicate decides both messaging and private-content visibility.

Follow actions per (viewer, target):
    none      --follow-->  pending (target private) | accepted (public)
    pending   --follow-->  none     (request cancelled, row deleted)
    accepted  --follow-->  none     (unfollow, row deleted)
    incoming pending: accept -> accepted, reject -> row deleted
"""

from typing import Optional

from fitsocial.core.errors import (
    AppError,
    ConflictError,
    NotFoundError,
    PartialOperationError,
    PermissionDeniedError,
    ValidationError,
)
from fitsocial.core.logging import get_logger
from fitsocial.messaging.identity import ProfileResolver
from fitsocial.schemas.follow import (
    BlockedUserRead,
    BlockRead,
    FollowActionResult,
    FollowRead,
    FollowRequest,
    FollowState,
    RelationshipSummary,
)
from fitsocial.schemas.profile import ProfileRead
from fitsocial.services.data_service import DataService
from fitsocial.services.message_service import between

logger = get_logger(__name__)


def grants_access(target: ProfileRead, relationship: Optional[FollowRead]) -> bool:
    """Public targets are open to everyone; private ones need an accepted follow"""
    if not target.is_profile_private:
        return True
    return relationship is not None and relationship.status == "accepted"


def follow_state(relationship: Optional[FollowRead]) -> FollowState:
    if relationship is None or relationship.status == "rejected":
        return "none"
    return relationship.status


class RelationshipGate:
    def __init__(self, data: DataService, resolver: Optional[ProfileResolver] = None):
        self.data = data
        self.resolver = resolver or ProfileResolver(data)

    # Lookups -------------------------------------------------------------
    async def relationship(self, follower_id: str, following_id: str) -> Optional[FollowRead]:
        row = await self.data.get(
            "follows", {"follower_id": follower_id, "following_id": following_id}
        )
        return FollowRead.model_validate(row) if row else None

    async def follow_status(self, viewer_id: str, target_id: str) -> FollowState:
        return follow_state(await self.relationship(viewer_id, target_id))

    async def incoming_request(self, viewer_id: str, target_id: str) -> Optional[FollowRead]:
        """target's pending request to follow the viewer, if any"""
        relationship = await self.relationship(target_id, viewer_id)
        if relationship is None or relationship.status != "pending":
            return None
        return relationship

    async def can_message(self, viewer_id: str, target_id: str) -> bool:
        target = await self.resolver.require_profile(target_id)
        return grants_access(target, await self.relationship(viewer_id, target_id))

    async def can_view_private_content(self, viewer_id: str, target_id: str) -> bool:
        if viewer_id == target_id:
            return True
        target = await self.resolver.require_profile(target_id)
        return grants_access(target, await self.relationship(viewer_id, target_id))

    async def follower_count(self, user_id: str) -> int:
        rows = await self.data.query("follows", {"following_id": user_id, "status": "accepted"})
        return len(rows)

    async def following_count(self, user_id: str) -> int:
        rows = await self.data.query("follows", {"follower_id": user_id, "status": "accepted"})
        return len(rows)

    async def followers(self, user_id: str) -> list[ProfileRead]:
        rows = await self.data.query(
            "follows", {"following_id": user_id, "status": "accepted"}, order_by="created_at"
        )
        profiles = await self.resolver.get_profiles(row["follower_id"] for row in rows)
        return [profiles[row["follower_id"]] for row in rows if row["follower_id"] in profiles]

    async def following(self, user_id: str) -> list[ProfileRead]:
        rows = await self.data.query(
            "follows", {"follower_id": user_id, "status": "accepted"}, order_by="created_at"
        )
        profiles = await self.resolver.get_profiles(row["following_id"] for row in rows)
        return [profiles[row["following_id"]] for row in rows if row["following_id"] in profiles]

    async def summary(self, viewer_id: str, target_id: str) -> RelationshipSummary:
        target = await self.resolver.require_profile(target_id)
        outgoing = await self.relationship(viewer_id, target_id)
        incoming = await self.relationship(target_id, viewer_id)
        access = grants_access(target, outgoing)
        return RelationshipSummary(
            target_id=target_id,
            follow_status=follow_state(outgoing),
            incoming_status=follow_state(incoming),
            can_message=access,
            can_view_private_content=access or viewer_id == target_id,
            is_blocked=await self.is_blocked(viewer_id, target_id),
            follower_count=await self.follower_count(target_id),
            following_count=await self.following_count(target_id),
        )

    # Follow actions ------------------------------------------------------
    async def toggle_follow(self, viewer_id: str, target_id: str) -> FollowActionResult:
        if viewer_id == target_id:
            raise ValidationError("You cannot follow yourself")
        target = await self.resolver.require_profile(target_id)
        current = await self.relationship(viewer_id, target_id)

        if current is not None:
            # pending -> cancel, accepted -> unfollow, stale rejected -> cleared
            await self.data.delete("follows", {"id": current.id})
            if current.status != "rejected":
                logger.info(f"{viewer_id} removed {current.status} follow of {target_id}")
                return FollowActionResult(target_id=target_id, follow_status="none")

        status = "pending" if target.is_profile_private else "accepted"
        row = await self.data.insert(
            "follows",
            {"follower_id": viewer_id, "following_id": target_id, "status": status},
        )
        logger.info(f"{viewer_id} follow of {target_id} is {status}")
        return FollowActionResult(target_id=target_id, follow_status=status, follow_id=row["id"])

    async def pending_requests(self, viewer_id: str) -> list[FollowRequest]:
        rows = await self.data.query(
            "follows",
            {"following_id": viewer_id, "status": "pending"},
            order_by="created_at",
            descending=True,
        )
        profiles = await self.resolver.get_profiles(row["follower_id"] for row in rows)
        return [
            FollowRequest(id=row["id"], follower=profiles[row["follower_id"]], created_at=row["created_at"])
            for row in rows
            if row["follower_id"] in profiles
        ]

    async def _incoming_request(self, viewer_id: str, follow_id: str) -> FollowRead:
        row = await self.data.get("follows", {"id": follow_id})
        if row is None:
            raise NotFoundError("Follow request not found")
        request = FollowRead.model_validate(row)
        if request.following_id != viewer_id:
            raise PermissionDeniedError("Only the requested user can answer a follow request")
        if request.status != "pending":
            raise ConflictError(f"Follow request is already {request.status}")
        return request

    async def accept_request(self, viewer_id: str, follow_id: str) -> FollowRead:
        await self._incoming_request(viewer_id, follow_id)
        rows = await self.data.update(
            "follows", {"id": follow_id, "status": "pending"}, {"status": "accepted"}
        )
        if not rows:
            raise ConflictError("Follow request changed while accepting")
        return FollowRead.model_validate(rows[0])

    async def reject_request(self, viewer_id: str, follow_id: str) -> None:
        # Rejection deletes the row; no rejected rows are kept
        await self._incoming_request(viewer_id, follow_id)
        await self.data.delete("follows", {"id": follow_id})

    # Blocking ------------------------------------------------------------
    async def is_blocked(self, blocker_id: str, blocked_id: str) -> bool:
        row = await self.data.get("blocked_users", {"blocker_id": blocker_id, "blocked_id": blocked_id})
        return row is not None

    async def blocked_users(self, viewer_id: str) -> list[BlockedUserRead]:
        rows = await self.data.query(
            "blocked_users", {"blocker_id": viewer_id}, order_by="created_at", descending=True
        )
        profiles = await self.resolver.get_profiles(row["blocked_id"] for row in rows)
        return [
            BlockedUserRead(profile=profiles[row["blocked_id"]], blocked_at=row["created_at"])
            for row in rows
            if row["blocked_id"] in profiles
        ]

    async def block_user(self, viewer_id: str, target_id: str) -> BlockRead:
        """
        Insert the block, then delete all messages and follows between the pair.

        The steps are independent writes. If the block insert fails nothing else
        runs. A later failure does not stop the remaining steps, and the caller
        gets a PartialOperationError naming what did and did not complete.
        """
        if viewer_id == target_id:
            raise ValidationError("You cannot block yourself")
        await self.resolver.require_profile(target_id)
        if await self.is_blocked(viewer_id, target_id):
            raise ConflictError("User is already blocked")

        row = await self.data.insert("blocked_users", {"blocker_id": viewer_id, "blocked_id": target_id})
        completed = ["block"]
        failed: list[str] = []

        cleanup = (
            ("delete_messages", "messages", between(viewer_id, target_id)),
            (
                "delete_follows",
                "follows",
                [
                    {"follower_id": viewer_id, "following_id": target_id},
                    {"follower_id": target_id, "following_id": viewer_id},
                ],
            ),
        )
        for step, table, groups in cleanup:
            try:
                await self.data.delete(table, any_of=groups)
                completed.append(step)
            except AppError as e:
                logger.error(f"Block of {target_id} by {viewer_id}: step {step} failed: {e.message}")
                failed.append(step)

        if failed:
            raise PartialOperationError(
                "User was blocked but cleanup did not finish", completed=completed, failed=failed
            )
        logger.info(f"{viewer_id} blocked {target_id}")
        return BlockRead.model_validate(row)

    async def unblock(self, viewer_id: str, target_id: str) -> bool:
        rows = await self.data.delete("blocked_users", {"blocker_id": viewer_id, "blocked_id": target_id})
        return bool(rows)
