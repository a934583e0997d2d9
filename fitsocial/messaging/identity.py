"""
Identity resolver

Profile lookups used by every other messaging component.
"""

from typing import Iterable, Optional

from fitsocial.core.errors import NotFoundError
from fitsocial.schemas.profile import ProfileRead
from fitsocial.services.data_service import DataService


class ProfileResolver:
    def __init__(self, data: DataService):
        self.data = data

    async def get_profile(self, user_id: str) -> Optional[ProfileRead]:
        row = await self.data.get("profiles", {"id": user_id})
        return ProfileRead.model_validate(row) if row else None

    async def require_profile(self, user_id: str) -> ProfileRead:
        profile = await self.get_profile(user_id)
        if profile is None:
            raise NotFoundError(f"Profile {user_id} not found")
        return profile

    async def get_profiles(self, user_ids: Iterable[str]) -> dict[str, ProfileRead]:
        """Batch lookup; ids without a profile row are simply absent from the result"""
        ids = sorted(set(user_ids))
        if not ids:
            return {}
        rows = await self.data.query("profiles", {"id": ids})
        return {row["id"]: ProfileRead.model_validate(row) for row in rows}
