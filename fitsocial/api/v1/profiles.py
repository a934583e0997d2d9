"""
Profile endpoints

Profiles are keyed by the auth subject; PUT /me creates the row on first use.
"""

from fastapi import APIRouter

from fitsocial.core.deps import CurrentUserDep, DataServiceDep
from fitsocial.messaging.identity import ProfileResolver
from fitsocial.schemas.profile import ProfileRead, ProfileUpsert

router = APIRouter()


@router.get("/me", response_model=ProfileRead)
async def get_my_profile(user_id: CurrentUserDep, data: DataServiceDep):
    return await ProfileResolver(data).require_profile(user_id)


@router.put("/me", response_model=ProfileRead)
async def upsert_my_profile(body: ProfileUpsert, user_id: CurrentUserDep, data: DataServiceDep):
    changes = body.model_dump(exclude_unset=True)
    if await data.get("profiles", {"id": user_id}) is None:
        row = await data.insert("profiles", {"id": user_id, **changes})
    elif changes:
        row = (await data.update("profiles", {"id": user_id}, changes))[0]
    else:
        row = await data.get("profiles", {"id": user_id})
    return ProfileRead.model_validate(row)


@router.get("/{profile_id}", response_model=ProfileRead)
async def get_profile(profile_id: str, user_id: CurrentUserDep, data: DataServiceDep):
    return await ProfileResolver(data).require_profile(profile_id)
