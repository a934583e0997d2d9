from fastapi import APIRouter

from fitsocial.core.deps import CurrentUserDep, DataServiceDep
from fitsocial.messaging.presence import write_presence

router = APIRouter()


@router.post("/heartbeat")
async def heartbeat(user_id: CurrentUserDep, data: DataServiceDep):
    return {"online": True, "updated": await write_presence(data, user_id, True)}


@router.post("/offline")
async def go_offline(user_id: CurrentUserDep, data: DataServiceDep):
    """Teardown beacon; best effort"""
    return {"online": False, "updated": await write_presence(data, user_id, False)}
