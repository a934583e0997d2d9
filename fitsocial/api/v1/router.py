"""
API Router configuration
"""

from fastapi import APIRouter

from fitsocial.api.v1 import (
    health,
    messages,
    presence,
    profiles,
    realtime,
    relationships,
)

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(profiles.router, prefix="/profiles", tags=["profiles"])
api_router.include_router(messages.router, prefix="/messages", tags=["messages"])
api_router.include_router(relationships.router, prefix="/relationships", tags=["relationships"])
api_router.include_router(presence.router, prefix="/presence", tags=["presence"])
api_router.include_router(realtime.router, prefix="/realtime", tags=["websocket"])
