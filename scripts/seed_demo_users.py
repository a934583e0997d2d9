"""
Script to seed demo profiles, follows and a short conversation.
Run with: python scripts/seed_demo_users.py

Prints a bearer token for each demo user.
"""

import asyncio
import os
import sys

# Add project root to path
sys.path.append(os.getcwd())

from fitsocial.core.config import settings
from fitsocial.core.errors import ConflictError
from fitsocial.core.logging import setup_logging
from fitsocial.core.security import create_access_token
from fitsocial.infra.db import AsyncSessionLocal, close_db_connection, create_tables
from fitsocial.infra.storage import LocalBlobStorage
from fitsocial.messaging.relationships import RelationshipGate
from fitsocial.realtime.feed import change_feed
from fitsocial.services.data_service import DataService
from fitsocial.services.message_service import MessageService

DEMO_PROFILES = [
    {"id": "11111111-1111-4111-8111-111111111111", "username": "runner_ana", "full_name": "Ana Runner", "is_profile_private": False},
    {"id": "22222222-2222-4222-8222-222222222222", "username": "lift_ben", "full_name": "Ben Lifter", "is_profile_private": True},
    {"id": "33333333-3333-4333-8333-333333333333", "username": "yoga_cleo", "full_name": "Cleo Flow", "is_profile_private": False},
]

DEMO_MESSAGES = [
    (0, 2, "Morning run tomorrow?"),
    (2, 0, "Sure, 7am at the park"),
    (0, 2, "See you there!"),
]


async def seed():
    setup_logging()
    print(f"Seeding demo users into {settings.database_url}...")
    await create_tables()

    data = DataService(AsyncSessionLocal, change_feed, LocalBlobStorage())
    for profile in DEMO_PROFILES:
        if await data.get("profiles", {"id": profile["id"]}) is None:
            await data.insert("profiles", profile)

    ana, ben, cleo = (p["id"] for p in DEMO_PROFILES)
    gate = RelationshipGate(data)
    for follower, target in ((ana, cleo), (cleo, ana), (cleo, ben)):
        if await gate.follow_status(follower, target) == "none":
            await gate.toggle_follow(follower, target)

    messages = MessageService(data)
    if not await messages.fetch_history(ana, cleo):
        for sender, recipient, text in DEMO_MESSAGES:
            await messages.send(DEMO_PROFILES[sender]["id"], DEMO_PROFILES[recipient]["id"], text)

    for profile in DEMO_PROFILES:
        token = create_access_token({"sub": profile["id"]})
        print(f"{profile['username']}: {token}")

    await close_db_connection()
    print("Done!")


if __name__ == "__main__":
    try:
        asyncio.run(seed())
    except ConflictError as e:
        print(f"Seed conflict: {e.message}")
