"""
Presence heartbeat

While a view is mounted the viewer's own profile is marked online every
interval; teardown marks it offline once. The offline write may race with an
in-flight online write and either may land last; last_seen bounds the staleness.
"""

import asyncio
from datetime import datetime
from typing import Optional

from fitsocial.core.config import settings
from fitsocial.core.errors import AppError
from fitsocial.core.logging import get_logger
from fitsocial.core.time import ensure_utc, utc_now
from fitsocial.schemas.profile import ProfileRead
from fitsocial.services.data_service import DataService

logger = get_logger(__name__)


async def write_presence(data: DataService, user_id: str, online: bool) -> bool:
    """Write is_online/last_seen for the user's own row. Errors are logged, not raised."""
    try:
        rows = await data.update(
            "profiles", {"id": user_id}, {"is_online": online, "last_seen": utc_now()}
        )
    except AppError as e:
        logger.error(f"Error updating online status for {user_id}: {e.message}")
        return False
    return bool(rows)


def describe_presence(profile: ProfileRead, now: Optional[datetime] = None) -> str:
    """Short status line for a profile: 'Online', 'Last seen 5 minutes ago' or 'Offline'"""
    if profile.is_online:
        return "Online"
    if profile.last_seen is None:
        return "Offline"
    seconds = max(0, int(((now or utc_now()) - ensure_utc(profile.last_seen)).total_seconds()))
    if seconds < 60:
        return "Last seen just now"
    for unit, size in (("day", 86400), ("hour", 3600), ("minute", 60)):
        if seconds >= size:
            count = seconds // size
            return f"Last seen {count} {unit}{'s' if count != 1 else ''} ago"
    return "Offline"


class PresenceHeartbeat:
    def __init__(
        self,
        data: DataService,
        viewer_id: str,
        interval_seconds: float = settings.presence_interval_seconds,
    ):
        self.data = data
        self.viewer_id = viewer_id
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None
        self._started = False
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def beat(self) -> bool:
        return await write_presence(self.data, self.viewer_id, True)

    async def start(self) -> None:
        if self._started and not self._stopped:
            return
        self._started = True
        self._stopped = False
        await self.beat()
        self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        try:
            while True:
                await asyncio.sleep(self.interval_seconds)
                await self.beat()
        except asyncio.CancelledError:
            return

    async def stop(self) -> None:
        """Cancel the interval and write offline exactly once"""
        if not self._started or self._stopped:
            return
        self._stopped = True
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await write_presence(self.data, self.viewer_id, False)
