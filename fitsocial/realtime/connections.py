"""
WebSocket connection manager with race condition protection.
Handles multiple concurrent connections per user.
"""

import asyncio
from typing import Any, Dict, List

from fastapi import WebSocket

from fitsocial.core.logging import get_logger

logger = get_logger(__name__)


class ConnectionManager:
    def __init__(self):
        # user_id -> List[WebSocket]
        self.active_connections: Dict[str, List[WebSocket]] = {}
        # Lock for thread-safe operations
        self._lock = asyncio.Lock()

    async def connect(self, user_id: str, websocket: WebSocket) -> bool:
        """
        Register an accepted WebSocket for a user.
        Returns True when this is the user's first connection.
        """
        async with self._lock:
            connections = self.active_connections.setdefault(user_id, [])
            connections.append(websocket)
            logger.info(f"User {user_id} connected. Total connections: {len(connections)}")
            return len(connections) == 1

    async def disconnect(self, user_id: str, websocket: WebSocket) -> bool:
        """
        Remove a WebSocket for a user.
        Returns True when the user has no connections left.
        """
        async with self._lock:
            connections = self.active_connections.get(user_id)
            if connections is None:
                return False
            if websocket in connections:
                connections.remove(websocket)

            # Clean up empty lists
            if not connections:
                del self.active_connections[user_id]
                logger.info(f"User {user_id} disconnected")
                return True
            return False

    def is_connected(self, user_id: str) -> bool:
        return bool(self.active_connections.get(user_id))

    async def send_to_user(self, user_id: str, message: dict[str, Any]) -> bool:
        """
        Send message to all connections of a specific user
        Returns True if message was sent to at least one connection
        """
        async with self._lock:
            # Shallow copy so disconnects during the send are safe
            connections = list(self.active_connections.get(user_id, []))

        if not connections:
            return False

        results = await asyncio.gather(
            *(self._safe_send(connection, message) for connection in connections),
            return_exceptions=True,
        )
        return any(result is True for result in results)

    async def _safe_send(self, websocket: WebSocket, message: dict[str, Any]) -> bool:
        try:
            await websocket.send_json(message)
            return True
        except Exception as e:
            logger.error(f"Error sending message: {e}")
            return False


# Global connection manager instance
manager = ConnectionManager()
