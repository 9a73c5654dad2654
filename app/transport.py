"""
Connection hub - WebSocket connections grouped into rooms.
Sends are best-effort and run concurrently.
"""
import asyncio
import json
import logging
import uuid
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionHub:
    """
    Tracks live WebSocket connections and the room groups they belong to.

    A connection is removed from every group when it is unregistered,
    so callers never need to leave rooms on disconnect.
    """

    def __init__(self):
        self.connections: Dict[str, WebSocket] = {}
        self.groups: Dict[str, Set[str]] = {}

    def register(self, websocket: WebSocket) -> str:
        connection_id = uuid.uuid4().hex
        self.connections[connection_id] = websocket
        logger.debug(f"Connection registered: {connection_id} (total={len(self.connections)})")
        return connection_id

    def unregister(self, connection_id: str):
        self.connections.pop(connection_id, None)
        for room_key in [key for key, members in self.groups.items() if connection_id in members]:
            self.leave(connection_id, room_key)
        logger.debug(f"Connection unregistered: {connection_id} (total={len(self.connections)})")

    def join(self, connection_id: str, room_key: str):
        self.groups.setdefault(room_key, set()).add(connection_id)

    def leave(self, connection_id: str, room_key: str):
        members = self.groups.get(room_key)
        if not members:
            return
        members.discard(connection_id)
        if not members:
            del self.groups[room_key]

    def leave_room(self, room_key: str) -> Set[str]:
        """Detach every member of a room. Returns the detached connection ids."""
        return self.groups.pop(room_key, set())

    def members_of(self, room_key: str) -> Set[str]:
        return set(self.groups.get(room_key, ()))

    async def emit_to_room(self, room_key: str, event: str, payload: Any = None,
                           exclude: Optional[str] = None):
        """Send an event to every member of a room, optionally skipping one connection."""
        targets = [cid for cid in self.members_of(room_key) if cid != exclude]
        if not targets:
            return
        data = self._encode(event, payload)
        await asyncio.gather(*(self._safe_send(cid, data) for cid in targets))

    async def emit_to_connection(self, connection_id: str, event: str, payload: Any = None):
        await self._safe_send(connection_id, self._encode(event, payload))

    @staticmethod
    def _encode(event: str, payload: Any) -> str:
        return json.dumps({"event": event, "data": payload}, ensure_ascii=False)

    async def _safe_send(self, connection_id: str, data: str):
        websocket = self.connections.get(connection_id)
        if websocket is None:
            return
        try:
            await websocket.send_text(data)
        except Exception as e:
            # Connection may be closing
            logger.debug(f"Send to {connection_id} failed: {e}")
